import os


DEFAULT_PASSWORD = os.environ.get("TEST_DEFAULT_PASSWORD", "123456")

ROLE_EMAILS = {
    "admin": os.environ.get("TEST_ADMIN_EMAIL", "admin@grandhotels.com"),
    "requester": os.environ.get("TEST_REQUESTER_EMAIL", "requester@grandhotels.com"),
    "hotel_manager": os.environ.get("TEST_HOTEL_MANAGER_EMAIL", "hm@grandhotels.com"),
    "purchasing_rep": os.environ.get("TEST_PURCHASING_REP_EMAIL", "rep@grandhotels.com"),
    "accountant": os.environ.get("TEST_ACCOUNTANT_EMAIL", "accountant@grandhotels.com"),
    "auditor": os.environ.get("TEST_AUDITOR_EMAIL", "auditor@grandhotels.com"),
}

ROLE_PASSWORDS = {
    role: os.environ.get(f"TEST_{role.upper()}_PASSWORD", DEFAULT_PASSWORD)
    for role in ROLE_EMAILS
}


def get_credentials(role: str) -> dict:
    email = ROLE_EMAILS.get(role)
    password = ROLE_PASSWORDS.get(role, DEFAULT_PASSWORD)
    return {"email": email, "password": password}
