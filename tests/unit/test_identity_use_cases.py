import pytest

from app.identity.application.use_cases import (
    CreateUserCommand,
    CreateUserUseCase,
    DeleteBranchUseCase,
    DeleteRoleUseCase,
    DeleteUserUseCase,
    SaveBranchCommand,
    SaveBranchUseCase,
    SaveRoleCommand,
    SaveRoleUseCase,
    UpdateUserCommand,
    UpdateUserUseCase,
)
from app.identity.domain.models import RoleDefinition, UserAccount, UserRole
from app.shared.domain.errors import AuthorizationError, NotFound, ValidationError
from fakes import FakeIdentityRepository, SequentialIds, make_user, run

ADMIN = make_user(UserRole.ADMIN, user_id="admin-1")


def create_user_use_case(repo):
    return CreateUserUseCase(repo, SequentialIds("user"), password_hasher=lambda raw: f"hashed:{raw}")


def account(user_id="u-1", role=UserRole.REQUESTER, branch_ids=("b-1",)):
    return UserAccount(
        id=user_id,
        name="Sara",
        email=f"{user_id}@hotel.test",
        role=role,
        branch_ids=branch_ids,
        password_hash="hashed:secret",
    )


def test_admin_creates_user_with_hashed_password():
    repo = FakeIdentityRepository()
    command = CreateUserCommand(
        name=" Sara ",
        email="sara@hotel.test",
        password="secret1",
        role=UserRole.HOTEL_MANAGER,
        branch_ids=("b-1",),
    )

    user = run(create_user_use_case(repo).execute(command, ADMIN))

    assert user.name == "Sara"
    assert user.password_hash == "hashed:secret1"
    assert repo.users[user.id].branch_ids == ("b-1",)
    assert repo.commits == 1


def test_create_user_rules():
    repo = FakeIdentityRepository()
    repo.add_user(account())
    use_case = create_user_use_case(repo)

    with pytest.raises(AuthorizationError):
        run(use_case.execute(CreateUserCommand("Ali", "ali@hotel.test", "secret1", UserRole.REQUESTER), make_user(UserRole.HOTEL_MANAGER)))
    with pytest.raises(ValidationError):
        run(use_case.execute(CreateUserCommand("Ali", "ali@hotel.test", "123", UserRole.REQUESTER), ADMIN))
    with pytest.raises(ValidationError):
        run(use_case.execute(CreateUserCommand("Ali", "u-1@hotel.test", "secret1", UserRole.REQUESTER), ADMIN))
    with pytest.raises(ValidationError):
        run(use_case.execute(CreateUserCommand("Ali", "ali@hotel.test", "secret1", "chef"), ADMIN))
    with pytest.raises(NotFound):
        run(use_case.execute(CreateUserCommand("Ali", "ali@hotel.test", "secret1", UserRole.REQUESTER, ("b-9",)), ADMIN))
    assert list(repo.users) == ["u-1"]


def test_custom_role_can_be_assigned_once_saved():
    repo = FakeIdentityRepository()
    run(SaveRoleUseCase(repo).execute(SaveRoleCommand("night_auditor", ["completed"]), ADMIN))

    user = run(
        create_user_use_case(repo).execute(
            CreateUserCommand("Omar", "omar@hotel.test", "secret1", "night_auditor"), ADMIN
        )
    )

    assert user.role == "night_auditor"


def test_update_user_fields():
    repo = FakeIdentityRepository()
    repo.add_user(account())

    user = run(
        UpdateUserUseCase(repo).execute(
            UpdateUserCommand("u-1", role=UserRole.ACCOUNTANT, branch_ids=(), is_active=False), ADMIN
        )
    )

    assert user.role == UserRole.ACCOUNTANT
    assert user.branch_ids == ()
    assert not user.is_active
    assert user.password_hash == "hashed:secret"


def test_admin_cannot_deactivate_or_delete_self():
    repo = FakeIdentityRepository()
    repo.add_user(account(user_id="admin-1", role=UserRole.ADMIN))

    with pytest.raises(ValidationError):
        run(UpdateUserUseCase(repo).execute(UpdateUserCommand("admin-1", is_active=False), ADMIN))
    with pytest.raises(ValidationError):
        run(DeleteUserUseCase(repo).execute("admin-1", ADMIN))
    assert "admin-1" in repo.users


def test_delete_user():
    repo = FakeIdentityRepository()
    repo.add_user(account())

    run(DeleteUserUseCase(repo).execute("u-1", ADMIN))

    assert repo.users == {}
    with pytest.raises(NotFound):
        run(DeleteUserUseCase(repo).execute("u-1", ADMIN))


def test_role_permissions_must_be_known_statuses():
    repo = FakeIdentityRepository()

    with pytest.raises(ValidationError):
        run(SaveRoleUseCase(repo).execute(SaveRoleCommand("viewer", ["draft", "shipped"]), ADMIN))

    role = run(SaveRoleUseCase(repo).execute(SaveRoleCommand(" viewer ", ["draft"]), ADMIN))
    assert role == RoleDefinition(name="viewer", permissions=frozenset({"draft"}))


def test_delete_role_rules():
    repo = FakeIdentityRepository()
    repo.roles["admin"] = RoleDefinition(name="admin")
    repo.roles["viewer"] = RoleDefinition(name="viewer")
    repo.add_user(account(role="viewer"))
    use_case = DeleteRoleUseCase(repo)

    with pytest.raises(ValidationError):
        run(use_case.execute(UserRole.ADMIN, ADMIN))
    with pytest.raises(ValidationError):
        run(use_case.execute("viewer", ADMIN))
    with pytest.raises(NotFound):
        run(use_case.execute("ghost", ADMIN))

    repo.users.clear()
    run(use_case.execute("viewer", ADMIN))
    assert "viewer" not in repo.roles


def test_branches_create_update_delete():
    repo = FakeIdentityRepository()
    save = SaveBranchUseCase(repo, SequentialIds("branch"))

    created = run(save.execute(SaveBranchCommand(name="Dammam Tower", city="Dammam"), ADMIN))
    assert created.id == "branch-1"

    renamed = run(save.execute(SaveBranchCommand(name="Dammam Corniche", city="Dammam", branch_id="branch-1"), ADMIN))
    assert repo.branches["branch-1"].name == "Dammam Corniche"
    assert renamed.id == "branch-1"

    with pytest.raises(NotFound):
        run(save.execute(SaveBranchCommand(name="X", city="Y", branch_id="nope"), ADMIN))

    repo.add_user(account(branch_ids=("branch-1",)))
    with pytest.raises(ValidationError):
        run(DeleteBranchUseCase(repo).execute("branch-1", ADMIN))

    repo.users.clear()
    run(DeleteBranchUseCase(repo).execute("branch-1", ADMIN))
    assert "branch-1" not in repo.branches
