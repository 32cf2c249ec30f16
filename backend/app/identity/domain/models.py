from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple


class UserRole:
    REQUESTER = "requester"
    HOTEL_MANAGER = "hotel_manager"
    QUALITY_SUPERVISOR = "quality_supervisor"
    QUALITY_MANAGER = "quality_manager"
    PROJECTS_ACCOUNTANT = "projects_accountant"
    FINAL_APPROVER = "final_approver"
    PURCHASING_REP = "purchasing_rep"
    PURCHASING_MANAGER = "purchasing_manager"
    ACCOUNTANT = "accountant"
    ACCOUNTING_MANAGER = "accounting_manager"
    BANK_ROUNDS_OFFICER = "bank_rounds_officer"
    AUDITOR = "auditor"
    ADMIN = "admin"

    ALL = (
        REQUESTER,
        HOTEL_MANAGER,
        QUALITY_SUPERVISOR,
        QUALITY_MANAGER,
        PROJECTS_ACCOUNTANT,
        FINAL_APPROVER,
        PURCHASING_REP,
        PURCHASING_MANAGER,
        ACCOUNTANT,
        ACCOUNTING_MANAGER,
        BANK_ROUNDS_OFFICER,
        AUDITOR,
        ADMIN,
    )

    # Roles that see every request regardless of branch
    UNRESTRICTED = frozenset({AUDITOR, ADMIN})


@dataclass(frozen=True)
class UserSummary:
    """Point-in-time view of a user.

    Embedded in history entries and attachments as a snapshot, so later
    edits or deletion of the user never rewrite what was recorded.
    """

    id: str
    name: str
    role: str
    branch_ids: Tuple[str, ...] = ()

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def snapshot(self) -> "UserSummary":
        return UserSummary(id=self.id, name=self.name, role=self.role)


@dataclass(frozen=True)
class UserAccount:
    id: str
    name: str
    email: str
    role: str
    branch_ids: Tuple[str, ...] = ()
    is_active: bool = True
    password_hash: Optional[str] = None

    def summary(self) -> UserSummary:
        return UserSummary(id=self.id, name=self.name, role=self.role, branch_ids=self.branch_ids)


@dataclass(frozen=True)
class Branch:
    id: str
    name: str
    city: str


@dataclass(frozen=True)
class RoleDefinition:
    name: str
    permissions: FrozenSet[str] = field(default_factory=frozenset)
