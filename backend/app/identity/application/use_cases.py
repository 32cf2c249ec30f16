from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence

from app.identity.application.ports import IdentityRepository
from app.identity.domain.models import (
    Branch,
    RoleDefinition,
    UserAccount,
    UserRole,
    UserSummary,
)
from app.requests.domain.status import RequestStatus
from app.shared.domain.errors import AuthorizationError, NotFound, ValidationError

IdGenerator = Callable[[], str]
PasswordHasher = Callable[[str], str]

MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class CreateUserCommand:
    name: str
    email: str
    password: str
    role: str
    branch_ids: Sequence[str] = ()


@dataclass(frozen=True)
class UpdateUserCommand:
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    branch_ids: Optional[Sequence[str]] = None
    is_active: Optional[bool] = None


@dataclass(frozen=True)
class SaveRoleCommand:
    name: str
    permissions: Sequence[str] = ()


@dataclass(frozen=True)
class SaveBranchCommand:
    name: str
    city: str
    branch_id: Optional[str] = None


def _require_admin(current_user: UserSummary) -> None:
    if not current_user.is_admin:
        raise AuthorizationError("Only an admin can manage users, roles and branches")


class _IdentityUseCase:
    def __init__(self, repository: IdentityRepository) -> None:
        self._repository = repository

    async def _validate_role(self, role: str) -> None:
        if role in UserRole.ALL:
            return
        if await self._repository.get_role(role) is None:
            raise ValidationError(f"Unknown role '{role}'")

    async def _validate_branches(self, branch_ids: Sequence[str]) -> None:
        for branch_id in branch_ids:
            if await self._repository.get_branch(branch_id) is None:
                raise NotFound(f"Branch '{branch_id}' not found")


class CreateUserUseCase(_IdentityUseCase):
    def __init__(
        self,
        repository: IdentityRepository,
        id_generator: IdGenerator,
        password_hasher: PasswordHasher,
    ) -> None:
        super().__init__(repository)
        self._id_generator = id_generator
        self._password_hasher = password_hasher

    async def execute(self, command: CreateUserCommand, current_user: UserSummary) -> UserAccount:
        _require_admin(current_user)

        if not command.name.strip():
            raise ValidationError("Name is required")
        if len(command.password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if await self._repository.get_user_by_email(command.email):
            raise ValidationError("Email is already registered")
        await self._validate_role(command.role)
        await self._validate_branches(command.branch_ids)

        user = UserAccount(
            id=self._id_generator(),
            name=command.name.strip(),
            email=command.email,
            role=command.role,
            branch_ids=tuple(command.branch_ids),
            password_hash=self._password_hasher(command.password),
        )
        await self._repository.save_user(user)
        await self._repository.commit()
        return user


class UpdateUserUseCase(_IdentityUseCase):
    async def execute(self, command: UpdateUserCommand, current_user: UserSummary) -> UserAccount:
        _require_admin(current_user)

        user = await self._repository.get_user(command.user_id)
        if user is None:
            raise NotFound("User not found")

        if command.email is not None and command.email != user.email:
            if await self._repository.get_user_by_email(command.email):
                raise ValidationError("Email is already registered")
            user = replace(user, email=command.email)
        if command.name is not None:
            user = replace(user, name=command.name.strip())
        if command.role is not None:
            await self._validate_role(command.role)
            user = replace(user, role=command.role)
        if command.branch_ids is not None:
            await self._validate_branches(command.branch_ids)
            user = replace(user, branch_ids=tuple(command.branch_ids))
        if command.is_active is not None:
            if not command.is_active and user.id == current_user.id:
                raise ValidationError("You cannot deactivate your own account")
            user = replace(user, is_active=command.is_active)

        await self._repository.save_user(user)
        await self._repository.commit()
        return user


class DeleteUserUseCase(_IdentityUseCase):
    async def execute(self, user_id: str, current_user: UserSummary) -> None:
        _require_admin(current_user)

        if user_id == current_user.id:
            raise ValidationError("You cannot delete your own account")
        if await self._repository.get_user(user_id) is None:
            raise NotFound("User not found")

        await self._repository.delete_user(user_id)
        await self._repository.commit()


class SaveRoleUseCase(_IdentityUseCase):
    async def execute(self, command: SaveRoleCommand, current_user: UserSummary) -> RoleDefinition:
        _require_admin(current_user)

        name = command.name.strip()
        if not name:
            raise ValidationError("Role name is required")
        valid_statuses = {status.value for status in RequestStatus}
        unknown = [p for p in command.permissions if p not in valid_statuses]
        if unknown:
            raise ValidationError(f"Unknown statuses: {', '.join(unknown)}")

        role = RoleDefinition(name=name, permissions=frozenset(command.permissions))
        await self._repository.save_role(role)
        await self._repository.commit()
        return role


class DeleteRoleUseCase(_IdentityUseCase):
    async def execute(self, name: str, current_user: UserSummary) -> None:
        _require_admin(current_user)

        if name == UserRole.ADMIN:
            raise ValidationError("The admin role cannot be deleted")
        if await self._repository.get_role(name) is None:
            raise NotFound("Role not found")
        users = await self._repository.list_users()
        if any(user.role == name for user in users):
            raise ValidationError("Role is assigned to at least one user")

        await self._repository.delete_role(name)
        await self._repository.commit()


class SaveBranchUseCase(_IdentityUseCase):
    def __init__(self, repository: IdentityRepository, id_generator: IdGenerator) -> None:
        super().__init__(repository)
        self._id_generator = id_generator

    async def execute(self, command: SaveBranchCommand, current_user: UserSummary) -> Branch:
        _require_admin(current_user)

        if not command.name.strip():
            raise ValidationError("Branch name is required")
        if command.branch_id is not None and await self._repository.get_branch(command.branch_id) is None:
            raise NotFound("Branch not found")

        branch = Branch(
            id=command.branch_id or self._id_generator(),
            name=command.name.strip(),
            city=command.city.strip(),
        )
        await self._repository.save_branch(branch)
        await self._repository.commit()
        return branch


class DeleteBranchUseCase(_IdentityUseCase):
    async def execute(self, branch_id: str, current_user: UserSummary) -> None:
        _require_admin(current_user)

        if await self._repository.get_branch(branch_id) is None:
            raise NotFound("Branch not found")
        users = await self._repository.list_users()
        if any(branch_id in user.branch_ids for user in users):
            raise ValidationError("Branch is assigned to at least one user")

        await self._repository.delete_branch(branch_id)
        await self._repository.commit()
