from typing import Optional, Protocol, Sequence

from app.identity.domain.models import Branch, RoleDefinition, UserAccount


class IdentityRepository(Protocol):
    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        ...

    async def get_user_by_email(self, email: str) -> Optional[UserAccount]:
        ...

    async def list_users(self) -> Sequence[UserAccount]:
        ...

    async def save_user(self, user: UserAccount) -> None:
        ...

    async def delete_user(self, user_id: str) -> None:
        ...

    async def get_role(self, name: str) -> Optional[RoleDefinition]:
        ...

    async def list_roles(self) -> Sequence[RoleDefinition]:
        ...

    async def save_role(self, role: RoleDefinition) -> None:
        ...

    async def delete_role(self, name: str) -> None:
        ...

    async def get_branch(self, branch_id: str) -> Optional[Branch]:
        ...

    async def list_branches(self) -> Sequence[Branch]:
        ...

    async def save_branch(self, branch: Branch) -> None:
        ...

    async def delete_branch(self, branch_id: str) -> None:
        ...

    async def commit(self) -> None:
        ...
