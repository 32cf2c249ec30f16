import json
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.identity.application.ports import IdentityRepository
from app.identity.domain.models import Branch, RoleDefinition, UserAccount
from database import (
    Branch as BranchModel,
    RoleDefinition as RoleDefinitionModel,
    User,
)


def _account(user: User) -> UserAccount:
    return UserAccount(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        branch_ids=tuple(json.loads(user.branch_ids or "[]")),
        is_active=user.is_active,
        password_hash=user.password,
    )


def _role(row: RoleDefinitionModel) -> RoleDefinition:
    return RoleDefinition(name=row.name, permissions=frozenset(json.loads(row.permissions or "[]")))


class SqlAlchemyIdentityRepository(IdentityRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        result = await self._session.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        return _account(user) if user else None

    async def get_user_by_email(self, email: str) -> Optional[UserAccount]:
        result = await self._session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        return _account(user) if user else None

    async def list_users(self) -> Sequence[UserAccount]:
        result = await self._session.execute(select(User).order_by(User.name))
        return [_account(user) for user in result.scalars().all()]

    async def save_user(self, user: UserAccount) -> None:
        result = await self._session.execute(select(User).where(User.id == user.id))
        row = result.scalar_one_or_none()
        if row is None:
            row = User(id=user.id, password=user.password_hash or "")
            self._session.add(row)
        elif user.password_hash:
            row.password = user.password_hash

        row.name = user.name
        row.email = user.email
        row.role = user.role
        row.is_active = user.is_active
        row.branch_ids = json.dumps(list(user.branch_ids))

    async def delete_user(self, user_id: str) -> None:
        await self._session.execute(delete(User).where(User.id == user_id))

    async def get_role(self, name: str) -> Optional[RoleDefinition]:
        result = await self._session.execute(
            select(RoleDefinitionModel).where(RoleDefinitionModel.name == name)
        )
        row = result.scalar_one_or_none()
        return _role(row) if row else None

    async def list_roles(self) -> Sequence[RoleDefinition]:
        result = await self._session.execute(select(RoleDefinitionModel).order_by(RoleDefinitionModel.name))
        return [_role(row) for row in result.scalars().all()]

    async def save_role(self, role: RoleDefinition) -> None:
        result = await self._session.execute(
            select(RoleDefinitionModel).where(RoleDefinitionModel.name == role.name)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = RoleDefinitionModel(name=role.name)
            self._session.add(row)
        row.permissions = json.dumps(sorted(role.permissions))

    async def delete_role(self, name: str) -> None:
        await self._session.execute(delete(RoleDefinitionModel).where(RoleDefinitionModel.name == name))

    async def get_branch(self, branch_id: str) -> Optional[Branch]:
        result = await self._session.execute(select(BranchModel).where(BranchModel.id == branch_id))
        row = result.scalar_one_or_none()
        return Branch(id=row.id, name=row.name, city=row.city) if row else None

    async def list_branches(self) -> Sequence[Branch]:
        result = await self._session.execute(select(BranchModel).order_by(BranchModel.name))
        return [Branch(id=row.id, name=row.name, city=row.city) for row in result.scalars().all()]

    async def save_branch(self, branch: Branch) -> None:
        result = await self._session.execute(select(BranchModel).where(BranchModel.id == branch.id))
        row = result.scalar_one_or_none()
        if row is None:
            row = BranchModel(id=branch.id)
            self._session.add(row)
        row.name = branch.name
        row.city = branch.city

    async def delete_branch(self, branch_id: str) -> None:
        await self._session.execute(delete(BranchModel).where(BranchModel.id == branch_id))

    async def commit(self) -> None:
        await self._session.commit()
