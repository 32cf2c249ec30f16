"""
PostgreSQL Settings Routes - roles, branches and workflow configuration
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from database import get_postgres_session, User
from app.identity.application.use_cases import (
    DeleteBranchUseCase,
    DeleteRoleUseCase,
    SaveBranchCommand,
    SaveBranchUseCase,
    SaveRoleCommand,
    SaveRoleUseCase,
)
from app.identity.domain.models import Branch, RoleDefinition, UserRole
from app.identity.infrastructure.sqlalchemy_repository import SqlAlchemyIdentityRepository
from app.requests.domain.status import RequestStatus
from app.settings import settings
from app.shared.domain.errors import DomainError
from routes.pg_auth_routes import get_current_user_pg, to_user_summary
from routes.pg_errors import to_http_exception

# Create router
pg_settings_router = APIRouter(prefix="/api/pg", tags=["PostgreSQL Settings"])


# ==================== PYDANTIC MODELS ====================

class RoleData(BaseModel):
    permissions: List[str] = []


class BranchData(BaseModel):
    name: str
    city: str = ""


def role_to_response(role: RoleDefinition) -> dict:
    return {"name": role.name, "permissions": sorted(role.permissions)}


def branch_to_response(branch: Branch) -> dict:
    return {"id": branch.id, "name": branch.name, "city": branch.city}


# ==================== WORKFLOW CONFIGURATION ====================

@pg_settings_router.get("/settings/workflow")
async def get_workflow_settings(current_user: User = Depends(get_current_user_pg)):
    """Departments, statuses, roles and the purchasing manager threshold"""
    return {
        "departments": settings.departments,
        "projects_department": settings.projects_department,
        "pm_approval_threshold": settings.pm_approval_threshold,
        "statuses": [status.value for status in RequestStatus],
        "roles": list(UserRole.ALL),
    }


# ==================== ROLES ====================

@pg_settings_router.get("/roles")
async def get_roles(
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    roles = await SqlAlchemyIdentityRepository(session).list_roles()
    return [role_to_response(role) for role in roles]


@pg_settings_router.put("/roles/{name}")
async def save_role(
    name: str,
    role_data: RoleData,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create or replace a role definition - admin only"""
    use_case = SaveRoleUseCase(SqlAlchemyIdentityRepository(session))
    try:
        role = await use_case.execute(
            SaveRoleCommand(name=name, permissions=role_data.permissions),
            to_user_summary(current_user),
        )
    except DomainError as exc:
        raise to_http_exception(exc)

    return role_to_response(role)


@pg_settings_router.delete("/roles/{name}")
async def delete_role(
    name: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    use_case = DeleteRoleUseCase(SqlAlchemyIdentityRepository(session))
    try:
        await use_case.execute(name, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return {"message": "Role deleted"}


# ==================== BRANCHES ====================

@pg_settings_router.get("/branches")
async def get_branches(
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    branches = await SqlAlchemyIdentityRepository(session).list_branches()
    return [branch_to_response(branch) for branch in branches]


@pg_settings_router.post("/branches")
async def create_branch(
    branch_data: BranchData,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    use_case = SaveBranchUseCase(SqlAlchemyIdentityRepository(session), lambda: str(uuid.uuid4()))
    try:
        branch = await use_case.execute(
            SaveBranchCommand(name=branch_data.name, city=branch_data.city),
            to_user_summary(current_user),
        )
    except DomainError as exc:
        raise to_http_exception(exc)

    return branch_to_response(branch)


@pg_settings_router.put("/branches/{branch_id}")
async def update_branch(
    branch_id: str,
    branch_data: BranchData,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    use_case = SaveBranchUseCase(SqlAlchemyIdentityRepository(session), lambda: str(uuid.uuid4()))
    try:
        branch = await use_case.execute(
            SaveBranchCommand(name=branch_data.name, city=branch_data.city, branch_id=branch_id),
            to_user_summary(current_user),
        )
    except DomainError as exc:
        raise to_http_exception(exc)

    return branch_to_response(branch)


@pg_settings_router.delete("/branches/{branch_id}")
async def delete_branch(
    branch_id: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    use_case = DeleteBranchUseCase(SqlAlchemyIdentityRepository(session))
    try:
        await use_case.execute(branch_id, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return {"message": "Branch deleted"}
