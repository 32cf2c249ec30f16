"""
PostgreSQL Auth Routes - Users and Authentication
"""
from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr
from typing import Optional, List
from datetime import datetime, timezone, timedelta
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
import logging
import uuid
import os
import json

from database import get_postgres_session, User
from app.identity.application.use_cases import (
    MIN_PASSWORD_LENGTH,
    CreateUserCommand,
    CreateUserUseCase,
    DeleteUserUseCase,
    UpdateUserCommand,
    UpdateUserUseCase,
)
from app.identity.domain.models import UserAccount, UserRole, UserSummary
from app.identity.infrastructure.sqlalchemy_repository import SqlAlchemyIdentityRepository
from app.shared.domain.errors import DomainError
from routes.pg_errors import to_http_exception

logger = logging.getLogger(__name__)

# JWT Settings
SECRET_KEY = os.environ.get('SECRET_KEY', 'your-secret-key-change-in-production')
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Security
security = HTTPBearer()

# Create router
pg_auth_router = APIRouter(prefix="/api/pg", tags=["PostgreSQL Auth"])

# ==================== PYDANTIC MODELS ====================

class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    is_active: bool = True
    branch_ids: List[str] = []


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class SetupFirstAdmin(BaseModel):
    name: str
    email: EmailStr
    password: str


class UserCreateByAdmin(BaseModel):
    name: str
    email: EmailStr
    password: str
    role: str
    branch_ids: List[str] = []


class UserUpdateByAdmin(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None
    branch_ids: Optional[List[str]] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


# ==================== HELPER FUNCTIONS ====================

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def user_branch_ids(user: User) -> List[str]:
    return json.loads(user.branch_ids) if user.branch_ids else []


def to_user_summary(user: User) -> UserSummary:
    return UserSummary(
        id=user.id,
        name=user.name,
        role=user.role,
        branch_ids=tuple(user_branch_ids(user)),
    )


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
        branch_ids=user_branch_ids(user),
    )


def account_to_response(account: UserAccount) -> UserResponse:
    return UserResponse(
        id=account.id,
        name=account.name,
        email=account.email,
        role=account.role,
        is_active=account.is_active,
        branch_ids=list(account.branch_ids),
    )


async def get_current_user_pg(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get current user from PostgreSQL"""
    try:
        token = credentials.credentials
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id = payload.get("sub")
        if user_id is None:
            raise HTTPException(status_code=401, detail="Invalid access token")

        result = await session.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()

        if user is None:
            raise HTTPException(status_code=401, detail="User not found")
        if not user.is_active:
            raise HTTPException(status_code=403, detail="Your account is disabled, contact an admin")

        return user
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid access token")


# ==================== AUTH ROUTES ====================

@pg_auth_router.get("/health")
async def pg_health_check(session: AsyncSession = Depends(get_postgres_session)):
    """Health check for PostgreSQL connection"""
    try:
        result = await session.execute(select(func.count()).select_from(User))
        count = result.scalar()
        return {"status": "healthy", "database": "postgresql", "users_count": count}
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Database error: {str(e)}")


@pg_auth_router.get("/setup/check")
async def check_setup_required(session: AsyncSession = Depends(get_postgres_session)):
    """Check if the system still needs its first admin"""
    result = await session.execute(
        select(func.count()).select_from(User).where(User.role == UserRole.ADMIN)
    )
    admin_count = result.scalar()
    return {"setup_required": admin_count == 0}


@pg_auth_router.post("/setup/first-admin", response_model=TokenResponse)
async def create_first_admin(
    admin_data: SetupFirstAdmin,
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create the first admin - only available while no admin exists"""
    result = await session.execute(
        select(func.count()).select_from(User).where(User.role == UserRole.ADMIN)
    )
    if result.scalar() > 0:
        raise HTTPException(status_code=400, detail="The system is already set up")

    result = await session.execute(select(User).where(User.email == admin_data.email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email is already registered")

    if len(admin_data.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )

    user = User(
        id=str(uuid.uuid4()),
        name=admin_data.name,
        email=admin_data.email,
        password=get_password_hash(admin_data.password),
        role=UserRole.ADMIN,
        is_active=True,
        branch_ids="[]",
    )
    session.add(user)
    await session.commit()
    logger.info(f"First admin created: {user.email}")

    access_token = create_access_token({"sub": user.id})
    return TokenResponse(access_token=access_token, user=user_to_response(user))


@pg_auth_router.post("/auth/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    session: AsyncSession = Depends(get_postgres_session)
):
    """Login user"""
    result = await session.execute(select(User).where(User.email == credentials.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.password):
        raise HTTPException(status_code=401, detail="Incorrect email or password")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Your account is disabled, contact an admin")

    access_token = create_access_token({"sub": user.id})
    return TokenResponse(access_token=access_token, user=user_to_response(user))


@pg_auth_router.get("/auth/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user_pg)):
    """Get current user info"""
    return user_to_response(current_user)


@pg_auth_router.post("/auth/change-password")
async def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Change the current user's password"""
    if not verify_password(data.current_password, current_user.password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    if len(data.new_password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )

    current_user.password = get_password_hash(data.new_password)
    await session.commit()
    return {"message": "Password changed"}


# ==================== ADMIN USER MANAGEMENT ====================

@pg_auth_router.get("/admin/users", response_model=List[UserResponse])
async def get_all_users_admin(
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """List all users - admin only"""
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Only an admin can manage users")

    users = await SqlAlchemyIdentityRepository(session).list_users()
    return [account_to_response(user) for user in users]


@pg_auth_router.post("/admin/users", response_model=UserResponse)
async def create_user_by_admin(
    user_data: UserCreateByAdmin,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create a user - admin only"""
    use_case = CreateUserUseCase(
        repository=SqlAlchemyIdentityRepository(session),
        id_generator=lambda: str(uuid.uuid4()),
        password_hasher=get_password_hash,
    )
    command = CreateUserCommand(
        name=user_data.name,
        email=user_data.email,
        password=user_data.password,
        role=user_data.role,
        branch_ids=user_data.branch_ids,
    )
    try:
        user = await use_case.execute(command, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return account_to_response(user)


@pg_auth_router.put("/admin/users/{user_id}", response_model=UserResponse)
async def update_user_by_admin(
    user_id: str,
    update_data: UserUpdateByAdmin,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Update a user - admin only"""
    use_case = UpdateUserUseCase(SqlAlchemyIdentityRepository(session))
    command = UpdateUserCommand(
        user_id=user_id,
        name=update_data.name,
        email=update_data.email,
        role=update_data.role,
        branch_ids=update_data.branch_ids,
        is_active=update_data.is_active,
    )
    try:
        user = await use_case.execute(command, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return account_to_response(user)


@pg_auth_router.delete("/admin/users/{user_id}")
async def delete_user_by_admin(
    user_id: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Delete a user - admin only; history keeps its snapshots"""
    use_case = DeleteUserUseCase(SqlAlchemyIdentityRepository(session))
    try:
        await use_case.execute(user_id, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return {"message": "User deleted"}
