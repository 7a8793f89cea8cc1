"""
Auth Routes - login, current user, first-time setup and shared auth helpers
"""
from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr
from typing import Iterable, Optional
from datetime import datetime, timezone, timedelta
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
import logging
import uuid

from app.config import app_settings
from app.requests.domain.errors import (
    Conflict,
    DomainError,
    InvalidRequest,
    NotFound,
    PermissionDenied,
)
from app.requests.domain.models import UserSummary
from app.requests.domain.roles import UserRole
from app.requests.infrastructure.sqlalchemy_repository import (
    SqlAlchemyMaterialRequestRepository,
)
from database import get_postgres_session, User

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Security
security = HTTPBearer(auto_error=False)

# Create router
auth_router = APIRouter(prefix="/api", tags=["Auth"])

# ==================== PYDANTIC MODELS ====================

class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    name: str
    email: str
    role: str
    is_active: bool = True
    contact_no: Optional[str] = None
    department_id: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class SetupFirstAdmin(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


# ==================== HELPER FUNCTIONS ====================

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def validate_password(password: str) -> None:
    if len(password) < app_settings.min_password_length:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {app_settings.min_password_length} characters",
        )


def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=app_settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, app_settings.secret_key, algorithm=app_settings.jwt_algorithm)


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        name=user.name,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
        contact_no=user.contact_no,
        department_id=user.department_id,
    )


def to_user_summary(user: User) -> UserSummary:
    return UserSummary(
        id=user.id,
        name=user.name,
        role=user.role,
        email=user.email,
        department_id=user.department_id,
    )


def require_roles(user: User, roles: Iterable[str], message: str = "Unauthorized") -> None:
    """Raise 403 unless the user's role is one of ``roles``."""
    if user.role not in roles:
        raise HTTPException(status_code=403, detail=message)


def domain_error_to_http(exc: DomainError) -> HTTPException:
    if isinstance(exc, PermissionDenied):
        return HTTPException(status_code=403, detail=exc.message)
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=exc.message)
    if isinstance(exc, (InvalidRequest, Conflict)):
        return HTTPException(status_code=400, detail=exc.message)
    return HTTPException(status_code=400, detail=exc.message)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: AsyncSession = Depends(get_postgres_session)
) -> User:
    """Resolve the bearer token to an active user"""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = jwt.decode(
            credentials.credentials,
            app_settings.secret_key,
            algorithms=[app_settings.jwt_algorithm],
        )
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid authentication token")

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid authentication token")

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Your account has been deactivated")

    return user


def get_request_repository(
    session: AsyncSession = Depends(get_postgres_session)
) -> SqlAlchemyMaterialRequestRepository:
    return SqlAlchemyMaterialRequestRepository(session)


# ==================== AUTH ROUTES ====================

@auth_router.get("/health")
async def health_check(session: AsyncSession = Depends(get_postgres_session)):
    """Health check for the database connection"""
    try:
        result = await session.execute(select(func.count()).select_from(User))
        count = result.scalar()
    except Exception as e:
        logger.error("Health check failed: %s", e)
        raise HTTPException(status_code=503, detail=f"Database error: {str(e)}")
    return {"status": "healthy", "database": "postgresql", "users_count": count}


@auth_router.get("/setup/check")
async def check_setup_required(session: AsyncSession = Depends(get_postgres_session)):
    """Check if the system still needs its first administrator"""
    result = await session.execute(
        select(func.count()).select_from(User).where(User.role == UserRole.ADMIN.value)
    )
    admin_count = result.scalar()
    return {"setup_required": admin_count == 0}


@auth_router.post("/setup/first-admin", response_model=TokenResponse)
async def create_first_admin(
    admin_data: SetupFirstAdmin,
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create the first admin - only available while no admin exists"""
    result = await session.execute(
        select(func.count()).select_from(User).where(User.role == UserRole.ADMIN.value)
    )
    if result.scalar() > 0:
        raise HTTPException(status_code=400, detail="System is already set up")

    result = await session.execute(select(User).where(User.email == admin_data.email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email is already registered")

    validate_password(admin_data.password)

    new_user = User(
        id=str(uuid.uuid4()),
        first_name=admin_data.first_name,
        last_name=admin_data.last_name,
        email=admin_data.email,
        password=get_password_hash(admin_data.password),
        role=UserRole.ADMIN.value,
        is_active=True,
    )

    session.add(new_user)
    await session.commit()
    logger.info("First administrator %s created", new_user.email)

    access_token = create_access_token({"sub": new_user.id})
    return TokenResponse(access_token=access_token, user=user_to_response(new_user))


@auth_router.post("/auth/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    session: AsyncSession = Depends(get_postgres_session)
):
    """Login user"""
    result = await session.execute(select(User).where(User.email == credentials.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.password):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Your account has been deactivated. Contact your administrator")

    access_token = create_access_token({"sub": user.id})
    return TokenResponse(access_token=access_token, user=user_to_response(user))


@auth_router.get("/auth/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user info"""
    return user_to_response(current_user)


@auth_router.post("/auth/change-password")
async def change_password(
    password_data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Change current user's password"""
    if not verify_password(password_data.current_password, current_user.password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    validate_password(password_data.new_password)

    current_user.password = get_password_hash(password_data.new_password)
    await session.commit()

    return {"message": "Password changed successfully"}
