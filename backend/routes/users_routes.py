"""
User Routes - user administration and self-service profile
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, EmailStr
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, or_
import logging
import uuid

from app.requests.domain.roles import ADMINISTRATORS, ALL_ROLES
from database import get_postgres_session, User, Department, BusinessUnit, MaterialRequest
from routes.auth_routes import (
    get_current_user,
    get_password_hash,
    require_roles,
    validate_password,
)

logger = logging.getLogger(__name__)

users_router = APIRouter(prefix="/api", tags=["Users"])


# ==================== PYDANTIC MODELS ====================

class UserCreate(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    password: str
    role: str
    contact_no: Optional[str] = None
    department_id: Optional[str] = None


class UserUpdate(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    role: str
    contact_no: Optional[str] = None
    department_id: Optional[str] = None
    is_active: Optional[bool] = None


class ProfileUpdate(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    contact_no: Optional[str] = None


# ==================== HELPER FUNCTIONS ====================

def _validate_names(first_name: str, last_name: str) -> None:
    if not first_name.strip():
        raise HTTPException(status_code=400, detail="First name is required")
    if not last_name.strip():
        raise HTTPException(status_code=400, detail="Last name is required")


def _validate_role(role: str) -> str:
    normalized = role.lower()
    if normalized not in ALL_ROLES:
        raise HTTPException(status_code=400, detail=f"Invalid role '{role}'")
    return normalized


async def _ensure_email_available(session: AsyncSession, email: str, exclude_id: Optional[str] = None) -> None:
    query = select(User).where(User.email == email)
    if exclude_id:
        query = query.where(User.id != exclude_id)
    result = await session.execute(query)
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email is already taken")


async def _ensure_department(session: AsyncSession, department_id: Optional[str]) -> None:
    if not department_id:
        return
    result = await session.execute(select(Department).where(Department.id == department_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Department not found")


def _user_to_dict(user: User, department: Optional[Department] = None, unit: Optional[BusinessUnit] = None) -> dict:
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "name": user.name,
        "email": user.email,
        "contact_no": user.contact_no,
        "role": user.role,
        "is_active": user.is_active,
        "department_id": user.department_id,
        "department": (
            {
                "id": department.id,
                "code": department.code,
                "name": department.name,
                "business_unit": (
                    {"id": unit.id, "code": unit.code, "name": unit.name} if unit else None
                ),
            }
            if department else None
        ),
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "updated_at": user.updated_at.isoformat() if user.updated_at else None,
    }


# ==================== USER ROUTES ====================

@users_router.get("/users")
async def list_users(
    search: Optional[str] = None,
    role: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """List users with their department and business unit - admins only"""
    require_roles(current_user, ADMINISTRATORS, "You don't have permission to view users")

    query = (
        select(User, Department, BusinessUnit)
        .outerjoin(Department, Department.id == User.department_id)
        .outerjoin(BusinessUnit, BusinessUnit.id == Department.business_unit_id)
    )
    if role:
        query = query.where(User.role == role.lower())
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
            User.email.ilike(pattern),
        ))
    query = query.order_by(User.first_name, User.last_name)

    result = await session.execute(query)
    return [_user_to_dict(user, department, unit) for user, department, unit in result.all()]


@users_router.get("/users/{user_id}")
async def get_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get a single user - admins, or the user themself"""
    if current_user.id != user_id:
        require_roles(current_user, ADMINISTRATORS, "You don't have permission to view this user")

    result = await session.execute(
        select(User, Department, BusinessUnit)
        .outerjoin(Department, Department.id == User.department_id)
        .outerjoin(BusinessUnit, BusinessUnit.id == Department.business_unit_id)
        .where(User.id == user_id)
    )
    row = result.first()
    if row is None:
        raise HTTPException(status_code=404, detail="User not found")

    user, department, unit = row
    return _user_to_dict(user, department, unit)


@users_router.post("/users", status_code=201)
async def create_user(
    user_data: UserCreate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create a new user - admins only"""
    require_roles(current_user, ADMINISTRATORS, "You don't have permission to create users")

    _validate_names(user_data.first_name, user_data.last_name)
    role = _validate_role(user_data.role)
    validate_password(user_data.password)
    await _ensure_email_available(session, user_data.email)
    await _ensure_department(session, user_data.department_id)

    new_user = User(
        id=str(uuid.uuid4()),
        first_name=user_data.first_name.strip(),
        last_name=user_data.last_name.strip(),
        email=user_data.email,
        password=get_password_hash(user_data.password),
        contact_no=user_data.contact_no or None,
        role=role,
        is_active=True,
        department_id=user_data.department_id or None,
    )
    session.add(new_user)
    await session.commit()

    logger.info("User %s created by %s", new_user.email, current_user.id)
    return {"message": "User created successfully", "user": _user_to_dict(new_user)}


@users_router.put("/users/{user_id}")
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Update a user - admins only"""
    require_roles(current_user, ADMINISTRATORS, "You don't have permission to update users")

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    _validate_names(user_data.first_name, user_data.last_name)
    role = _validate_role(user_data.role)
    await _ensure_email_available(session, user_data.email, exclude_id=user_id)
    await _ensure_department(session, user_data.department_id)

    if user_data.is_active is False and user_id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    user.first_name = user_data.first_name.strip()
    user.last_name = user_data.last_name.strip()
    user.email = user_data.email
    user.contact_no = user_data.contact_no or None
    user.role = role
    user.department_id = user_data.department_id or None
    if user_data.is_active is not None:
        user.is_active = user_data.is_active

    await session.commit()
    return {"message": "User updated successfully", "user": _user_to_dict(user)}


@users_router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Delete a user - admins only, never yourself"""
    require_roles(current_user, ADMINISTRATORS, "You don't have permission to delete users")

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    result = await session.execute(
        select(func.count()).select_from(MaterialRequest).where(or_(
            MaterialRequest.requested_by_id == user_id,
            MaterialRequest.rec_approver_id == user_id,
            MaterialRequest.final_approver_id == user_id,
        ))
    )
    if result.scalar() > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete a user linked to material requests. Deactivate the account instead",
        )

    await session.delete(user)
    await session.commit()

    logger.info("User %s deleted by %s", user_id, current_user.id)
    return {"message": "User deleted successfully"}


@users_router.put("/profile")
async def update_profile(
    profile_data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Update the current user's own profile"""
    _validate_names(profile_data.first_name, profile_data.last_name)
    await _ensure_email_available(session, profile_data.email, exclude_id=current_user.id)

    current_user.first_name = profile_data.first_name.strip()
    current_user.last_name = profile_data.last_name.strip()
    current_user.email = profile_data.email
    current_user.contact_no = profile_data.contact_no or None

    await session.commit()
    return {"message": "Profile updated successfully", "user": _user_to_dict(current_user)}
