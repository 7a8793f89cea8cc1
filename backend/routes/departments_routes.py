"""
Department Routes - departments within business units
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
import logging
import uuid

from app.requests.domain.roles import ADMINISTRATORS
from database import (
    get_postgres_session, BusinessUnit, Department, DepartmentApprover,
    MaterialRequest, User
)
from routes.auth_routes import get_current_user, require_roles

logger = logging.getLogger(__name__)

departments_router = APIRouter(prefix="/api", tags=["Departments"])


# ==================== PYDANTIC MODELS ====================

class DepartmentCreate(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    business_unit_id: str
    description: Optional[str] = None


class DepartmentUpdate(DepartmentCreate):
    is_active: bool = True


# ==================== HELPER FUNCTIONS ====================

def _department_to_dict(department: Department, unit: Optional[BusinessUnit] = None, **extra) -> dict:
    data = {
        "id": department.id,
        "code": department.code,
        "name": department.name,
        "description": department.description,
        "business_unit_id": department.business_unit_id,
        "business_unit": {"id": unit.id, "code": unit.code, "name": unit.name} if unit else None,
        "is_active": department.is_active,
        "created_at": department.created_at.isoformat() if department.created_at else None,
        "updated_at": department.updated_at.isoformat() if department.updated_at else None,
    }
    data.update(extra)
    return data


async def _get_department_or_404(session: AsyncSession, department_id: str) -> Department:
    result = await session.execute(select(Department).where(Department.id == department_id))
    department = result.scalar_one_or_none()
    if not department:
        raise HTTPException(status_code=404, detail="Department not found")
    return department


async def _get_unit_or_404(session: AsyncSession, business_unit_id: str) -> BusinessUnit:
    result = await session.execute(select(BusinessUnit).where(BusinessUnit.id == business_unit_id))
    unit = result.scalar_one_or_none()
    if not unit:
        raise HTTPException(status_code=404, detail="Business unit not found")
    return unit


async def _ensure_code_available(session: AsyncSession, code: str, exclude_id: Optional[str] = None) -> None:
    query = select(Department).where(Department.code == code)
    if exclude_id:
        query = query.where(Department.id != exclude_id)
    result = await session.execute(query)
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Department code already exists")


async def _count(session: AsyncSession, model, column, value) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(column == value))
    return result.scalar() or 0


# ==================== DEPARTMENT ROUTES ====================

@departments_router.get("/departments")
async def list_departments(
    business_unit_id: Optional[str] = None,
    include_inactive: bool = False,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """List departments, optionally for one business unit"""
    query = (
        select(Department, BusinessUnit)
        .join(BusinessUnit, BusinessUnit.id == Department.business_unit_id)
        .order_by(Department.name)
    )
    if business_unit_id:
        query = query.where(Department.business_unit_id == business_unit_id)
    if not include_inactive:
        query = query.where(Department.is_active == True)  # noqa: E712

    result = await session.execute(query)
    rows = result.all()

    user_counts = dict((await session.execute(
        select(User.department_id, func.count()).group_by(User.department_id)
    )).all())
    request_counts = dict((await session.execute(
        select(MaterialRequest.department_id, func.count()).group_by(MaterialRequest.department_id)
    )).all())

    return [
        _department_to_dict(
            department,
            unit,
            user_count=user_counts.get(department.id, 0),
            request_count=request_counts.get(department.id, 0),
        )
        for department, unit in rows
    ]


@departments_router.get("/departments/{department_id}")
async def get_department(
    department_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get a single department"""
    department = await _get_department_or_404(session, department_id)
    unit = await _get_unit_or_404(session, department.business_unit_id)
    return _department_to_dict(department, unit)


@departments_router.post("/departments", status_code=201)
async def create_department(
    department_data: DepartmentCreate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create a department - admins only"""
    require_roles(current_user, ADMINISTRATORS, "Insufficient permissions")

    code = department_data.code.strip().upper()
    await _ensure_code_available(session, code)
    unit = await _get_unit_or_404(session, department_data.business_unit_id)

    department = Department(
        id=str(uuid.uuid4()),
        code=code,
        name=department_data.name.strip(),
        description=department_data.description or None,
        business_unit_id=unit.id,
        is_active=True,
    )
    session.add(department)
    await session.commit()

    logger.info("Department %s created in %s by %s", code, unit.code, current_user.id)
    return {"message": "Department created successfully", "department": _department_to_dict(department, unit)}


@departments_router.put("/departments/{department_id}")
async def update_department(
    department_id: str,
    department_data: DepartmentUpdate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Update a department - admins only"""
    require_roles(current_user, ADMINISTRATORS, "Insufficient permissions")
    department = await _get_department_or_404(session, department_id)

    code = department_data.code.strip().upper()
    await _ensure_code_available(session, code, exclude_id=department_id)
    unit = await _get_unit_or_404(session, department_data.business_unit_id)

    department.code = code
    department.name = department_data.name.strip()
    department.description = department_data.description or None
    department.business_unit_id = unit.id
    department.is_active = department_data.is_active
    await session.commit()

    return {"message": "Department updated successfully", "department": _department_to_dict(department, unit)}


@departments_router.put("/departments/{department_id}/toggle-active")
async def toggle_department(
    department_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Activate or deactivate a department - admins only"""
    require_roles(current_user, ADMINISTRATORS, "Insufficient permissions")
    department = await _get_department_or_404(session, department_id)

    department.is_active = not department.is_active
    await session.commit()

    return {
        "message": f"Department {'activated' if department.is_active else 'deactivated'} successfully",
        "is_active": department.is_active,
    }


@departments_router.delete("/departments/{department_id}")
async def delete_department(
    department_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Delete a department - admins only, refused while anything references it"""
    require_roles(current_user, ADMINISTRATORS, "Insufficient permissions")
    department = await _get_department_or_404(session, department_id)

    if await _count(session, User, User.department_id, department_id):
        raise HTTPException(status_code=400, detail="Cannot delete department with existing users")
    if await _count(session, MaterialRequest, MaterialRequest.department_id, department_id):
        raise HTTPException(status_code=400, detail="Cannot delete department with existing requests")
    if await _count(session, DepartmentApprover, DepartmentApprover.department_id, department_id):
        raise HTTPException(status_code=400, detail="Cannot delete department with existing approvers")

    await session.delete(department)
    await session.commit()

    logger.info("Department %s deleted by %s", department.code, current_user.id)
    return {"message": "Department deleted successfully"}
