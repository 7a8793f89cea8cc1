"""
Business Unit Routes - business unit administration and the active-unit switch
"""
from fastapi import APIRouter, HTTPException, Depends, Response
from pydantic import BaseModel, Field
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
import logging
import uuid

from app.config import app_settings
from app.requests.domain.roles import ADMINISTRATORS, UserRole
from database import get_postgres_session, BusinessUnit, Department, MaterialRequest, User
from routes.auth_routes import get_current_user, require_roles

logger = logging.getLogger(__name__)

business_units_router = APIRouter(prefix="/api", tags=["Business Units"])


# ==================== PYDANTIC MODELS ====================

class BusinessUnitCreate(BaseModel):
    code: str = Field(min_length=1, max_length=10)
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None


class BusinessUnitUpdate(BaseModel):
    code: str = Field(min_length=1, max_length=10)
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    is_active: bool = True


class BusinessUnitSwitch(BaseModel):
    business_unit_id: str


# ==================== HELPER FUNCTIONS ====================

def _unit_to_dict(unit: BusinessUnit, **extra) -> dict:
    data = {
        "id": unit.id,
        "code": unit.code,
        "name": unit.name,
        "description": unit.description,
        "is_active": unit.is_active,
        "created_at": unit.created_at.isoformat() if unit.created_at else None,
        "updated_at": unit.updated_at.isoformat() if unit.updated_at else None,
    }
    data.update(extra)
    return data


async def _get_unit_or_404(session: AsyncSession, business_unit_id: str) -> BusinessUnit:
    result = await session.execute(select(BusinessUnit).where(BusinessUnit.id == business_unit_id))
    unit = result.scalar_one_or_none()
    if not unit:
        raise HTTPException(status_code=404, detail="Business unit not found")
    return unit


async def _ensure_code_available(session: AsyncSession, code: str, exclude_id: Optional[str] = None) -> None:
    query = select(BusinessUnit).where(BusinessUnit.code == code)
    if exclude_id:
        query = query.where(BusinessUnit.id != exclude_id)
    result = await session.execute(query)
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Business unit code already exists")


async def _count(session: AsyncSession, model, column, value) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(column == value))
    return result.scalar() or 0


# ==================== BUSINESS UNIT ROUTES ====================

@business_units_router.get("/business-units")
async def list_business_units(
    include_inactive: bool = False,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """List business units with department and request counts"""
    query = select(BusinessUnit).order_by(BusinessUnit.name)
    if not include_inactive or current_user.role not in ADMINISTRATORS:
        query = query.where(BusinessUnit.is_active == True)  # noqa: E712
    result = await session.execute(query)
    units = result.scalars().all()

    department_counts = dict((await session.execute(
        select(Department.business_unit_id, func.count()).group_by(Department.business_unit_id)
    )).all())
    request_counts = dict((await session.execute(
        select(MaterialRequest.business_unit_id, func.count()).group_by(MaterialRequest.business_unit_id)
    )).all())

    return [
        _unit_to_dict(
            unit,
            department_count=department_counts.get(unit.id, 0),
            request_count=request_counts.get(unit.id, 0),
        )
        for unit in units
    ]


@business_units_router.get("/business-units/{business_unit_id}")
async def get_business_unit(
    business_unit_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get a business unit with its active departments"""
    unit = await _get_unit_or_404(session, business_unit_id)

    result = await session.execute(
        select(Department)
        .where(Department.business_unit_id == business_unit_id, Department.is_active == True)  # noqa: E712
        .order_by(Department.name)
    )
    departments = [
        {"id": d.id, "code": d.code, "name": d.name, "description": d.description}
        for d in result.scalars().all()
    ]
    return _unit_to_dict(unit, departments=departments)


@business_units_router.post("/business-units", status_code=201)
async def create_business_unit(
    unit_data: BusinessUnitCreate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create a business unit - admins only"""
    require_roles(current_user, ADMINISTRATORS, "Insufficient permissions")
    code = unit_data.code.strip().upper()
    await _ensure_code_available(session, code)

    unit = BusinessUnit(
        id=str(uuid.uuid4()),
        code=code,
        name=unit_data.name.strip(),
        description=unit_data.description or None,
        is_active=True,
    )
    session.add(unit)
    await session.commit()

    logger.info("Business unit %s created by %s", code, current_user.id)
    return {"message": "Business unit created successfully", "business_unit": _unit_to_dict(unit)}


@business_units_router.put("/business-units/{business_unit_id}")
async def update_business_unit(
    business_unit_id: str,
    unit_data: BusinessUnitUpdate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Update a business unit - admins only"""
    require_roles(current_user, ADMINISTRATORS, "Insufficient permissions")
    unit = await _get_unit_or_404(session, business_unit_id)

    code = unit_data.code.strip().upper()
    await _ensure_code_available(session, code, exclude_id=business_unit_id)

    unit.code = code
    unit.name = unit_data.name.strip()
    unit.description = unit_data.description or None
    unit.is_active = unit_data.is_active
    await session.commit()

    return {"message": "Business unit updated successfully", "business_unit": _unit_to_dict(unit)}


@business_units_router.put("/business-units/{business_unit_id}/toggle-active")
async def toggle_business_unit(
    business_unit_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Activate or deactivate a business unit - admins only"""
    require_roles(current_user, ADMINISTRATORS, "Insufficient permissions")
    unit = await _get_unit_or_404(session, business_unit_id)

    unit.is_active = not unit.is_active
    await session.commit()

    return {
        "message": f"Business unit {'activated' if unit.is_active else 'deactivated'} successfully",
        "is_active": unit.is_active,
    }


@business_units_router.delete("/business-units/{business_unit_id}")
async def delete_business_unit(
    business_unit_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Delete a business unit - admin only, refused while it has departments or requests"""
    require_roles(current_user, {UserRole.ADMIN.value}, "Only administrators can delete business units")
    unit = await _get_unit_or_404(session, business_unit_id)

    if await _count(session, Department, Department.business_unit_id, business_unit_id):
        raise HTTPException(status_code=400, detail="Cannot delete business unit with existing departments")
    if await _count(session, MaterialRequest, MaterialRequest.business_unit_id, business_unit_id):
        raise HTTPException(status_code=400, detail="Cannot delete business unit with existing requests")

    await session.delete(unit)
    await session.commit()

    logger.info("Business unit %s deleted by %s", unit.code, current_user.id)
    return {"message": "Business unit deleted successfully"}


@business_units_router.post("/business-unit/switch")
async def switch_business_unit(
    switch_data: BusinessUnitSwitch,
    response: Response,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Remember the selected business unit in a cookie"""
    unit = await _get_unit_or_404(session, switch_data.business_unit_id)
    if not unit.is_active:
        raise HTTPException(status_code=400, detail="Business unit is not active")

    response.set_cookie(
        key=app_settings.business_unit_cookie,
        value=unit.id,
        max_age=app_settings.business_unit_cookie_max_age,
        httponly=True,
        secure=app_settings.cookie_secure,
        samesite="lax",
    )
    return {"success": True, "business_unit": _unit_to_dict(unit)}
