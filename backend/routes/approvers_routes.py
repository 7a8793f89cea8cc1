"""
Approver Routes - recommending and final approvers per department
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
import logging
import uuid

from app.requests.domain.roles import ADMINISTRATORS, APPROVER_ELIGIBLE
from database import (
    get_postgres_session, ApproverType, BusinessUnit, Department,
    DepartmentApprover, User
)
from routes.auth_routes import get_current_user, require_roles

logger = logging.getLogger(__name__)

approvers_router = APIRouter(prefix="/api/approvers", tags=["Approvers"])


# ==================== PYDANTIC MODELS ====================

class ApproverAssign(BaseModel):
    department_id: str
    user_id: str
    approver_type: str


# ==================== HELPER FUNCTIONS ====================

def _approver_to_dict(approver: DepartmentApprover, user: Optional[User]) -> dict:
    return {
        "id": approver.id,
        "department_id": approver.department_id,
        "user_id": approver.user_id,
        "approver_type": approver.approver_type,
        "is_active": approver.is_active,
        "created_at": approver.created_at.isoformat() if approver.created_at else None,
        "user": (
            {"id": user.id, "name": user.name, "email": user.email, "role": user.role}
            if user else None
        ),
    }


async def _get_approver_or_404(session: AsyncSession, approver_id: str) -> DepartmentApprover:
    result = await session.execute(select(DepartmentApprover).where(DepartmentApprover.id == approver_id))
    approver = result.scalar_one_or_none()
    if not approver:
        raise HTTPException(status_code=404, detail="Approver not found")
    return approver


async def _approvers_by_department(session: AsyncSession, department_ids: list[str]) -> dict[str, list[dict]]:
    grouped: dict[str, list[dict]] = {}
    if not department_ids:
        return grouped

    result = await session.execute(
        select(DepartmentApprover, User)
        .join(User, User.id == DepartmentApprover.user_id)
        .where(DepartmentApprover.department_id.in_(department_ids))
        .order_by(DepartmentApprover.approver_type, DepartmentApprover.created_at.desc())
    )
    for approver, user in result.all():
        grouped.setdefault(approver.department_id, []).append(_approver_to_dict(approver, user))
    return grouped


# ==================== APPROVER ROUTES ====================

@approvers_router.get("/departments")
async def list_departments_with_approvers(
    business_unit_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Active departments with their assigned approvers"""
    query = (
        select(Department, BusinessUnit)
        .join(BusinessUnit, BusinessUnit.id == Department.business_unit_id)
        .where(Department.is_active == True)  # noqa: E712
        .order_by(BusinessUnit.name, Department.name)
    )
    if business_unit_id:
        query = query.where(Department.business_unit_id == business_unit_id)

    rows = (await session.execute(query)).all()
    approvers = await _approvers_by_department(session, [department.id for department, _ in rows])

    return [
        {
            "id": department.id,
            "code": department.code,
            "name": department.name,
            "business_unit": {"id": unit.id, "code": unit.code, "name": unit.name},
            "approvers": approvers.get(department.id, []),
        }
        for department, unit in rows
    ]


@approvers_router.get("/eligible-users")
async def list_eligible_users(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Active users whose role allows them to approve requests"""
    result = await session.execute(
        select(User)
        .where(User.role.in_(list(APPROVER_ELIGIBLE)), User.is_active == True)  # noqa: E712
        .order_by(User.first_name, User.last_name)
    )
    return [
        {"id": u.id, "name": u.name, "email": u.email, "role": u.role}
        for u in result.scalars().all()
    ]


@approvers_router.get("/departments/{department_id}")
async def list_department_approvers(
    department_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Approvers assigned to one department"""
    result = await session.execute(select(Department).where(Department.id == department_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Department not found")

    approvers = await _approvers_by_department(session, [department_id])
    return approvers.get(department_id, [])


@approvers_router.post("", status_code=201)
async def assign_approver(
    approver_data: ApproverAssign,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Assign a user as recommending or final approver of a department - admins only"""
    require_roles(current_user, ADMINISTRATORS, "Insufficient permissions")

    approver_type = approver_data.approver_type.lower()
    if approver_type not in {t.value for t in ApproverType}:
        raise HTTPException(status_code=400, detail="Approver type must be 'recommending' or 'final'")

    result = await session.execute(select(Department).where(Department.id == approver_data.department_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Department not found")

    result = await session.execute(select(User).where(User.id == approver_data.user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if user.role not in APPROVER_ELIGIBLE:
        raise HTTPException(status_code=400, detail="User's role cannot be assigned as an approver")

    result = await session.execute(
        select(DepartmentApprover).where(
            DepartmentApprover.department_id == approver_data.department_id,
            DepartmentApprover.user_id == approver_data.user_id,
            DepartmentApprover.approver_type == approver_type,
        )
    )
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=400,
            detail="User is already assigned as this type of approver for this department",
        )

    approver = DepartmentApprover(
        id=str(uuid.uuid4()),
        department_id=approver_data.department_id,
        user_id=approver_data.user_id,
        approver_type=approver_type,
        is_active=True,
    )
    session.add(approver)
    await session.commit()

    logger.info(
        "User %s assigned as %s approver of department %s by %s",
        user.id, approver_type, approver_data.department_id, current_user.id,
    )
    return {"message": "Approver assigned successfully", "approver": _approver_to_dict(approver, user)}


@approvers_router.delete("/{approver_id}")
async def remove_approver(
    approver_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Remove an approver assignment - admins only"""
    require_roles(current_user, ADMINISTRATORS, "Insufficient permissions")
    approver = await _get_approver_or_404(session, approver_id)

    await session.delete(approver)
    await session.commit()
    return {"message": "Approver removed successfully"}


@approvers_router.put("/{approver_id}/toggle-active")
async def toggle_approver(
    approver_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Activate or deactivate an approver assignment - admins only"""
    require_roles(current_user, ADMINISTRATORS, "Insufficient permissions")
    approver = await _get_approver_or_404(session, approver_id)

    approver.is_active = not approver.is_active
    await session.commit()

    return {
        "message": f"Approver {'activated' if approver.is_active else 'deactivated'} successfully",
        "is_active": approver.is_active,
    }
