"""
Dashboard Routes - per business unit request statistics
"""
from fastapi import APIRouter, HTTPException, Depends
from typing import Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import and_, desc, func, or_

from app.requests.domain.models import ApprovalStatus, RequestStatus
from app.requests.domain.workflow import OPEN_STATUSES
from database import get_postgres_session, BusinessUnit, MaterialRequest, User
from routes.auth_routes import get_current_user

dashboard_router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])

RECENT_LIMIT = 5


def status_distribution(status_counts: Dict[str, int]) -> List[dict]:
    """Count and whole-number percentage per status, largest first."""
    total = sum(status_counts.values())
    return [
        {
            "status": status,
            "count": count,
            "percentage": round(count / total * 100) if total else 0,
        }
        for status, count in sorted(status_counts.items(), key=lambda pair: (-pair[1], pair[0]))
    ]


def _recent_to_dict(request: MaterialRequest, requester: User) -> dict:
    return {
        "id": request.id,
        "doc_no": request.doc_no,
        "type": request.type,
        "status": request.status,
        "date_prepared": request.date_prepared.isoformat() if request.date_prepared else None,
        "total": float(request.total or 0),
        "requested_by": {"first_name": requester.first_name, "last_name": requester.last_name},
    }


async def _recent(session: AsyncSession, *conditions) -> List[dict]:
    result = await session.execute(
        select(MaterialRequest, User)
        .join(User, User.id == MaterialRequest.requested_by_id)
        .where(*conditions)
        .order_by(desc(MaterialRequest.created_at))
        .limit(RECENT_LIMIT)
    )
    return [_recent_to_dict(request, requester) for request, requester in result.all()]


@dashboard_router.get("/{business_unit_id}")
async def get_dashboard(
    business_unit_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Request statistics of a business unit, plus the caller's own numbers"""
    result = await session.execute(select(BusinessUnit).where(BusinessUnit.id == business_unit_id))
    unit = result.scalar_one_or_none()
    if unit is None:
        raise HTTPException(status_code=404, detail="Business unit not found")

    in_unit = MaterialRequest.business_unit_id == business_unit_id
    mine = MaterialRequest.requested_by_id == current_user.id

    result = await session.execute(
        select(MaterialRequest.status, func.count(), func.coalesce(func.sum(MaterialRequest.total), 0))
        .where(in_unit)
        .group_by(MaterialRequest.status)
    )
    status_counts: Dict[str, int] = {}
    total_amount = 0.0
    for status, count, amount in result.all():
        status_counts[status] = count
        total_amount += float(amount)

    result = await session.execute(
        select(MaterialRequest.status, func.count())
        .where(in_unit, mine)
        .group_by(MaterialRequest.status)
    )
    my_counts = dict(result.all())
    open_values = {status.value for status in OPEN_STATUSES}

    result = await session.execute(
        select(func.count()).select_from(MaterialRequest).where(
            in_unit,
            or_(
                and_(
                    MaterialRequest.rec_approver_id == current_user.id,
                    MaterialRequest.status == RequestStatus.FOR_REC_APPROVAL.value,
                    MaterialRequest.rec_approval_status == ApprovalStatus.PENDING.value,
                ),
                and_(
                    MaterialRequest.final_approver_id == current_user.id,
                    MaterialRequest.status == RequestStatus.FOR_FINAL_APPROVAL.value,
                    MaterialRequest.final_approval_status == ApprovalStatus.PENDING.value,
                ),
            ),
        )
    )
    pending_approvals = result.scalar() or 0

    stats = {
        "total_requests": sum(status_counts.values()),
        "pending_approvals": pending_approvals,
        "approved_requests": status_counts.get(RequestStatus.FINAL_APPROVED.value, 0),
        "posted_requests": status_counts.get(RequestStatus.POSTED.value, 0),
        "done_requests": status_counts.get(RequestStatus.RECEIVED.value, 0),
        "my_requests": sum(my_counts.values()),
        "my_pending_requests": sum(count for status, count in my_counts.items() if status in open_values),
        "total_amount": round(total_amount, 2),
    }

    return {
        "business_unit": {"id": unit.id, "code": unit.code, "name": unit.name},
        "stats": stats,
        "status_distribution": status_distribution(status_counts),
        "recent_requests": await _recent(session, in_unit),
        "my_recent_requests": await _recent(session, in_unit, mine),
    }
