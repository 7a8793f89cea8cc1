"""
Audit Log Routes - read-only access to the audit trail
"""
from fastapi import APIRouter, Depends
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import desc

from app.config import app_settings
from app.requests.domain.roles import ADMINISTRATORS
from database import get_postgres_session, AuditLog, User
from routes.auth_routes import get_current_user, require_roles

audit_router = APIRouter(prefix="/api", tags=["Audit"])


@audit_router.get("/audit-logs")
async def list_audit_logs(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get audit logs, newest first - admins only"""
    require_roles(current_user, ADMINISTRATORS, "Only administrators can view audit logs")

    limit = max(1, min(limit, app_settings.max_list_limit))
    offset = max(0, offset)

    query = select(AuditLog)
    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)
    if user_id:
        query = query.where(AuditLog.user_id == user_id)
    if action:
        query = query.where(AuditLog.action == action)

    query = query.order_by(desc(AuditLog.timestamp)).limit(limit).offset(offset)
    result = await session.execute(query)

    return [
        {
            "id": log.id,
            "entity_type": log.entity_type,
            "entity_id": log.entity_id,
            "action": log.action,
            "changes": log.changes,
            "user_id": log.user_id,
            "user_name": log.user_name,
            "user_role": log.user_role,
            "description": log.description,
            "timestamp": log.timestamp.isoformat() if log.timestamp else None,
        }
        for log in result.scalars().all()
    ]
