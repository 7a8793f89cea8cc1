from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from app.requests.domain.models import (
    REQUEST_STATUS_LABELS,
    AuditEntry,
    MaterialRequest,
    RequestStatus,
    UserSummary,
)
from app.requests.domain.workflow import available_actions


def _iso(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value else None


def _number(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def _user(user: Optional[UserSummary]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "role": user.role, "email": user.email}


def _status_label(status: str) -> str:
    try:
        return REQUEST_STATUS_LABELS[RequestStatus(status)]
    except ValueError:
        return status


def material_request_to_response(
    request: MaterialRequest,
    current_user: Optional[UserSummary] = None,
) -> Dict[str, Any]:
    response = {
        "id": request.id,
        "doc_no": request.doc_no,
        "series": request.series,
        "type": request.type,
        "status": request.status,
        "status_label": _status_label(request.status),
        "date_prepared": _iso(request.date_prepared),
        "date_required": _iso(request.date_required),
        "date_approved": _iso(request.date_approved),
        "date_posted": _iso(request.date_posted),
        "date_received": _iso(request.date_received),
        "date_revised": _iso(request.date_revised),
        "date_transmitted": _iso(request.date_transmitted),
        "business_unit_id": request.business_unit_id,
        "business_unit": (
            {"id": request.business_unit.id, "code": request.business_unit.code, "name": request.business_unit.name}
            if request.business_unit else None
        ),
        "department_id": request.department_id,
        "department": (
            {"id": request.department.id, "code": request.department.code, "name": request.department.name}
            if request.department else None
        ),
        "charge_to": request.charge_to,
        "purpose": request.purpose,
        "remarks": request.remarks,
        "deliver_to": request.deliver_to,
        "freight": _number(request.freight),
        "discount": _number(request.discount),
        "total": _number(request.total),
        "confirmation_no": request.confirmation_no,
        "supplier_bp_code": request.supplier_bp_code,
        "supplier_name": request.supplier_name,
        "purchase_order_number": request.purchase_order_number,
        "requested_by_id": request.requested_by_id,
        "requested_by": _user(request.requested_by),
        "rec_approver_id": request.rec_approver_id,
        "rec_approver": _user(request.rec_approver),
        "rec_approval_status": request.rec_approval_status,
        "rec_approval_date": _iso(request.rec_approval_date),
        "final_approver_id": request.final_approver_id,
        "final_approver": _user(request.final_approver),
        "final_approval_status": request.final_approval_status,
        "final_approval_date": _iso(request.final_approval_date),
        "items": [
            {
                "item_index": item.item_index,
                "item_code": item.item_code,
                "description": item.description,
                "uom": item.uom,
                "quantity": _number(item.quantity),
                "unit_price": _number(item.unit_price),
                "total_price": _number(item.total_price),
                "remarks": item.remarks,
            }
            for item in request.items
        ],
        "created_at": _iso(request.created_at),
        "updated_at": _iso(request.updated_at),
    }
    if current_user is not None:
        response["available_actions"] = [
            action.value for action in available_actions(request, current_user)
        ]
    return response


def audit_entry_to_response(entry: AuditEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "action": entry.action,
        "changes": entry.changes,
        "user_id": entry.user_id,
        "user_name": entry.user_name,
        "user_role": entry.user_role,
        "description": entry.description,
        "timestamp": _iso(entry.timestamp),
    }
