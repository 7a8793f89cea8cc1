"""
Material Request Routes - CRUD, approval workflow and request queues
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import Awaitable, List, Optional, TypeVar
from datetime import date, datetime
from decimal import Decimal
import uuid

from app.config import app_settings
from app.requests.application.use_cases import (
    ApprovalCommand,
    CancelMaterialRequestUseCase,
    CoordinatorQuery,
    CreateMaterialRequestCommand,
    CreateMaterialRequestUseCase,
    DeleteMaterialRequestUseCase,
    GetMaterialRequestUseCase,
    GetRequestHistoryUseCase,
    ListCoordinatorRequestsUseCase,
    ListMaterialRequestsQuery,
    ListMaterialRequestsUseCase,
    ListPendingApprovalsUseCase,
    MarkAsPostedUseCase,
    MarkAsReceivedUseCase,
    MarkAsTransmittedUseCase,
    MaterialItemInput,
    NextDocumentNumberUseCase,
    PostRequestCommand,
    ProcessFinalApprovalUseCase,
    ProcessRecommendingApprovalUseCase,
    ReceiveRequestCommand,
    RecallForEditUseCase,
    SubmitForApprovalUseCase,
    UpdateMaterialRequestCommand,
    UpdateMaterialRequestUseCase,
)
from app.requests.application.ports import MaterialRequestRepository
from app.requests.domain.errors import DomainError
from app.requests.domain.models import MaterialRequest as MaterialRequestEntity
from app.requests.presentation.response_mapper import (
    audit_entry_to_response,
    material_request_to_response,
)
from database import User
from routes.auth_routes import (
    domain_error_to_http,
    get_current_user,
    get_request_repository,
    to_user_summary,
)

requests_router = APIRouter(prefix="/api/requests", tags=["Material Requests"])

T = TypeVar("T")


def _new_id() -> str:
    return str(uuid.uuid4())


# ==================== PYDANTIC MODELS ====================

class MaterialItemCreate(BaseModel):
    description: str
    uom: str
    quantity: Decimal
    item_code: Optional[str] = None
    unit_price: Optional[Decimal] = None
    remarks: Optional[str] = None
    is_new: bool = True

    def to_input(self) -> MaterialItemInput:
        return MaterialItemInput(
            description=self.description,
            uom=self.uom,
            quantity=self.quantity,
            item_code=self.item_code,
            unit_price=self.unit_price,
            remarks=self.remarks,
            is_new=self.is_new,
        )


class MaterialRequestBody(BaseModel):
    type: str
    date_prepared: date
    date_required: date
    business_unit_id: str
    items: List[MaterialItemCreate]
    department_id: Optional[str] = None
    charge_to: Optional[str] = None
    purpose: Optional[str] = None
    remarks: Optional[str] = None
    deliver_to: Optional[str] = None
    freight: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")


class MaterialRequestCreate(MaterialRequestBody):
    series: str


class ApprovalData(BaseModel):
    status: str
    remarks: Optional[str] = None


class PostData(BaseModel):
    confirmation_no: Optional[str] = None


class ReceiveData(BaseModel):
    supplier_bp_code: Optional[str] = None
    supplier_name: Optional[str] = None
    purchase_order_number: Optional[str] = None


class RemarksData(BaseModel):
    remarks: Optional[str] = None


# ==================== HELPER FUNCTIONS ====================

async def _execute(awaitable: Awaitable[T]) -> T:
    try:
        return await awaitable
    except DomainError as exc:
        raise domain_error_to_http(exc)


async def _respond(
    repository: MaterialRequestRepository,
    request: MaterialRequestEntity,
    current_user: User,
) -> dict:
    # Reload so related user/unit/department summaries reflect the saved state
    fresh = await repository.get_request(request.id) or request
    return material_request_to_response(fresh, to_user_summary(current_user))


# ==================== CRUD ====================

@requests_router.post("", status_code=201)
async def create_material_request(
    request_data: MaterialRequestCreate,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Create a new material request as DRAFT"""
    use_case = CreateMaterialRequestUseCase(
        repository=repository,
        id_generator=_new_id,
        clock=datetime.utcnow,
        doc_number_width=app_settings.doc_number_width,
    )
    command = CreateMaterialRequestCommand(
        series=request_data.series,
        type=request_data.type,
        date_prepared=request_data.date_prepared,
        date_required=request_data.date_required,
        business_unit_id=request_data.business_unit_id,
        department_id=request_data.department_id,
        items=[item.to_input() for item in request_data.items],
        charge_to=request_data.charge_to,
        purpose=request_data.purpose,
        remarks=request_data.remarks,
        deliver_to=request_data.deliver_to,
        freight=request_data.freight,
        discount=request_data.discount,
    )
    request = await _execute(use_case.execute(command, to_user_summary(current_user)))
    return await _respond(repository, request, current_user)


@requests_router.get("")
async def list_material_requests(
    status: Optional[str] = None,
    business_unit_id: Optional[str] = None,
    department_id: Optional[str] = None,
    requested_by_id: Optional[str] = None,
    type: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 50,
    offset: int = 0,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """List material requests; regular users only see their own"""
    use_case = ListMaterialRequestsUseCase(repository, max_limit=app_settings.max_list_limit)
    query = ListMaterialRequestsQuery(
        status=status,
        business_unit_id=business_unit_id,
        department_id=department_id,
        requested_by_id=requested_by_id,
        type=type,
        search=search,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    user = to_user_summary(current_user)
    requests = await _execute(use_case.execute(query, user))
    return [material_request_to_response(req, user) for req in requests]


@requests_router.get("/next-doc-number")
async def get_next_doc_number(
    series: str = "PO",
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Preview the document number the next request in a series would get"""
    use_case = NextDocumentNumberUseCase(
        repository,
        clock=datetime.utcnow,
        doc_number_width=app_settings.doc_number_width,
    )
    doc_no = await _execute(use_case.execute(series))
    return {"series": series, "doc_no": doc_no}


@requests_router.get("/pending-approvals")
async def list_pending_approvals(
    business_unit_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Requests waiting on the current user's recommending or final approval"""
    use_case = ListPendingApprovalsUseCase(repository, max_limit=app_settings.max_list_limit)
    user = to_user_summary(current_user)
    requests = await _execute(use_case.execute(user, business_unit_id, limit, offset))
    return [material_request_to_response(req, user) for req in requests]


@requests_router.get("/coordinator/{view}")
async def list_coordinator_requests(
    view: str,
    business_unit_id: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Approved, posted, received or transmitted requests for coordinators"""
    use_case = ListCoordinatorRequestsUseCase(repository, max_limit=app_settings.max_list_limit)
    query = CoordinatorQuery(
        view=view,
        business_unit_id=business_unit_id,
        search=search,
        limit=limit,
        offset=offset,
    )
    user = to_user_summary(current_user)
    requests = await _execute(use_case.execute(query, user))
    return [material_request_to_response(req, user) for req in requests]


@requests_router.get("/{request_id}")
async def get_material_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Get a single material request"""
    use_case = GetMaterialRequestUseCase(repository, _new_id, datetime.utcnow)
    user = to_user_summary(current_user)
    request = await _execute(use_case.execute(request_id, user))
    return material_request_to_response(request, user)


@requests_router.put("/{request_id}")
async def update_material_request(
    request_id: str,
    request_data: MaterialRequestBody,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Update a DRAFT or FOR_EDIT request; it returns to DRAFT"""
    use_case = UpdateMaterialRequestUseCase(repository, _new_id, datetime.utcnow)
    command = UpdateMaterialRequestCommand(
        request_id=request_id,
        type=request_data.type,
        date_prepared=request_data.date_prepared,
        date_required=request_data.date_required,
        business_unit_id=request_data.business_unit_id,
        department_id=request_data.department_id,
        items=[item.to_input() for item in request_data.items],
        charge_to=request_data.charge_to,
        purpose=request_data.purpose,
        remarks=request_data.remarks,
        deliver_to=request_data.deliver_to,
        freight=request_data.freight,
        discount=request_data.discount,
    )
    request = await _execute(use_case.execute(command, to_user_summary(current_user)))
    return await _respond(repository, request, current_user)


@requests_router.delete("/{request_id}")
async def delete_material_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Delete a DRAFT request"""
    use_case = DeleteMaterialRequestUseCase(repository, _new_id, datetime.utcnow)
    await _execute(use_case.execute(request_id, to_user_summary(current_user)))
    return {"message": "Material request deleted successfully"}


@requests_router.get("/{request_id}/history")
async def get_request_history(
    request_id: str,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Audit trail of a request, oldest first"""
    use_case = GetRequestHistoryUseCase(repository, _new_id, datetime.utcnow)
    entries = await _execute(use_case.execute(request_id, to_user_summary(current_user)))
    return [audit_entry_to_response(entry) for entry in entries]


# ==================== WORKFLOW ====================

@requests_router.post("/{request_id}/submit")
async def submit_for_approval(
    request_id: str,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Send a DRAFT request to the department's recommending approver"""
    use_case = SubmitForApprovalUseCase(repository, _new_id, datetime.utcnow)
    request = await _execute(use_case.execute(request_id, to_user_summary(current_user)))
    return {
        "message": "Material request submitted for approval",
        "request": await _respond(repository, request, current_user),
    }


@requests_router.post("/{request_id}/recommending-approval")
async def process_recommending_approval(
    request_id: str,
    approval_data: ApprovalData,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Approve or disapprove as the recommending approver"""
    use_case = ProcessRecommendingApprovalUseCase(repository, _new_id, datetime.utcnow)
    command = ApprovalCommand(
        request_id=request_id,
        decision=approval_data.status,
        remarks=approval_data.remarks,
    )
    result = await _execute(use_case.execute(command, to_user_summary(current_user)))
    approved = approval_data.status.upper() == "APPROVED"
    return {
        "message": f"Request {'approved' if approved else 'disapproved'} successfully",
        "request": await _respond(repository, result.request, current_user),
    }


@requests_router.post("/{request_id}/final-approval")
async def process_final_approval(
    request_id: str,
    approval_data: ApprovalData,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Approve or disapprove as the final approver; approval may auto-post"""
    use_case = ProcessFinalApprovalUseCase(
        repository,
        _new_id,
        datetime.utcnow,
        auto_post=app_settings.auto_post_on_final_approval,
    )
    command = ApprovalCommand(
        request_id=request_id,
        decision=approval_data.status,
        remarks=approval_data.remarks,
    )
    result = await _execute(use_case.execute(command, to_user_summary(current_user)))

    if result.auto_posted:
        message = "Request approved and posted successfully"
    elif approval_data.status.upper() == "APPROVED":
        message = "Request approved successfully"
    else:
        message = "Request disapproved successfully"
    return {
        "message": message,
        "auto_posted": result.auto_posted,
        "request": await _respond(repository, result.request, current_user),
    }


@requests_router.post("/{request_id}/post")
async def mark_as_posted(
    request_id: str,
    post_data: Optional[PostData] = None,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Mark a final-approved request as posted"""
    use_case = MarkAsPostedUseCase(repository, _new_id, datetime.utcnow)
    post_data = post_data or PostData()
    command = PostRequestCommand(request_id=request_id, confirmation_no=post_data.confirmation_no)
    request = await _execute(use_case.execute(command, to_user_summary(current_user)))
    return {
        "message": "Request marked as posted",
        "request": await _respond(repository, request, current_user),
    }


@requests_router.post("/{request_id}/receive")
async def mark_as_received(
    request_id: str,
    receive_data: Optional[ReceiveData] = None,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Mark a posted request as received"""
    use_case = MarkAsReceivedUseCase(repository, _new_id, datetime.utcnow)
    receive_data = receive_data or ReceiveData()
    command = ReceiveRequestCommand(
        request_id=request_id,
        supplier_bp_code=receive_data.supplier_bp_code,
        supplier_name=receive_data.supplier_name,
        purchase_order_number=receive_data.purchase_order_number,
    )
    request = await _execute(use_case.execute(command, to_user_summary(current_user)))
    return {
        "message": "Request marked as received",
        "request": await _respond(repository, request, current_user),
    }


@requests_router.post("/{request_id}/transmit")
async def mark_as_transmitted(
    request_id: str,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Mark a received request as transmitted"""
    use_case = MarkAsTransmittedUseCase(repository, _new_id, datetime.utcnow)
    request = await _execute(use_case.execute(request_id, to_user_summary(current_user)))
    return {
        "message": "Request marked as transmitted",
        "request": await _respond(repository, request, current_user),
    }


@requests_router.post("/{request_id}/recall")
async def recall_for_edit(
    request_id: str,
    remarks_data: Optional[RemarksData] = None,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Pull a request back from approval (or after disapproval) for editing"""
    use_case = RecallForEditUseCase(repository, _new_id, datetime.utcnow)
    remarks_data = remarks_data or RemarksData()
    request = await _execute(
        use_case.execute(request_id, to_user_summary(current_user), remarks_data.remarks)
    )
    return {
        "message": "Request returned for editing",
        "request": await _respond(repository, request, current_user),
    }


@requests_router.post("/{request_id}/cancel")
async def cancel_material_request(
    request_id: str,
    remarks_data: Optional[RemarksData] = None,
    current_user: User = Depends(get_current_user),
    repository: MaterialRequestRepository = Depends(get_request_repository)
):
    """Cancel a request that has not entered approval"""
    use_case = CancelMaterialRequestUseCase(repository, _new_id, datetime.utcnow)
    remarks_data = remarks_data or RemarksData()
    request = await _execute(
        use_case.execute(request_id, to_user_summary(current_user), remarks_data.remarks)
    )
    return {
        "message": "Request cancelled",
        "request": await _respond(repository, request, current_user),
    }
