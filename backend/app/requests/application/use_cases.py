import dataclasses
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Sequence

from app.requests.application.ports import MaterialRequestRepository
from app.requests.domain.errors import InvalidRequest, NotFound, PermissionDenied
from app.requests.domain.models import (
    ApprovalStatus,
    AuditEntry,
    MaterialRequest,
    MaterialRequestItem,
    RequestFilters,
    RequestSeries,
    RequestStatus,
    RequestType,
    UserSummary,
    compute_total,
)
from app.requests.domain.numbering import next_doc_no, year_suffix
from app.requests.domain.roles import ADMINISTRATORS, COORDINATORS
from app.requests.domain.workflow import (
    DELETABLE_STATUSES,
    EDITABLE_STATUSES,
    WorkflowAction,
    authorize,
    require_actor,
)

logger = logging.getLogger(__name__)

ENTITY_TYPE = "material_request"


# ==================== COMMANDS & QUERIES ====================

@dataclass(frozen=True)
class MaterialItemInput:
    description: str
    uom: str
    quantity: Decimal
    item_code: Optional[str] = None
    unit_price: Optional[Decimal] = None
    remarks: Optional[str] = None
    is_new: bool = True


@dataclass(frozen=True)
class CreateMaterialRequestCommand:
    series: str
    type: str
    date_prepared: date
    date_required: date
    business_unit_id: str
    items: Sequence[MaterialItemInput]
    department_id: Optional[str] = None
    charge_to: Optional[str] = None
    purpose: Optional[str] = None
    remarks: Optional[str] = None
    deliver_to: Optional[str] = None
    freight: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")


@dataclass(frozen=True)
class UpdateMaterialRequestCommand:
    request_id: str
    type: str
    date_prepared: date
    date_required: date
    business_unit_id: str
    items: Sequence[MaterialItemInput]
    department_id: Optional[str] = None
    charge_to: Optional[str] = None
    purpose: Optional[str] = None
    remarks: Optional[str] = None
    deliver_to: Optional[str] = None
    freight: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")


@dataclass(frozen=True)
class ApprovalCommand:
    request_id: str
    decision: str
    remarks: Optional[str] = None


@dataclass(frozen=True)
class PostRequestCommand:
    request_id: str
    confirmation_no: Optional[str] = None


@dataclass(frozen=True)
class ReceiveRequestCommand:
    request_id: str
    supplier_bp_code: Optional[str] = None
    supplier_name: Optional[str] = None
    purchase_order_number: Optional[str] = None


@dataclass(frozen=True)
class ListMaterialRequestsQuery:
    status: Optional[str] = None
    business_unit_id: Optional[str] = None
    department_id: Optional[str] = None
    requested_by_id: Optional[str] = None
    type: Optional[str] = None
    search: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class CoordinatorQuery:
    view: str
    business_unit_id: Optional[str] = None
    search: Optional[str] = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class ApprovalResult:
    request: MaterialRequest
    auto_posted: bool = False


IdGenerator = Callable[[], str]
Clock = Callable[[], datetime]

# view name -> (statuses, ordering column)
COORDINATOR_VIEWS: Dict[str, tuple[tuple[str, ...], str]] = {
    "approved": ((RequestStatus.FINAL_APPROVED.value, RequestStatus.FOR_POSTING.value), "created_at"),
    "posted": ((RequestStatus.POSTED.value,), "date_posted"),
    "received": ((RequestStatus.RECEIVED.value,), "date_received"),
    "transmitted": ((RequestStatus.TRANSMITTED.value,), "date_transmitted"),
}


# ==================== VALIDATION HELPERS ====================

def _validate_choice(value: str, enum_cls, label: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidRequest(f"Invalid {label} '{value}'. Expected one of: {allowed}")


def _validate_items(items: Sequence[MaterialItemInput]) -> None:
    if not items:
        raise InvalidRequest("At least one item is required")

    for index, item in enumerate(items, start=1):
        if not item.description or not item.description.strip():
            raise InvalidRequest(f"Item {index}: description is required")
        if not item.uom or not item.uom.strip():
            raise InvalidRequest(f"Item {index}: unit of measurement is required")
        if item.quantity <= 0:
            raise InvalidRequest(f"Item {index}: quantity must be positive")
        if item.unit_price is not None and item.unit_price < 0:
            raise InvalidRequest(f"Item {index}: unit price cannot be negative")
        if not item.is_new and not (item.item_code and item.item_code.strip()):
            raise InvalidRequest(f"Item {index}: item code is required for existing items")


def _build_items(items: Sequence[MaterialItemInput]) -> list[MaterialRequestItem]:
    return [
        MaterialRequestItem(
            description=item.description.strip(),
            uom=item.uom.strip(),
            quantity=Decimal(item.quantity),
            unit_price=Decimal(item.unit_price) if item.unit_price is not None else None,
            item_code=(item.item_code or "").strip() or None,
            remarks=item.remarks or None,
            item_index=index,
        )
        for index, item in enumerate(items)
    ]


def _can_view(request: MaterialRequest, user: UserSummary) -> bool:
    if user.role in ADMINISTRATORS or user.role in COORDINATORS:
        return True
    return user.id in (
        request.requested_by_id,
        request.rec_approver_id,
        request.final_approver_id,
    )


def _owns_or_administers(request: MaterialRequest, user: UserSummary) -> bool:
    return request.requested_by_id == user.id or user.role in ADMINISTRATORS


# ==================== BASE ====================

class _RequestUseCase:
    def __init__(
        self,
        repository: MaterialRequestRepository,
        id_generator: IdGenerator,
        clock: Clock,
    ) -> None:
        self._repository = repository
        self._id_generator = id_generator
        self._clock = clock

    async def _load(self, request_id: str) -> MaterialRequest:
        request = await self._repository.get_request(request_id)
        if request is None:
            raise NotFound("Material request not found")
        return request

    async def _check_organization(self, business_unit_id: str, department_id: Optional[str]) -> None:
        business_unit = await self._repository.get_business_unit(business_unit_id)
        if business_unit is None or not business_unit.is_active:
            raise NotFound("Business unit not found")

        if department_id:
            department = await self._repository.get_department(department_id)
            if department is None or not department.is_active:
                raise NotFound("Department not found")
            if department.business_unit_id != business_unit_id:
                raise InvalidRequest("Department does not belong to the selected business unit")

    async def _audit(
        self,
        request: MaterialRequest,
        action: str,
        user: UserSummary,
        description: str,
        changes: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry = AuditEntry(
            id=self._id_generator(),
            entity_type=ENTITY_TYPE,
            entity_id=request.id,
            action=action,
            user_id=user.id,
            user_name=user.name,
            user_role=user.role,
            description=description,
            timestamp=self._clock(),
            changes=json.dumps(changes) if changes else None,
        )
        await self._repository.add_audit_entry(entry)

    async def _apply(
        self,
        request: MaterialRequest,
        action: WorkflowAction,
        user: UserSummary,
        description: str,
        remarks: Optional[str] = None,
        system: bool = False,
        **fields: Any,
    ) -> MaterialRequest:
        """Authorize and persist one workflow transition with its audit entry (no commit)."""
        rule = authorize(request, action, None if system else user)
        updated = dataclasses.replace(
            request,
            status=rule.to_status.value,
            updated_at=self._clock(),
            **fields,
        )
        await self._repository.save_request(updated)

        changes: Dict[str, Any] = {"from": request.status, "to": updated.status}
        if remarks:
            changes["remarks"] = remarks
        await self._audit(updated, action.value, user, description, changes)

        logger.info(
            "Material request %s: %s -> %s (%s by %s)",
            request.doc_no, request.status, updated.status, action.value, user.id,
        )
        return updated


# ==================== CRUD ====================

class CreateMaterialRequestUseCase(_RequestUseCase):
    def __init__(
        self,
        repository: MaterialRequestRepository,
        id_generator: IdGenerator,
        clock: Clock,
        doc_number_width: int = 5,
    ) -> None:
        super().__init__(repository, id_generator, clock)
        self._doc_number_width = doc_number_width

    async def execute(
        self,
        command: CreateMaterialRequestCommand,
        current_user: UserSummary,
    ) -> MaterialRequest:
        series = _validate_choice(command.series, RequestSeries, "series")
        request_type = _validate_choice(command.type, RequestType, "type")
        _validate_items(command.items)
        await self._check_organization(command.business_unit_id, command.department_id)

        now = self._clock()
        suffix = year_suffix(now)
        latest = await self._repository.get_latest_doc_no(series, suffix)
        doc_no = next_doc_no(series, suffix, latest, self._doc_number_width)

        items = _build_items(command.items)
        request = MaterialRequest(
            id=self._id_generator(),
            doc_no=doc_no,
            series=series,
            type=request_type,
            status=RequestStatus.DRAFT.value,
            date_prepared=command.date_prepared,
            date_required=command.date_required,
            business_unit_id=command.business_unit_id,
            department_id=command.department_id or None,
            requested_by_id=current_user.id,
            charge_to=command.charge_to or None,
            purpose=command.purpose or None,
            remarks=command.remarks or None,
            deliver_to=command.deliver_to or None,
            freight=Decimal(command.freight),
            discount=Decimal(command.discount),
            total=compute_total(items, Decimal(command.freight), Decimal(command.discount)),
            created_at=now,
            updated_at=now,
            items=items,
        )

        await self._repository.add_request(request)
        await self._audit(request, "create", current_user, f"Created material request {doc_no}")
        await self._repository.commit()

        logger.info("Material request %s created by %s", doc_no, current_user.id)
        return request


class UpdateMaterialRequestUseCase(_RequestUseCase):
    async def execute(
        self,
        command: UpdateMaterialRequestCommand,
        current_user: UserSummary,
    ) -> MaterialRequest:
        existing = await self._load(command.request_id)

        if not _owns_or_administers(existing, current_user):
            raise PermissionDenied("You can only edit your own requests")
        if existing.status not in EDITABLE_STATUSES:
            raise InvalidRequest("Cannot edit request in current status")

        request_type = _validate_choice(command.type, RequestType, "type")
        _validate_items(command.items)
        await self._check_organization(command.business_unit_id, command.department_id)

        now = self._clock()
        items = _build_items(command.items)
        updated = dataclasses.replace(
            existing,
            type=request_type,
            status=RequestStatus.DRAFT.value,
            date_prepared=command.date_prepared,
            date_required=command.date_required,
            business_unit_id=command.business_unit_id,
            department_id=command.department_id or None,
            charge_to=command.charge_to or None,
            purpose=command.purpose or None,
            remarks=command.remarks or None,
            deliver_to=command.deliver_to or None,
            freight=Decimal(command.freight),
            discount=Decimal(command.discount),
            total=compute_total(items, Decimal(command.freight), Decimal(command.discount)),
            date_revised=now,
            updated_at=now,
            items=items,
        )

        await self._repository.save_request(updated, replace_items=True)
        await self._audit(
            updated,
            "update",
            current_user,
            f"Updated material request {updated.doc_no}",
            {"from": existing.status, "to": updated.status},
        )
        await self._repository.commit()
        return updated


class DeleteMaterialRequestUseCase(_RequestUseCase):
    async def execute(self, request_id: str, current_user: UserSummary) -> None:
        existing = await self._load(request_id)

        if not _owns_or_administers(existing, current_user):
            raise PermissionDenied("You can only delete your own requests")
        if existing.status not in DELETABLE_STATUSES:
            raise InvalidRequest("Cannot delete request in current status")

        await self._repository.delete_request(existing.id)
        await self._audit(existing, "delete", current_user, f"Deleted material request {existing.doc_no}")
        await self._repository.commit()


class GetMaterialRequestUseCase(_RequestUseCase):
    async def execute(self, request_id: str, current_user: UserSummary) -> MaterialRequest:
        request = await self._load(request_id)
        if not _can_view(request, current_user):
            raise PermissionDenied("You are not authorized to view this request")
        return request


class GetRequestHistoryUseCase(_RequestUseCase):
    async def execute(self, request_id: str, current_user: UserSummary) -> Sequence[AuditEntry]:
        request = await self._load(request_id)
        if not _can_view(request, current_user):
            raise PermissionDenied("You are not authorized to view this request")
        return await self._repository.list_audit_entries(ENTITY_TYPE, request.id)


class NextDocumentNumberUseCase:
    def __init__(
        self,
        repository: MaterialRequestRepository,
        clock: Clock,
        doc_number_width: int = 5,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._doc_number_width = doc_number_width

    async def execute(self, series: str) -> str:
        series = _validate_choice(series, RequestSeries, "series")
        suffix = year_suffix(self._clock())
        latest = await self._repository.get_latest_doc_no(series, suffix)
        return next_doc_no(series, suffix, latest, self._doc_number_width)


# ==================== APPROVAL WORKFLOW ====================

def _decision(value: str) -> ApprovalStatus:
    decision = ApprovalStatus(_validate_choice(value, ApprovalStatus, "approval status"))
    if decision is ApprovalStatus.PENDING:
        raise InvalidRequest("Approval decision must be APPROVED or DISAPPROVED")
    return decision


class SubmitForApprovalUseCase(_RequestUseCase):
    async def execute(self, request_id: str, current_user: UserSummary) -> MaterialRequest:
        request = await self._load(request_id)
        authorize(request, WorkflowAction.SUBMIT, current_user)

        if not request.department_id:
            raise InvalidRequest("A department is required before submitting for approval")

        approver_ids = await self._repository.list_approver_ids(request.department_id, "recommending")
        if not approver_ids:
            raise InvalidRequest("No recommending approvers found for this department")

        updated = await self._apply(
            request,
            WorkflowAction.SUBMIT,
            current_user,
            f"Submitted material request {request.doc_no} for approval",
            rec_approver_id=approver_ids[0],
            rec_approval_status=ApprovalStatus.PENDING.value,
            rec_approval_date=None,
            final_approver_id=None,
            final_approval_status=None,
            final_approval_date=None,
        )
        await self._repository.commit()
        return updated


class ProcessRecommendingApprovalUseCase(_RequestUseCase):
    async def execute(self, command: ApprovalCommand, current_user: UserSummary) -> ApprovalResult:
        request = await self._load(command.request_id)
        require_actor(request, WorkflowAction.REC_APPROVE, current_user)
        decision = _decision(command.decision)
        now = self._clock()

        if decision is ApprovalStatus.DISAPPROVED:
            updated = await self._apply(
                request,
                WorkflowAction.REC_DISAPPROVE,
                current_user,
                f"Disapproved material request {request.doc_no} (recommending)",
                remarks=command.remarks,
                rec_approval_status=ApprovalStatus.DISAPPROVED.value,
                rec_approval_date=now,
            )
            await self._repository.commit()
            return ApprovalResult(request=updated)

        authorize(request, WorkflowAction.REC_APPROVE, current_user)
        final_ids: Sequence[str] = []
        if request.department_id:
            final_ids = await self._repository.list_approver_ids(request.department_id, "final")

        if final_ids:
            updated = await self._apply(
                request,
                WorkflowAction.REC_APPROVE,
                current_user,
                f"Recommended material request {request.doc_no} for final approval",
                remarks=command.remarks,
                rec_approval_status=ApprovalStatus.APPROVED.value,
                rec_approval_date=now,
                final_approver_id=final_ids[0],
                final_approval_status=ApprovalStatus.PENDING.value,
            )
        else:
            # Without a final approver the recommending approval is final
            updated = await self._apply(
                request,
                WorkflowAction.REC_APPROVE_FINAL,
                current_user,
                f"Approved material request {request.doc_no} (no final approver assigned)",
                remarks=command.remarks,
                rec_approval_status=ApprovalStatus.APPROVED.value,
                rec_approval_date=now,
                final_approver_id=current_user.id,
                final_approval_status=ApprovalStatus.APPROVED.value,
                final_approval_date=now,
                date_approved=now,
            )

        await self._repository.commit()
        return ApprovalResult(request=updated)


class ProcessFinalApprovalUseCase(_RequestUseCase):
    def __init__(
        self,
        repository: MaterialRequestRepository,
        id_generator: IdGenerator,
        clock: Clock,
        auto_post: bool = True,
    ) -> None:
        super().__init__(repository, id_generator, clock)
        self._auto_post = auto_post

    async def execute(self, command: ApprovalCommand, current_user: UserSummary) -> ApprovalResult:
        request = await self._load(command.request_id)
        require_actor(request, WorkflowAction.FINAL_APPROVE, current_user)
        decision = _decision(command.decision)
        now = self._clock()

        if decision is ApprovalStatus.DISAPPROVED:
            updated = await self._apply(
                request,
                WorkflowAction.FINAL_DISAPPROVE,
                current_user,
                f"Disapproved material request {request.doc_no} (final)",
                remarks=command.remarks,
                final_approval_status=ApprovalStatus.DISAPPROVED.value,
                final_approval_date=now,
            )
            await self._repository.commit()
            return ApprovalResult(request=updated)

        updated = await self._apply(
            request,
            WorkflowAction.FINAL_APPROVE,
            current_user,
            f"Final approved material request {request.doc_no}",
            remarks=command.remarks,
            final_approval_status=ApprovalStatus.APPROVED.value,
            final_approval_date=now,
            date_approved=now,
        )

        if self._auto_post:
            updated = await self._apply(
                updated,
                WorkflowAction.AUTO_POST,
                current_user,
                f"Automatically posted material request {request.doc_no}",
                system=True,
                date_posted=now,
            )

        await self._repository.commit()
        return ApprovalResult(request=updated, auto_posted=self._auto_post)


class RecallForEditUseCase(_RequestUseCase):
    async def execute(
        self,
        request_id: str,
        current_user: UserSummary,
        remarks: Optional[str] = None,
    ) -> MaterialRequest:
        request = await self._load(request_id)
        updated = await self._apply(
            request,
            WorkflowAction.RECALL,
            current_user,
            f"Recalled material request {request.doc_no} for editing",
            remarks=remarks,
        )
        await self._repository.commit()
        return updated


class CancelMaterialRequestUseCase(_RequestUseCase):
    async def execute(
        self,
        request_id: str,
        current_user: UserSummary,
        remarks: Optional[str] = None,
    ) -> MaterialRequest:
        request = await self._load(request_id)
        updated = await self._apply(
            request,
            WorkflowAction.CANCEL,
            current_user,
            f"Cancelled material request {request.doc_no}",
            remarks=remarks,
        )
        await self._repository.commit()
        return updated


# ==================== POSTING & FULFILMENT ====================

class MarkAsPostedUseCase(_RequestUseCase):
    async def execute(self, command: PostRequestCommand, current_user: UserSummary) -> MaterialRequest:
        request = await self._load(command.request_id)
        updated = await self._apply(
            request,
            WorkflowAction.POST,
            current_user,
            f"Posted material request {request.doc_no}",
            date_posted=self._clock(),
            confirmation_no=command.confirmation_no or None,
        )
        await self._repository.commit()
        return updated


class MarkAsReceivedUseCase(_RequestUseCase):
    async def execute(self, command: ReceiveRequestCommand, current_user: UserSummary) -> MaterialRequest:
        request = await self._load(command.request_id)
        updated = await self._apply(
            request,
            WorkflowAction.RECEIVE,
            current_user,
            f"Received material request {request.doc_no}",
            date_received=self._clock(),
            supplier_bp_code=command.supplier_bp_code or None,
            supplier_name=command.supplier_name or None,
            purchase_order_number=command.purchase_order_number or None,
        )
        await self._repository.commit()
        return updated


class MarkAsTransmittedUseCase(_RequestUseCase):
    async def execute(self, request_id: str, current_user: UserSummary) -> MaterialRequest:
        request = await self._load(request_id)
        updated = await self._apply(
            request,
            WorkflowAction.TRANSMIT,
            current_user,
            f"Transmitted material request {request.doc_no}",
            date_transmitted=self._clock(),
        )
        await self._repository.commit()
        return updated


# ==================== LISTINGS ====================

def _clamp(limit: int, offset: int, max_limit: int) -> tuple[int, int]:
    return max(1, min(limit, max_limit)), max(0, offset)


class ListMaterialRequestsUseCase:
    def __init__(
        self,
        repository: MaterialRequestRepository,
        max_limit: int = 200,
    ) -> None:
        self._repository = repository
        self._max_limit = max_limit

    async def execute(
        self,
        query: ListMaterialRequestsQuery,
        current_user: UserSummary,
    ) -> Sequence[MaterialRequest]:
        limit, offset = _clamp(query.limit, query.offset, self._max_limit)

        requested_by_id = query.requested_by_id
        # Regular users only ever see their own requests
        if current_user.role not in ADMINISTRATORS and current_user.role not in COORDINATORS:
            requested_by_id = current_user.id

        filters = RequestFilters(
            status=query.status,
            business_unit_id=query.business_unit_id,
            department_id=query.department_id,
            requested_by_id=requested_by_id,
            type=query.type,
            search=query.search,
            date_from=query.date_from,
            date_to=query.date_to,
            limit=limit,
            offset=offset,
        )
        return await self._repository.list_requests(filters)


class ListPendingApprovalsUseCase:
    def __init__(
        self,
        repository: MaterialRequestRepository,
        max_limit: int = 200,
    ) -> None:
        self._repository = repository
        self._max_limit = max_limit

    async def execute(
        self,
        current_user: UserSummary,
        business_unit_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[MaterialRequest]:
        limit, offset = _clamp(limit, offset, self._max_limit)
        filters = RequestFilters(
            pending_approver_id=current_user.id,
            business_unit_id=business_unit_id,
            limit=limit,
            offset=offset,
        )
        return await self._repository.list_requests(filters)


class ListCoordinatorRequestsUseCase:
    """Approved, posted, received and transmitted queues for MRS coordinators."""

    def __init__(
        self,
        repository: MaterialRequestRepository,
        max_limit: int = 200,
    ) -> None:
        self._repository = repository
        self._max_limit = max_limit

    async def execute(
        self,
        query: CoordinatorQuery,
        current_user: UserSummary,
    ) -> Sequence[MaterialRequest]:
        if current_user.role not in COORDINATORS:
            raise PermissionDenied("You don't have permission to view these requests")

        view = COORDINATOR_VIEWS.get(query.view)
        if view is None:
            raise InvalidRequest(f"Unknown view '{query.view}'")
        statuses, order_by = view

        limit, offset = _clamp(query.limit, query.offset, self._max_limit)
        filters = RequestFilters(
            statuses=statuses,
            business_unit_id=query.business_unit_id,
            search=query.search,
            order_by=order_by,
            limit=limit,
            offset=offset,
        )
        return await self._repository.list_requests(filters)
