from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence


class RequestStatus(str, Enum):
    DRAFT = "DRAFT"
    FOR_REC_APPROVAL = "FOR_REC_APPROVAL"
    REC_APPROVED = "REC_APPROVED"
    FOR_FINAL_APPROVAL = "FOR_FINAL_APPROVAL"
    FINAL_APPROVED = "FINAL_APPROVED"
    FOR_POSTING = "FOR_POSTING"
    POSTED = "POSTED"
    RECEIVED = "RECEIVED"
    TRANSMITTED = "TRANSMITTED"
    CANCELLED = "CANCELLED"
    DISAPPROVED = "DISAPPROVED"
    FOR_EDIT = "FOR_EDIT"


class RequestType(str, Enum):
    ITEM = "ITEM"
    SERVICE = "SERVICE"


class RequestSeries(str, Enum):
    PO = "PO"
    JO = "JO"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DISAPPROVED = "DISAPPROVED"


REQUEST_STATUS_LABELS = {
    RequestStatus.DRAFT: "Draft",
    RequestStatus.FOR_REC_APPROVAL: "For Recommending Approval",
    RequestStatus.REC_APPROVED: "Recommending Approved",
    RequestStatus.FOR_FINAL_APPROVAL: "For Final Approval",
    RequestStatus.FINAL_APPROVED: "Final Approved",
    RequestStatus.FOR_POSTING: "For Posting",
    RequestStatus.POSTED: "Posted",
    RequestStatus.RECEIVED: "Done",
    RequestStatus.TRANSMITTED: "Transmitted",
    RequestStatus.CANCELLED: "Cancelled",
    RequestStatus.DISAPPROVED: "Disapproved",
    RequestStatus.FOR_EDIT: "For Edit",
}


@dataclass(frozen=True)
class UserSummary:
    id: str
    name: str
    role: str
    email: Optional[str] = None
    department_id: Optional[str] = None


@dataclass(frozen=True)
class UnitSummary:
    id: str
    code: str
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class DepartmentSummary:
    id: str
    code: str
    name: str
    business_unit_id: str
    is_active: bool = True


@dataclass(frozen=True)
class MaterialRequestItem:
    description: str
    uom: str
    quantity: Decimal
    item_index: int
    item_code: Optional[str] = None
    unit_price: Optional[Decimal] = None
    remarks: Optional[str] = None

    @property
    def total_price(self) -> Optional[Decimal]:
        if self.unit_price is None:
            return None
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class MaterialRequest:
    id: str
    doc_no: str
    series: str
    type: str
    status: str
    date_prepared: date
    date_required: date
    business_unit_id: str
    requested_by_id: str
    created_at: datetime
    updated_at: datetime
    department_id: Optional[str] = None
    charge_to: Optional[str] = None
    purpose: Optional[str] = None
    remarks: Optional[str] = None
    deliver_to: Optional[str] = None
    freight: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    confirmation_no: Optional[str] = None
    supplier_bp_code: Optional[str] = None
    supplier_name: Optional[str] = None
    purchase_order_number: Optional[str] = None
    rec_approver_id: Optional[str] = None
    rec_approval_status: Optional[str] = None
    rec_approval_date: Optional[datetime] = None
    final_approver_id: Optional[str] = None
    final_approval_status: Optional[str] = None
    final_approval_date: Optional[datetime] = None
    date_approved: Optional[datetime] = None
    date_posted: Optional[datetime] = None
    date_received: Optional[datetime] = None
    date_revised: Optional[datetime] = None
    date_transmitted: Optional[datetime] = None
    items: Sequence[MaterialRequestItem] = field(default_factory=list)
    business_unit: Optional[UnitSummary] = None
    department: Optional[DepartmentSummary] = None
    requested_by: Optional[UserSummary] = None
    rec_approver: Optional[UserSummary] = None
    final_approver: Optional[UserSummary] = None


@dataclass(frozen=True)
class AuditEntry:
    id: str
    entity_type: str
    entity_id: str
    action: str
    user_id: str
    user_name: str
    user_role: str
    description: str
    timestamp: datetime
    changes: Optional[str] = None


@dataclass(frozen=True)
class RequestFilters:
    status: Optional[str] = None
    statuses: Optional[Sequence[str]] = None
    business_unit_id: Optional[str] = None
    department_id: Optional[str] = None
    requested_by_id: Optional[str] = None
    type: Optional[str] = None
    search: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    pending_approver_id: Optional[str] = None
    order_by: str = "created_at"
    limit: int = 50
    offset: int = 0


def compute_total(
    items: Sequence[MaterialRequestItem],
    freight: Decimal,
    discount: Decimal,
) -> Decimal:
    """Request total: sum of line totals (unpriced lines count as zero) plus freight minus discount."""
    lines = sum((item.total_price or Decimal("0") for item in items), Decimal("0"))
    return lines + freight - discount
