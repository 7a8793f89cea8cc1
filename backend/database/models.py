"""
PostgreSQL Database Models - SQLAlchemy ORM
All tables for the Material Request Management System
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import (
    Integer, String, Text, Date, DateTime, Boolean, Numeric,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
import uuid as uuid_lib
import enum

from app.requests.domain.roles import UserRole  # noqa: F401

from .connection import Base


# ==================== ENUMS ====================

class ApproverType(str, enum.Enum):
    RECOMMENDING = "recommending"
    FINAL = "final"


def _uuid() -> str:
    return str(uuid_lib.uuid4())


# ==================== ORGANIZATION MODELS ====================

class BusinessUnit(Base):
    """Business unit - top-level scope for departments and requests"""
    __tablename__ = "business_units"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Department(Base):
    """Department - belongs to a business unit, owns approver assignments"""
    __tablename__ = "departments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    business_unit_id: Mapped[str] = mapped_column(String(36), ForeignKey("business_units.id"), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ==================== USER MODEL ====================

class User(Base):
    """User table - stores all system users"""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_no: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    department_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("departments.id"), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class DepartmentApprover(Base):
    """Approver assignment - a user acting as recommending or final approver for a department"""
    __tablename__ = "department_approvers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    department_id: Mapped[str] = mapped_column(String(36), ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('department_id', 'user_id', 'approver_type', name='uq_department_approver'),
        Index('idx_approvers_department_type', 'department_id', 'approver_type', 'is_active'),
    )


# ==================== MATERIAL REQUEST MODELS ====================

class MaterialRequest(Base):
    """Material request - main request table"""
    __tablename__ = "material_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    doc_no: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    series: Mapped[str] = mapped_column(String(5), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="DRAFT", index=True)
    date_prepared: Mapped[date] = mapped_column(Date, nullable=False)
    date_required: Mapped[date] = mapped_column(Date, nullable=False)
    date_approved: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    date_posted: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    date_received: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    date_revised: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    date_transmitted: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    business_unit_id: Mapped[str] = mapped_column(String(36), ForeignKey("business_units.id"), nullable=False, index=True)
    department_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("departments.id"), nullable=True, index=True)
    charge_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    purpose: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deliver_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    freight: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    confirmation_no: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    supplier_bp_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    supplier_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    purchase_order_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    requested_by_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    rec_approver_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    rec_approval_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    rec_approval_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    final_approver_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    final_approval_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    final_approval_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_requests_status_created_at', 'status', 'created_at'),
        Index('idx_requests_series_doc_no', 'series', 'doc_no'),
        Index('idx_requests_bu_status', 'business_unit_id', 'status', 'created_at'),
        Index('idx_requests_rec_approver_status', 'rec_approver_id', 'status'),
        Index('idx_requests_final_approver_status', 'final_approver_id', 'status'),
    )


class MaterialRequestItem(Base):
    """Material request items - individual lines in a request"""
    __tablename__ = "material_request_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    material_request_id: Mapped[str] = mapped_column(String(36), ForeignKey("material_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    item_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # null for new items
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    uom: Mapped[str] = mapped_column(String(30), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    total_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    item_index: Mapped[int] = mapped_column(Integer, default=0)  # Order in the request


# ==================== AUDIT LOG ====================

class AuditLog(Base):
    """Audit log - one row per state-changing action"""
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    changes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON as text
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_role: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id', 'timestamp'),
    )
