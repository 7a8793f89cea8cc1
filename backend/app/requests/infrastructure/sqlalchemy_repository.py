import uuid
from typing import Iterable, Optional, Sequence

from sqlalchemy import and_, delete, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.requests.application.ports import MaterialRequestRepository
from app.requests.domain.models import (
    AuditEntry,
    DepartmentSummary,
    MaterialRequest,
    MaterialRequestItem,
    RequestFilters,
    RequestStatus,
    UnitSummary,
    UserSummary,
)
from database import (
    AuditLog,
    BusinessUnit,
    Department,
    DepartmentApprover,
    MaterialRequest as MaterialRequestModel,
    MaterialRequestItem as MaterialRequestItemModel,
    User,
)

# Columns copied one-to-one between the domain dataclass and the ORM row
_REQUEST_COLUMNS = (
    "doc_no", "series", "type", "status",
    "date_prepared", "date_required",
    "date_approved", "date_posted", "date_received", "date_revised", "date_transmitted",
    "business_unit_id", "department_id", "charge_to", "purpose", "remarks", "deliver_to",
    "freight", "discount", "total",
    "confirmation_no", "supplier_bp_code", "supplier_name", "purchase_order_number",
    "requested_by_id",
    "rec_approver_id", "rec_approval_status", "rec_approval_date",
    "final_approver_id", "final_approval_status", "final_approval_date",
    "created_at", "updated_at",
)

_ORDERABLE = {"created_at", "updated_at", "date_posted", "date_received", "date_transmitted", "date_approved"}


def _user_summary(user: User) -> UserSummary:
    return UserSummary(
        id=user.id,
        name=user.name,
        role=user.role,
        email=user.email,
        department_id=user.department_id,
    )


def _unit_summary(unit: BusinessUnit) -> UnitSummary:
    return UnitSummary(id=unit.id, code=unit.code, name=unit.name, is_active=unit.is_active)


def _department_summary(department: Department) -> DepartmentSummary:
    return DepartmentSummary(
        id=department.id,
        code=department.code,
        name=department.name,
        business_unit_id=department.business_unit_id,
        is_active=department.is_active,
    )


class SqlAlchemyMaterialRequestRepository(MaterialRequestRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ==================== LOOKUPS ====================

    async def get_business_unit(self, business_unit_id: str) -> Optional[UnitSummary]:
        result = await self._session.execute(
            select(BusinessUnit).where(BusinessUnit.id == business_unit_id)
        )
        unit = result.scalar_one_or_none()
        if unit is None:
            return None
        return _unit_summary(unit)

    async def get_department(self, department_id: str) -> Optional[DepartmentSummary]:
        result = await self._session.execute(
            select(Department).where(Department.id == department_id)
        )
        department = result.scalar_one_or_none()
        if department is None:
            return None
        return _department_summary(department)

    async def list_approver_ids(self, department_id: str, approver_type: str) -> Sequence[str]:
        result = await self._session.execute(
            select(DepartmentApprover.user_id)
            .join(User, User.id == DepartmentApprover.user_id)
            .where(
                DepartmentApprover.department_id == department_id,
                DepartmentApprover.approver_type == approver_type,
                DepartmentApprover.is_active == True,  # noqa: E712
                User.is_active == True,  # noqa: E712
            )
            .order_by(DepartmentApprover.created_at)
        )
        return list(result.scalars().all())

    async def get_latest_doc_no(self, series: str, year_suffix: str) -> Optional[str]:
        result = await self._session.execute(
            select(MaterialRequestModel.doc_no)
            .where(
                MaterialRequestModel.series == series,
                MaterialRequestModel.doc_no.like(f"{series}-{year_suffix}-%"),
            )
            # Same prefix: a longer number is a larger one
            .order_by(desc(func.length(MaterialRequestModel.doc_no)), desc(MaterialRequestModel.doc_no))
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ==================== REQUESTS ====================

    async def get_request(self, request_id: str) -> Optional[MaterialRequest]:
        result = await self._session.execute(
            select(MaterialRequestModel).where(MaterialRequestModel.id == request_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        requests = await self._hydrate([row])
        return requests[0]

    async def add_request(self, request: MaterialRequest) -> None:
        row = MaterialRequestModel(id=request.id)
        for column in _REQUEST_COLUMNS:
            setattr(row, column, getattr(request, column))
        self._session.add(row)
        self._add_items(request.id, request.items)

    async def save_request(self, request: MaterialRequest, replace_items: bool = False) -> None:
        row = await self._session.get(MaterialRequestModel, request.id)
        if row is None:
            await self.add_request(request)
            return

        for column in _REQUEST_COLUMNS:
            setattr(row, column, getattr(request, column))

        if replace_items:
            await self._session.execute(
                delete(MaterialRequestItemModel).where(
                    MaterialRequestItemModel.material_request_id == request.id
                )
            )
            self._add_items(request.id, request.items)

    async def delete_request(self, request_id: str) -> None:
        await self._session.execute(
            delete(MaterialRequestItemModel).where(
                MaterialRequestItemModel.material_request_id == request_id
            )
        )
        await self._session.execute(
            delete(MaterialRequestModel).where(MaterialRequestModel.id == request_id)
        )

    async def list_requests(self, filters: RequestFilters) -> Sequence[MaterialRequest]:
        query = select(MaterialRequestModel)

        if filters.status:
            query = query.where(MaterialRequestModel.status == filters.status)
        if filters.statuses:
            query = query.where(MaterialRequestModel.status.in_(list(filters.statuses)))
        if filters.business_unit_id:
            query = query.where(MaterialRequestModel.business_unit_id == filters.business_unit_id)
        if filters.department_id:
            query = query.where(MaterialRequestModel.department_id == filters.department_id)
        if filters.requested_by_id:
            query = query.where(MaterialRequestModel.requested_by_id == filters.requested_by_id)
        if filters.type:
            query = query.where(MaterialRequestModel.type == filters.type)
        if filters.date_from:
            query = query.where(MaterialRequestModel.date_prepared >= filters.date_from)
        if filters.date_to:
            query = query.where(MaterialRequestModel.date_prepared <= filters.date_to)

        if filters.pending_approver_id:
            approver_id = filters.pending_approver_id
            query = query.where(
                or_(
                    and_(
                        MaterialRequestModel.rec_approver_id == approver_id,
                        MaterialRequestModel.status == RequestStatus.FOR_REC_APPROVAL.value,
                        MaterialRequestModel.rec_approval_status == "PENDING",
                    ),
                    and_(
                        MaterialRequestModel.final_approver_id == approver_id,
                        MaterialRequestModel.status == RequestStatus.FOR_FINAL_APPROVAL.value,
                        MaterialRequestModel.final_approval_status == "PENDING",
                    ),
                )
            )

        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.join(User, User.id == MaterialRequestModel.requested_by_id).where(
                or_(
                    MaterialRequestModel.doc_no.ilike(pattern),
                    MaterialRequestModel.purpose.ilike(pattern),
                    MaterialRequestModel.confirmation_no.ilike(pattern),
                    User.first_name.ilike(pattern),
                    User.last_name.ilike(pattern),
                )
            )

        order_column = filters.order_by if filters.order_by in _ORDERABLE else "created_at"
        query = query.order_by(
            desc(getattr(MaterialRequestModel, order_column)),
            desc(MaterialRequestModel.created_at),
        )
        query = query.limit(filters.limit).offset(filters.offset)

        result = await self._session.execute(query)
        return await self._hydrate(result.scalars().all())

    # ==================== AUDIT ====================

    async def add_audit_entry(self, entry: AuditEntry) -> None:
        audit_log = AuditLog(
            id=entry.id,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            action=entry.action,
            changes=entry.changes,
            user_id=entry.user_id,
            user_name=entry.user_name,
            user_role=entry.user_role,
            description=entry.description,
            timestamp=entry.timestamp,
        )
        self._session.add(audit_log)

    async def list_audit_entries(self, entity_type: str, entity_id: str) -> Sequence[AuditEntry]:
        result = await self._session.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.timestamp)
        )
        return [
            AuditEntry(
                id=log.id,
                entity_type=log.entity_type,
                entity_id=log.entity_id,
                action=log.action,
                user_id=log.user_id,
                user_name=log.user_name,
                user_role=log.user_role,
                description=log.description or "",
                timestamp=log.timestamp,
                changes=log.changes,
            )
            for log in result.scalars().all()
        ]

    async def commit(self) -> None:
        await self._session.commit()

    # ==================== HELPERS ====================

    def _add_items(self, request_id: str, items: Iterable[MaterialRequestItem]) -> None:
        for item in items:
            self._session.add(
                MaterialRequestItemModel(
                    id=str(uuid.uuid4()),
                    material_request_id=request_id,
                    item_code=item.item_code,
                    description=item.description,
                    uom=item.uom,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    remarks=item.remarks,
                    item_index=item.item_index,
                )
            )

    async def _hydrate(self, rows: Sequence[MaterialRequestModel]) -> list[MaterialRequest]:
        """Build domain requests with their items and related summaries in a few batched queries."""
        if not rows:
            return []

        request_ids = [row.id for row in rows]
        items_by_request: dict[str, list[MaterialRequestItem]] = {}
        items_result = await self._session.execute(
            select(MaterialRequestItemModel)
            .where(MaterialRequestItemModel.material_request_id.in_(request_ids))
            .order_by(
                MaterialRequestItemModel.material_request_id,
                MaterialRequestItemModel.item_index,
            )
        )
        for item in items_result.scalars().all():
            items_by_request.setdefault(item.material_request_id, []).append(
                MaterialRequestItem(
                    description=item.description,
                    uom=item.uom,
                    quantity=item.quantity,
                    item_index=item.item_index,
                    item_code=item.item_code,
                    unit_price=item.unit_price,
                    remarks=item.remarks,
                )
            )

        user_ids = {
            user_id
            for row in rows
            for user_id in (row.requested_by_id, row.rec_approver_id, row.final_approver_id)
            if user_id
        }
        users: dict[str, UserSummary] = {}
        if user_ids:
            users_result = await self._session.execute(select(User).where(User.id.in_(user_ids)))
            users = {user.id: _user_summary(user) for user in users_result.scalars().all()}

        unit_ids = {row.business_unit_id for row in rows}
        units_result = await self._session.execute(
            select(BusinessUnit).where(BusinessUnit.id.in_(unit_ids))
        )
        units = {unit.id: _unit_summary(unit) for unit in units_result.scalars().all()}

        department_ids = {row.department_id for row in rows if row.department_id}
        departments: dict[str, DepartmentSummary] = {}
        if department_ids:
            departments_result = await self._session.execute(
                select(Department).where(Department.id.in_(department_ids))
            )
            departments = {
                department.id: _department_summary(department)
                for department in departments_result.scalars().all()
            }

        return [
            MaterialRequest(
                id=row.id,
                **{column: getattr(row, column) for column in _REQUEST_COLUMNS},
                items=items_by_request.get(row.id, []),
                business_unit=units.get(row.business_unit_id),
                department=departments.get(row.department_id) if row.department_id else None,
                requested_by=users.get(row.requested_by_id),
                rec_approver=users.get(row.rec_approver_id) if row.rec_approver_id else None,
                final_approver=users.get(row.final_approver_id) if row.final_approver_id else None,
            )
            for row in rows
        ]
