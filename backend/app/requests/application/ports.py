from typing import Optional, Protocol, Sequence

from app.requests.domain.models import (
    AuditEntry,
    DepartmentSummary,
    MaterialRequest,
    RequestFilters,
    UnitSummary,
)


class MaterialRequestRepository(Protocol):
    async def get_business_unit(self, business_unit_id: str) -> Optional[UnitSummary]:
        ...

    async def get_department(self, department_id: str) -> Optional[DepartmentSummary]:
        ...

    async def list_approver_ids(self, department_id: str, approver_type: str) -> Sequence[str]:
        """Active approvers of the given type, oldest assignment first."""
        ...

    async def get_latest_doc_no(self, series: str, year_suffix: str) -> Optional[str]:
        ...

    async def get_request(self, request_id: str) -> Optional[MaterialRequest]:
        ...

    async def add_request(self, request: MaterialRequest) -> None:
        ...

    async def save_request(self, request: MaterialRequest, replace_items: bool = False) -> None:
        ...

    async def delete_request(self, request_id: str) -> None:
        ...

    async def list_requests(self, filters: RequestFilters) -> Sequence[MaterialRequest]:
        ...

    async def add_audit_entry(self, entry: AuditEntry) -> None:
        ...

    async def list_audit_entries(self, entity_type: str, entity_id: str) -> Sequence[AuditEntry]:
        ...

    async def commit(self) -> None:
        ...
