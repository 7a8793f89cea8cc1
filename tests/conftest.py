import sys
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import pytest


BACKEND_PATH = Path(__file__).resolve().parents[1] / "backend"
if str(BACKEND_PATH) not in sys.path:
    sys.path.append(str(BACKEND_PATH))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from app.requests.domain.models import (  # noqa: E402
    DepartmentSummary,
    MaterialRequest,
    MaterialRequestItem,
    UnitSummary,
    UserSummary,
)
from database import Base  # noqa: E402


NOW = datetime(2026, 3, 2, 9, 30, 0)


class FakeMaterialRequestRepository:
    def __init__(self) -> None:
        self.units = {}
        self.departments = {}
        self.approvers = {}
        self.requests = {}
        self.audit_entries = []
        self.commits = 0
        self.last_filters = None
        self.saved_with_replace = []

    @property
    def committed(self) -> bool:
        return self.commits > 0

    async def get_business_unit(self, business_unit_id):
        return self.units.get(business_unit_id)

    async def get_department(self, department_id):
        return self.departments.get(department_id)

    async def list_approver_ids(self, department_id, approver_type):
        return list(self.approvers.get((department_id, approver_type), []))

    async def get_latest_doc_no(self, series, year_suffix):
        prefix = f"{series}-{year_suffix}-"
        numbers = sorted(
            (r.doc_no for r in self.requests.values() if r.doc_no.startswith(prefix)),
            key=lambda doc_no: (len(doc_no), doc_no),
        )
        return numbers[-1] if numbers else None

    async def get_request(self, request_id):
        return self.requests.get(request_id)

    async def add_request(self, request):
        self.requests[request.id] = request

    async def save_request(self, request, replace_items=False):
        self.requests[request.id] = request
        if replace_items:
            self.saved_with_replace.append(request.id)

    async def delete_request(self, request_id):
        self.requests.pop(request_id, None)

    async def list_requests(self, filters):
        self.last_filters = filters
        results = []
        for request in self.requests.values():
            if filters.status and request.status != filters.status:
                continue
            if filters.statuses and request.status not in filters.statuses:
                continue
            if filters.business_unit_id and request.business_unit_id != filters.business_unit_id:
                continue
            if filters.requested_by_id and request.requested_by_id != filters.requested_by_id:
                continue
            if filters.pending_approver_id:
                uid = filters.pending_approver_id
                waiting_rec = (
                    request.rec_approver_id == uid
                    and request.status == "FOR_REC_APPROVAL"
                    and request.rec_approval_status == "PENDING"
                )
                waiting_final = (
                    request.final_approver_id == uid
                    and request.status == "FOR_FINAL_APPROVAL"
                    and request.final_approval_status == "PENDING"
                )
                if not (waiting_rec or waiting_final):
                    continue
            if filters.search:
                needle = filters.search.lower()
                if needle not in request.doc_no.lower() and needle not in (request.purpose or "").lower():
                    continue
            results.append(request)
        results.sort(key=lambda r: r.created_at, reverse=True)
        return results[filters.offset:filters.offset + filters.limit]

    async def add_audit_entry(self, entry):
        self.audit_entries.append(entry)

    async def list_audit_entries(self, entity_type, entity_id):
        return [
            entry for entry in self.audit_entries
            if entry.entity_type == entity_type and entry.entity_id == entity_id
        ]

    async def commit(self):
        self.commits += 1


# ==================== SHARED CAST ====================

REQUESTER = UserSummary(id="staff-1", name="Jennifer Lopez", role="staff", department_id="dept-ops")
OTHER_STAFF = UserSummary(id="staff-2", name="James Wilson", role="staff")
REC_APPROVER = UserSummary(id="mgr-1", name="Michael Garcia", role="manager")
FINAL_APPROVER = UserSummary(id="acctg-1", name="Robert Cruz", role="acctg")
PURCHASER = UserSummary(id="purch-1", name="David Tan", role="purchaser")
STOCKROOM = UserSummary(id="stock-1", name="Stock Room", role="stockroom")
ADMIN = UserSummary(id="admin-1", name="John Admin", role="admin")


@pytest.fixture
def repo():
    repository = FakeMaterialRequestRepository()
    repository.units["bu-1"] = UnitSummary(id="bu-1", code="RDRC", name="RD Realty Development Corporation")
    repository.units["bu-off"] = UnitSummary(id="bu-off", code="OLD", name="Closed Unit", is_active=False)
    repository.departments["dept-ops"] = DepartmentSummary(
        id="dept-ops", code="RDRC-OPS", name="Operations Department", business_unit_id="bu-1"
    )
    repository.departments["dept-other"] = DepartmentSummary(
        id="dept-other", code="RLII-FIN", name="Finance Department", business_unit_id="bu-2"
    )
    repository.approvers[("dept-ops", "recommending")] = [REC_APPROVER.id]
    repository.approvers[("dept-ops", "final")] = [FINAL_APPROVER.id]
    return repository


def build_item(**overrides) -> MaterialRequestItem:
    values = dict(
        description="Bond paper A4",
        uom="ream",
        quantity=Decimal("10"),
        unit_price=Decimal("25.00"),
        item_index=0,
    )
    values.update(overrides)
    return MaterialRequestItem(**values)


def build_request(**overrides) -> MaterialRequest:
    values = dict(
        id="req-1",
        doc_no="PO-26-00001",
        series="PO",
        type="ITEM",
        status="DRAFT",
        date_prepared=date(2026, 3, 2),
        date_required=date(2026, 3, 16),
        business_unit_id="bu-1",
        department_id="dept-ops",
        requested_by_id=REQUESTER.id,
        created_at=NOW,
        updated_at=NOW,
        freight=Decimal("0"),
        discount=Decimal("0"),
        total=Decimal("250.00"),
        items=[build_item()],
    )
    values.update(overrides)
    return MaterialRequest(**values)


@pytest.fixture
def make_request():
    return build_request


# ==================== SQLITE DATABASE ====================

@pytest.fixture
def sqlite_db(tmp_path):
    """
    A throwaway SQLite file with the full schema.

    Yields a sync engine for seeding and asserting, and an async session maker
    for the code under test. Connections are not pooled, so each event loop
    opens its own.
    """
    path = tmp_path / "mrs.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    session_maker = async_sessionmaker(
        create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool),
        expire_on_commit=False,
    )
    yield engine, session_maker
    engine.dispose()


def seed(engine, *rows) -> None:
    with Session(engine) as session:
        session.add_all(rows)
        session.commit()


def fetch(engine, model, row_id):
    with Session(engine) as session:
        return session.get(model, row_id)
