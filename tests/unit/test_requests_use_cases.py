import asyncio
import itertools
import json
from datetime import date
from decimal import Decimal

import pytest

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
from app.requests.domain.errors import InvalidRequest, InvalidTransition, NotFound, PermissionDenied
from conftest import (
    ADMIN,
    FINAL_APPROVER,
    NOW,
    OTHER_STAFF,
    PURCHASER,
    REC_APPROVER,
    REQUESTER,
    STOCKROOM,
)


def run(coro):
    return asyncio.run(coro)


def make_ids():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


def clock():
    return NOW


def use_case(cls, repo, **kwargs):
    return cls(repository=repo, id_generator=make_ids(), clock=clock, **kwargs)


def create_command(**overrides):
    values = dict(
        series="PO",
        type="ITEM",
        date_prepared=date(2026, 3, 2),
        date_required=date(2026, 3, 16),
        business_unit_id="bu-1",
        department_id="dept-ops",
        items=[
            MaterialItemInput(description="Bond paper A4", uom="ream", quantity=Decimal("10"),
                              unit_price=Decimal("25.00")),
            MaterialItemInput(description="Stapler", uom="pc", quantity=Decimal("2"),
                              item_code="OFF-0042", is_new=False),
        ],
        purpose="Office supplies",
        freight=Decimal("50.00"),
        discount=Decimal("20.00"),
    )
    values.update(overrides)
    return CreateMaterialRequestCommand(**values)


def update_command(**overrides):
    values = dict(
        request_id="req-1",
        type="ITEM",
        date_prepared=date(2026, 3, 2),
        date_required=date(2026, 3, 20),
        business_unit_id="bu-1",
        department_id="dept-ops",
        items=[
            MaterialItemInput(description="Bond paper A4", uom="ream", quantity=Decimal("4"),
                              unit_price=Decimal("25.00")),
        ],
    )
    values.update(overrides)
    return UpdateMaterialRequestCommand(**values)


# ==================== CREATE / UPDATE / DELETE ====================

def test_create_request_persists_draft_with_doc_number_and_total(repo):
    request = run(use_case(CreateMaterialRequestUseCase, repo).execute(create_command(), REQUESTER))

    assert request.doc_no == "PO-26-00001"
    assert request.status == "DRAFT"
    assert request.requested_by_id == REQUESTER.id
    # 10 x 25 + unpriced line + 50 freight - 20 discount
    assert request.total == Decimal("280.00")
    assert [item.item_index for item in request.items] == [0, 1]
    assert request.items[1].item_code == "OFF-0042"
    assert repo.requests[request.id] == request
    assert [entry.action for entry in repo.audit_entries] == ["create"]
    assert repo.committed is True


def test_create_request_continues_numbering_within_series_and_year(repo, make_request):
    repo.requests["old"] = make_request(id="old", doc_no="PO-26-00007")
    repo.requests["other-series"] = make_request(id="other-series", doc_no="JO-26-00020", series="JO")
    repo.requests["last-year"] = make_request(id="last-year", doc_no="PO-25-00099")

    request = run(use_case(CreateMaterialRequestUseCase, repo).execute(create_command(), REQUESTER))

    assert request.doc_no == "PO-26-00008"


def test_create_request_numbering_continues_past_five_digits(repo, make_request):
    repo.requests["a"] = make_request(id="a", doc_no="PO-26-99999")
    repo.requests["b"] = make_request(id="b", doc_no="PO-26-100000")

    request = run(use_case(CreateMaterialRequestUseCase, repo).execute(create_command(), REQUESTER))

    assert request.doc_no == "PO-26-100001"


def test_create_request_requires_items(repo):
    with pytest.raises(InvalidRequest):
        run(use_case(CreateMaterialRequestUseCase, repo).execute(create_command(items=[]), REQUESTER))
    assert repo.requests == {}


def test_create_request_requires_item_code_for_existing_items(repo):
    items = [MaterialItemInput(description="Stapler", uom="pc", quantity=Decimal("1"), is_new=False)]
    with pytest.raises(InvalidRequest):
        run(use_case(CreateMaterialRequestUseCase, repo).execute(create_command(items=items), REQUESTER))


def test_create_request_rejects_non_positive_quantity(repo):
    items = [MaterialItemInput(description="Tape", uom="roll", quantity=Decimal("0"))]
    with pytest.raises(InvalidRequest):
        run(use_case(CreateMaterialRequestUseCase, repo).execute(create_command(items=items), REQUESTER))


def test_create_request_rejects_unknown_series(repo):
    with pytest.raises(InvalidRequest):
        run(use_case(CreateMaterialRequestUseCase, repo).execute(create_command(series="XX"), REQUESTER))


def test_create_request_rejects_inactive_business_unit(repo):
    with pytest.raises(NotFound):
        run(use_case(CreateMaterialRequestUseCase, repo).execute(
            create_command(business_unit_id="bu-off", department_id=None), REQUESTER
        ))


def test_create_request_rejects_department_from_other_unit(repo):
    with pytest.raises(InvalidRequest):
        run(use_case(CreateMaterialRequestUseCase, repo).execute(
            create_command(department_id="dept-other"), REQUESTER
        ))


def test_update_request_from_for_edit_returns_to_draft(repo, make_request):
    repo.requests["req-1"] = make_request(status="FOR_EDIT")

    updated = run(use_case(UpdateMaterialRequestUseCase, repo).execute(update_command(), REQUESTER))

    assert updated.status == "DRAFT"
    assert updated.total == Decimal("100.00")
    assert updated.date_revised == NOW
    assert updated.date_required == date(2026, 3, 20)
    assert repo.saved_with_replace == ["req-1"]
    assert repo.committed is True


def test_update_request_only_by_owner_or_administrator(repo, make_request):
    repo.requests["req-1"] = make_request()

    with pytest.raises(PermissionDenied):
        run(use_case(UpdateMaterialRequestUseCase, repo).execute(update_command(), OTHER_STAFF))

    updated = run(use_case(UpdateMaterialRequestUseCase, repo).execute(update_command(), ADMIN))
    assert updated.status == "DRAFT"


def test_update_request_refused_once_submitted(repo, make_request):
    repo.requests["req-1"] = make_request(status="FOR_REC_APPROVAL")

    with pytest.raises(InvalidRequest):
        run(use_case(UpdateMaterialRequestUseCase, repo).execute(update_command(), REQUESTER))


def test_delete_request_only_in_draft(repo, make_request):
    repo.requests["req-1"] = make_request(status="FOR_EDIT")
    with pytest.raises(InvalidRequest):
        run(use_case(DeleteMaterialRequestUseCase, repo).execute("req-1", REQUESTER))

    repo.requests["req-1"] = make_request()
    run(use_case(DeleteMaterialRequestUseCase, repo).execute("req-1", REQUESTER))
    assert "req-1" not in repo.requests
    assert repo.audit_entries[-1].action == "delete"


def test_delete_request_missing(repo):
    with pytest.raises(NotFound):
        run(use_case(DeleteMaterialRequestUseCase, repo).execute("missing", REQUESTER))


# ==================== SUBMIT & APPROVALS ====================

def test_submit_assigns_first_recommending_approver(repo, make_request):
    repo.approvers[("dept-ops", "recommending")] = [REC_APPROVER.id, ADMIN.id]
    repo.requests["req-1"] = make_request()

    submitted = run(use_case(SubmitForApprovalUseCase, repo).execute("req-1", REQUESTER))

    assert submitted.status == "FOR_REC_APPROVAL"
    assert submitted.rec_approver_id == REC_APPROVER.id
    assert submitted.rec_approval_status == "PENDING"
    assert repo.audit_entries[-1].action == "submit"
    assert json.loads(repo.audit_entries[-1].changes) == {"from": "DRAFT", "to": "FOR_REC_APPROVAL"}


def test_submit_without_recommending_approver_fails(repo, make_request):
    repo.approvers.pop(("dept-ops", "recommending"))
    repo.requests["req-1"] = make_request()

    with pytest.raises(InvalidRequest):
        run(use_case(SubmitForApprovalUseCase, repo).execute("req-1", REQUESTER))
    assert repo.requests["req-1"].status == "DRAFT"
    assert repo.committed is False


def test_submit_only_by_requester(repo, make_request):
    repo.requests["req-1"] = make_request()

    with pytest.raises(PermissionDenied):
        run(use_case(SubmitForApprovalUseCase, repo).execute("req-1", ADMIN))


def test_recommending_approval_routes_to_final_approver(repo, make_request):
    repo.requests["req-1"] = make_request(
        status="FOR_REC_APPROVAL", rec_approver_id=REC_APPROVER.id, rec_approval_status="PENDING"
    )

    result = run(use_case(ProcessRecommendingApprovalUseCase, repo).execute(
        ApprovalCommand(request_id="req-1", decision="APPROVED"), REC_APPROVER
    ))

    assert result.request.status == "FOR_FINAL_APPROVAL"
    assert result.request.rec_approval_status == "APPROVED"
    assert result.request.rec_approval_date == NOW
    assert result.request.final_approver_id == FINAL_APPROVER.id
    assert result.request.final_approval_status == "PENDING"
    assert result.auto_posted is False


def test_recommending_approval_without_final_approver_is_final(repo, make_request):
    repo.approvers.pop(("dept-ops", "final"))
    repo.requests["req-1"] = make_request(
        status="FOR_REC_APPROVAL", rec_approver_id=REC_APPROVER.id, rec_approval_status="PENDING"
    )

    result = run(use_case(ProcessRecommendingApprovalUseCase, repo).execute(
        ApprovalCommand(request_id="req-1", decision="APPROVED"), REC_APPROVER
    ))

    assert result.request.status == "FINAL_APPROVED"
    assert result.request.final_approver_id == REC_APPROVER.id
    assert result.request.final_approval_status == "APPROVED"
    assert result.request.date_approved == NOW
    assert result.request.date_posted is None


def test_recommending_approval_by_other_user_denied(repo, make_request):
    repo.requests["req-1"] = make_request(
        status="FOR_REC_APPROVAL", rec_approver_id=REC_APPROVER.id, rec_approval_status="PENDING"
    )

    with pytest.raises(PermissionDenied):
        run(use_case(ProcessRecommendingApprovalUseCase, repo).execute(
            ApprovalCommand(request_id="req-1", decision="APPROVED"), ADMIN
        ))


def test_recommending_disapproval_records_remarks(repo, make_request):
    repo.requests["req-1"] = make_request(
        status="FOR_REC_APPROVAL", rec_approver_id=REC_APPROVER.id, rec_approval_status="PENDING"
    )

    result = run(use_case(ProcessRecommendingApprovalUseCase, repo).execute(
        ApprovalCommand(request_id="req-1", decision="DISAPPROVED", remarks="Over budget"), REC_APPROVER
    ))

    assert result.request.status == "DISAPPROVED"
    assert result.request.rec_approval_status == "DISAPPROVED"
    changes = json.loads(repo.audit_entries[-1].changes)
    assert changes["remarks"] == "Over budget"


def test_approval_decision_must_be_final(repo, make_request):
    repo.requests["req-1"] = make_request(
        status="FOR_REC_APPROVAL", rec_approver_id=REC_APPROVER.id, rec_approval_status="PENDING"
    )

    with pytest.raises(InvalidRequest):
        run(use_case(ProcessRecommendingApprovalUseCase, repo).execute(
            ApprovalCommand(request_id="req-1", decision="PENDING"), REC_APPROVER
        ))


def test_non_approver_is_denied_before_decision_is_checked(repo, make_request):
    repo.requests["req-1"] = make_request(
        status="FOR_REC_APPROVAL", rec_approver_id=REC_APPROVER.id, rec_approval_status="PENDING"
    )

    with pytest.raises(PermissionDenied):
        run(use_case(ProcessRecommendingApprovalUseCase, repo).execute(
            ApprovalCommand(request_id="req-1", decision="PENDING"), OTHER_STAFF
        ))
    assert repo.committed is False


def for_final_approval(make_request, **overrides):
    return make_request(
        status="FOR_FINAL_APPROVAL",
        rec_approver_id=REC_APPROVER.id,
        rec_approval_status="APPROVED",
        final_approver_id=FINAL_APPROVER.id,
        final_approval_status="PENDING",
        **overrides,
    )


def test_final_approval_auto_posts(repo, make_request):
    repo.requests["req-1"] = for_final_approval(make_request)

    result = run(use_case(ProcessFinalApprovalUseCase, repo).execute(
        ApprovalCommand(request_id="req-1", decision="APPROVED"), FINAL_APPROVER
    ))

    assert result.auto_posted is True
    assert result.request.status == "POSTED"
    assert result.request.final_approval_status == "APPROVED"
    assert result.request.date_approved == NOW
    assert result.request.date_posted == NOW
    assert [entry.action for entry in repo.audit_entries] == ["final_approve", "auto_post"]
    assert repo.commits == 1


def test_final_approval_without_auto_post_stops_at_final_approved(repo, make_request):
    repo.requests["req-1"] = for_final_approval(make_request)

    result = run(use_case(ProcessFinalApprovalUseCase, repo, auto_post=False).execute(
        ApprovalCommand(request_id="req-1", decision="APPROVED"), FINAL_APPROVER
    ))

    assert result.auto_posted is False
    assert result.request.status == "FINAL_APPROVED"
    assert result.request.date_posted is None


def test_final_disapproval(repo, make_request):
    repo.requests["req-1"] = for_final_approval(make_request)

    result = run(use_case(ProcessFinalApprovalUseCase, repo).execute(
        ApprovalCommand(request_id="req-1", decision="DISAPPROVED", remarks="Not needed"), FINAL_APPROVER
    ))

    assert result.request.status == "DISAPPROVED"
    assert result.request.final_approval_status == "DISAPPROVED"
    assert result.auto_posted is False


def test_final_approval_by_non_approver_denied_whatever_the_decision(repo, make_request):
    repo.requests["req-1"] = for_final_approval(make_request)

    for decision in ("APPROVED", "MAYBE"):
        with pytest.raises(PermissionDenied):
            run(use_case(ProcessFinalApprovalUseCase, repo).execute(
                ApprovalCommand(request_id="req-1", decision=decision), REC_APPROVER
            ))


def test_final_approval_in_wrong_status(repo, make_request):
    repo.requests["req-1"] = make_request(
        status="FINAL_APPROVED",
        final_approver_id=FINAL_APPROVER.id,
        final_approval_status="APPROVED",
        date_approved=NOW,
    )

    with pytest.raises(InvalidTransition):
        run(use_case(ProcessFinalApprovalUseCase, repo).execute(
            ApprovalCommand(request_id="req-1", decision="APPROVED"), FINAL_APPROVER
        ))


# ==================== POSTING & FULFILMENT ====================

def test_post_by_purchaser(repo, make_request):
    repo.requests["req-1"] = make_request(status="FINAL_APPROVED")

    posted = run(use_case(MarkAsPostedUseCase, repo).execute(
        PostRequestCommand(request_id="req-1", confirmation_no="CNF-7781"), PURCHASER
    ))

    assert posted.status == "POSTED"
    assert posted.confirmation_no == "CNF-7781"
    assert posted.date_posted == NOW


def test_post_denied_for_staff(repo, make_request):
    repo.requests["req-1"] = make_request(status="FINAL_APPROVED")

    with pytest.raises(PermissionDenied):
        run(use_case(MarkAsPostedUseCase, repo).execute(PostRequestCommand(request_id="req-1"), REQUESTER))


def test_receive_by_stockroom_records_supplier(repo, make_request):
    repo.requests["req-1"] = make_request(status="POSTED", date_posted=NOW)

    received = run(use_case(MarkAsReceivedUseCase, repo).execute(
        ReceiveRequestCommand(
            request_id="req-1",
            supplier_bp_code="SUP-001",
            supplier_name="Acme Office Supply",
            purchase_order_number="PO-2026-118",
        ),
        STOCKROOM,
    ))

    assert received.status == "RECEIVED"
    assert received.supplier_name == "Acme Office Supply"
    assert received.purchase_order_number == "PO-2026-118"
    assert received.date_received == NOW


def test_receive_requires_posted(repo, make_request):
    repo.requests["req-1"] = make_request(status="FINAL_APPROVED")

    with pytest.raises(InvalidTransition):
        run(use_case(MarkAsReceivedUseCase, repo).execute(ReceiveRequestCommand(request_id="req-1"), STOCKROOM))


def test_transmit_received_request(repo, make_request):
    repo.requests["req-1"] = make_request(status="RECEIVED")

    transmitted = run(use_case(MarkAsTransmittedUseCase, repo).execute("req-1", PURCHASER))

    assert transmitted.status == "TRANSMITTED"
    assert transmitted.date_transmitted == NOW


# ==================== RECALL & CANCEL ====================

def test_recall_disapproved_request_then_edit(repo, make_request):
    repo.requests["req-1"] = make_request(status="DISAPPROVED")

    recalled = run(use_case(RecallForEditUseCase, repo).execute("req-1", REQUESTER, "Fixing quantities"))
    assert recalled.status == "FOR_EDIT"

    updated = run(use_case(UpdateMaterialRequestUseCase, repo).execute(update_command(), REQUESTER))
    assert updated.status == "DRAFT"


def test_recall_only_by_requester(repo, make_request):
    repo.requests["req-1"] = make_request(status="FOR_REC_APPROVAL", rec_approver_id=REC_APPROVER.id)

    with pytest.raises(PermissionDenied):
        run(use_case(RecallForEditUseCase, repo).execute("req-1", REC_APPROVER))


def test_cancel_by_administrator(repo, make_request):
    repo.requests["req-1"] = make_request()

    cancelled = run(use_case(CancelMaterialRequestUseCase, repo).execute("req-1", ADMIN, "Duplicate"))

    assert cancelled.status == "CANCELLED"
    assert repo.audit_entries[-1].user_id == ADMIN.id


def test_cancel_posted_request_refused(repo, make_request):
    repo.requests["req-1"] = make_request(status="POSTED")

    with pytest.raises(InvalidTransition):
        run(use_case(CancelMaterialRequestUseCase, repo).execute("req-1", REQUESTER))


# ==================== QUERIES ====================

def test_get_request_visibility(repo, make_request):
    repo.requests["req-1"] = make_request(rec_approver_id=REC_APPROVER.id)
    get_use_case = use_case(GetMaterialRequestUseCase, repo)

    assert run(get_use_case.execute("req-1", REQUESTER)).id == "req-1"
    assert run(get_use_case.execute("req-1", REC_APPROVER)).id == "req-1"
    assert run(get_use_case.execute("req-1", STOCKROOM)).id == "req-1"
    with pytest.raises(PermissionDenied):
        run(get_use_case.execute("req-1", OTHER_STAFF))


def test_request_history_lists_audit_entries(repo, make_request):
    repo.requests["req-1"] = make_request()
    run(use_case(SubmitForApprovalUseCase, repo).execute("req-1", REQUESTER))

    history = run(use_case(GetRequestHistoryUseCase, repo).execute("req-1", REQUESTER))

    assert [entry.action for entry in history] == ["submit"]
    assert history[0].user_name == REQUESTER.name


def test_list_requests_scopes_regular_users_to_own(repo):
    list_use_case = ListMaterialRequestsUseCase(repository=repo)
    query = ListMaterialRequestsQuery(requested_by_id="someone-else")

    run(list_use_case.execute(query, REQUESTER))
    assert repo.last_filters.requested_by_id == REQUESTER.id

    run(list_use_case.execute(query, PURCHASER))
    assert repo.last_filters.requested_by_id == "someone-else"


def test_list_requests_clamps_limit_offset(repo):
    list_use_case = ListMaterialRequestsUseCase(repository=repo, max_limit=200)

    run(list_use_case.execute(ListMaterialRequestsQuery(limit=999, offset=-5), ADMIN))
    assert repo.last_filters.limit == 200
    assert repo.last_filters.offset == 0

    run(list_use_case.execute(ListMaterialRequestsQuery(limit=0), ADMIN))
    assert repo.last_filters.limit == 1


def test_pending_approvals_only_waiting_requests(repo, make_request):
    repo.requests["waiting-rec"] = make_request(
        id="waiting-rec", doc_no="PO-26-00001", status="FOR_REC_APPROVAL",
        rec_approver_id=REC_APPROVER.id, rec_approval_status="PENDING",
    )
    repo.requests["waiting-final"] = make_request(
        id="waiting-final", doc_no="PO-26-00002", status="FOR_FINAL_APPROVAL",
        rec_approver_id=ADMIN.id, rec_approval_status="APPROVED",
        final_approver_id=REC_APPROVER.id, final_approval_status="PENDING",
    )
    repo.requests["done"] = make_request(
        id="done", doc_no="PO-26-00003", status="FOR_FINAL_APPROVAL",
        rec_approver_id=REC_APPROVER.id, rec_approval_status="APPROVED",
        final_approver_id=FINAL_APPROVER.id, final_approval_status="PENDING",
    )

    pending = run(ListPendingApprovalsUseCase(repository=repo).execute(REC_APPROVER))

    assert {request.id for request in pending} == {"waiting-rec", "waiting-final"}


def test_coordinator_views(repo, make_request):
    repo.requests["posted"] = make_request(id="posted", status="POSTED")
    repo.requests["approved"] = make_request(id="approved", doc_no="PO-26-00002", status="FINAL_APPROVED")
    coordinator_use_case = ListCoordinatorRequestsUseCase(repository=repo)

    posted = run(coordinator_use_case.execute(CoordinatorQuery(view="posted"), STOCKROOM))
    assert [request.id for request in posted] == ["posted"]
    assert repo.last_filters.order_by == "date_posted"

    with pytest.raises(PermissionDenied):
        run(coordinator_use_case.execute(CoordinatorQuery(view="posted"), REQUESTER))

    with pytest.raises(InvalidRequest):
        run(coordinator_use_case.execute(CoordinatorQuery(view="archived"), STOCKROOM))


def test_next_document_number_preview(repo, make_request):
    repo.requests["req-1"] = make_request(doc_no="JO-26-00041", series="JO")
    preview = NextDocumentNumberUseCase(repository=repo, clock=clock)

    assert run(preview.execute("JO")) == "JO-26-00042"
    assert run(preview.execute("PO")) == "PO-26-00001"
