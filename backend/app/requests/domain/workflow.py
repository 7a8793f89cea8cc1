"""Material request approval workflow.

Forward path:

    DRAFT ─submit─► FOR_REC_APPROVAL ─rec_approve─► FOR_FINAL_APPROVAL
          ─final_approve─► FINAL_APPROVED ─post / auto_post─► POSTED
          ─receive─► RECEIVED ─transmit─► TRANSMITTED

When the department has no active final approver, ``rec_approve_final``
moves FOR_REC_APPROVAL straight to FINAL_APPROVED.

Side paths:

    FOR_REC_APPROVAL / FOR_FINAL_APPROVAL ─disapprove─► DISAPPROVED
    FOR_REC_APPROVAL / FOR_FINAL_APPROVAL / DISAPPROVED ─recall─► FOR_EDIT
    DRAFT / FOR_EDIT / DISAPPROVED ─cancel─► CANCELLED

Updating a DRAFT or FOR_EDIT request resets it to DRAFT; only DRAFT requests
may be deleted.
"""

from enum import Enum
from typing import Dict, NamedTuple, Optional, Set

from app.requests.domain.errors import InvalidTransition, PermissionDenied
from app.requests.domain.models import MaterialRequest, RequestStatus, UserSummary
from app.requests.domain.roles import ADMINISTRATORS, COORDINATORS, POSTERS


class WorkflowAction(str, Enum):
    SUBMIT = "submit"
    REC_APPROVE = "rec_approve"
    REC_APPROVE_FINAL = "rec_approve_final"
    REC_DISAPPROVE = "rec_disapprove"
    FINAL_APPROVE = "final_approve"
    FINAL_DISAPPROVE = "final_disapprove"
    AUTO_POST = "auto_post"
    POST = "post"
    RECEIVE = "receive"
    TRANSMIT = "transmit"
    RECALL = "recall"
    CANCEL = "cancel"


class Actor(str, Enum):
    """Who may perform a transition."""

    REQUESTER = "requester"
    REC_APPROVER = "rec_approver"
    FINAL_APPROVER = "final_approver"
    POSTER = "poster"
    COORDINATOR = "coordinator"
    REQUESTER_OR_ADMIN = "requester_or_admin"
    SYSTEM = "system"


class TransitionRule(NamedTuple):
    from_status: RequestStatus
    to_status: RequestStatus
    action: WorkflowAction
    actor: Actor


S = RequestStatus
A = WorkflowAction

TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(S.DRAFT, S.FOR_REC_APPROVAL, A.SUBMIT, Actor.REQUESTER),

    # Recommending approval
    TransitionRule(S.FOR_REC_APPROVAL, S.FOR_FINAL_APPROVAL, A.REC_APPROVE, Actor.REC_APPROVER),
    TransitionRule(S.FOR_REC_APPROVAL, S.FINAL_APPROVED, A.REC_APPROVE_FINAL, Actor.REC_APPROVER),
    TransitionRule(S.FOR_REC_APPROVAL, S.DISAPPROVED, A.REC_DISAPPROVE, Actor.REC_APPROVER),

    # Final approval
    TransitionRule(S.FOR_FINAL_APPROVAL, S.FINAL_APPROVED, A.FINAL_APPROVE, Actor.FINAL_APPROVER),
    TransitionRule(S.FOR_FINAL_APPROVAL, S.DISAPPROVED, A.FINAL_DISAPPROVE, Actor.FINAL_APPROVER),

    # Posting and fulfilment
    TransitionRule(S.FINAL_APPROVED, S.POSTED, A.AUTO_POST, Actor.SYSTEM),
    TransitionRule(S.FINAL_APPROVED, S.POSTED, A.POST, Actor.POSTER),
    TransitionRule(S.FOR_POSTING, S.POSTED, A.POST, Actor.POSTER),
    TransitionRule(S.POSTED, S.RECEIVED, A.RECEIVE, Actor.COORDINATOR),
    TransitionRule(S.RECEIVED, S.TRANSMITTED, A.TRANSMIT, Actor.COORDINATOR),

    # Backward moves
    TransitionRule(S.FOR_REC_APPROVAL, S.FOR_EDIT, A.RECALL, Actor.REQUESTER),
    TransitionRule(S.FOR_FINAL_APPROVAL, S.FOR_EDIT, A.RECALL, Actor.REQUESTER),
    TransitionRule(S.DISAPPROVED, S.FOR_EDIT, A.RECALL, Actor.REQUESTER),
    TransitionRule(S.DRAFT, S.CANCELLED, A.CANCEL, Actor.REQUESTER_OR_ADMIN),
    TransitionRule(S.FOR_EDIT, S.CANCELLED, A.CANCEL, Actor.REQUESTER_OR_ADMIN),
    TransitionRule(S.DISAPPROVED, S.CANCELLED, A.CANCEL, Actor.REQUESTER_OR_ADMIN),
]

VALID_ACTIONS: Dict[RequestStatus, Set[WorkflowAction]] = {}
TRANSITION_TARGETS: Dict[tuple[RequestStatus, WorkflowAction], TransitionRule] = {}
ACTION_ACTORS: Dict[WorkflowAction, Actor] = {}

for rule in TRANSITION_RULES:
    VALID_ACTIONS.setdefault(rule.from_status, set()).add(rule.action)
    TRANSITION_TARGETS[(rule.from_status, rule.action)] = rule
    ACTION_ACTORS[rule.action] = rule.actor

EDITABLE_STATUSES = frozenset({S.DRAFT, S.FOR_EDIT})
DELETABLE_STATUSES = frozenset({S.DRAFT})
TERMINAL_STATUSES = frozenset({S.TRANSMITTED, S.CANCELLED})
# Requests counted as still "in progress" for their requester
OPEN_STATUSES = frozenset({S.DRAFT, S.FOR_REC_APPROVAL, S.FOR_FINAL_APPROVAL})

_DENIED_MESSAGES = {
    Actor.REQUESTER: "You can only act on your own requests",
    Actor.REC_APPROVER: "You are not authorized to approve this request",
    Actor.FINAL_APPROVER: "You are not authorized to approve this request",
    Actor.POSTER: "You don't have permission to post material requests",
    Actor.COORDINATOR: "You don't have permission to process material requests",
    Actor.REQUESTER_OR_ADMIN: "You can only act on your own requests",
    Actor.SYSTEM: "This action is performed automatically",
}


def _status(value) -> Optional[RequestStatus]:
    try:
        return RequestStatus(value)
    except ValueError:
        return None


def can_transition(status, action: WorkflowAction) -> bool:
    """Check if an action is valid from the given status."""
    current = _status(status)
    return current is not None and action in VALID_ACTIONS.get(current, set())


def get_transition_rule(status, action: WorkflowAction) -> Optional[TransitionRule]:
    current = _status(status)
    if current is None:
        return None
    return TRANSITION_TARGETS.get((current, action))


def get_target_status(status, action: WorkflowAction) -> Optional[RequestStatus]:
    rule = get_transition_rule(status, action)
    return rule.to_status if rule else None


def apply_transition(status, action: WorkflowAction) -> TransitionRule:
    """Resolve the rule for an action from a status, or raise InvalidTransition."""
    rule = get_transition_rule(status, action)
    if rule is None:
        raise InvalidTransition(
            f"Cannot {action.value.replace('_', ' ')} a request in status {status}",
            status,
            action.value,
        )
    return rule


def is_actor(actor: Actor, request: MaterialRequest, user: UserSummary) -> bool:
    """Check whether the user plays the given actor role on this request."""
    if actor is Actor.REQUESTER:
        return request.requested_by_id == user.id
    if actor is Actor.REC_APPROVER:
        return request.rec_approver_id == user.id
    if actor is Actor.FINAL_APPROVER:
        return request.final_approver_id == user.id
    if actor is Actor.POSTER:
        return user.role in POSTERS
    if actor is Actor.COORDINATOR:
        return user.role in COORDINATORS
    if actor is Actor.REQUESTER_OR_ADMIN:
        return request.requested_by_id == user.id or user.role in ADMINISTRATORS
    return False


def available_actions(request: MaterialRequest, user: UserSummary) -> list[WorkflowAction]:
    """Actions the user may perform on the request right now."""
    current = _status(request.status)
    if current is None:
        return []
    return [
        rule.action
        for rule in TRANSITION_RULES
        if rule.from_status is current and is_actor(rule.actor, request, user)
    ]


def require_actor(request: MaterialRequest, action: WorkflowAction, user: Optional[UserSummary]) -> None:
    """Raise PermissionDenied unless the user plays the actor role of the action."""
    actor = ACTION_ACTORS[action]
    if actor is Actor.SYSTEM:
        return
    if user is None or not is_actor(actor, request, user):
        raise PermissionDenied(_DENIED_MESSAGES[actor])


def authorize(request: MaterialRequest, action: WorkflowAction, user: Optional[UserSummary]) -> TransitionRule:
    """
    Validate an action against the request's status and the acting user.

    The actor is checked before the status. ``user`` may be None only for system actions.

    Raises:
        PermissionDenied: the user does not play the rule's actor role
        InvalidTransition: the action is not allowed from the current status
    """
    require_actor(request, action, user)
    return apply_transition(request.status, action)
