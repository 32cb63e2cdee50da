"""Tabela de transicoes das solicitacoes de servico.

Fonte unica de verdade de quem pode mover uma solicitacao de um status para
outro. E uma tabela pura ``(status, acao) -> Transition``; o perfil do ator e
checado contra ``Transition.roles``. Qualquer combinacao fora da tabela
resulta em ``InvalidTransition``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from portal.core.errors import InvalidTransition
from portal.db.models import ROLE_CLIENT, ROLE_STAFF, ROLE_SYSTEM


class RequestStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_UNDER_REVIEW = "payment_under_review"
    REQUESTED = "requested"
    VIEWED = "viewed"
    IN_PROGRESS = "in_progress"
    IN_VALIDATION = "in_validation"
    RESOLVED = "resolved"


class PaymentStatus(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"


class RequestAction(str, Enum):
    CONFIRM_PAYMENT = "confirm_payment"
    FLAG_PAYMENT_REVIEW = "flag_payment_review"
    VIEW = "view"
    START = "start"
    SEND_FOR_VALIDATION = "send_for_validation"
    APPROVE = "approve"
    REOPEN = "reopen"


ROLES = (ROLE_CLIENT, ROLE_STAFF, ROLE_SYSTEM)


@dataclass(frozen=True)
class Transition:
    source: RequestStatus
    action: RequestAction
    target: RequestStatus
    roles: frozenset
    audit_action: str
    payment_status: Optional[PaymentStatus] = None


def _row(source, action, target, roles, audit_action, payment_status=None):
    return (source, action), Transition(
        source=source,
        action=action,
        target=target,
        roles=frozenset(roles),
        audit_action=audit_action,
        payment_status=payment_status,
    )


TRANSITIONS: dict[tuple[RequestStatus, RequestAction], Transition] = dict(
    [
        _row(
            RequestStatus.PENDING_PAYMENT,
            RequestAction.CONFIRM_PAYMENT,
            RequestStatus.REQUESTED,
            {ROLE_SYSTEM},
            "Payment confirmed",
            PaymentStatus.APPROVED,
        ),
        _row(
            RequestStatus.PENDING_PAYMENT,
            RequestAction.FLAG_PAYMENT_REVIEW,
            RequestStatus.PAYMENT_UNDER_REVIEW,
            {ROLE_SYSTEM},
            "Payment under review",
            PaymentStatus.UNDER_REVIEW,
        ),
        _row(
            RequestStatus.PAYMENT_UNDER_REVIEW,
            RequestAction.CONFIRM_PAYMENT,
            RequestStatus.REQUESTED,
            {ROLE_SYSTEM},
            "Payment confirmed",
            PaymentStatus.APPROVED,
        ),
        _row(
            RequestStatus.REQUESTED,
            RequestAction.VIEW,
            RequestStatus.VIEWED,
            {ROLE_STAFF},
            "Viewed by staff",
        ),
        _row(
            RequestStatus.REQUESTED,
            RequestAction.START,
            RequestStatus.IN_PROGRESS,
            {ROLE_STAFF},
            "Resolution started",
        ),
        _row(
            RequestStatus.VIEWED,
            RequestAction.START,
            RequestStatus.IN_PROGRESS,
            {ROLE_STAFF},
            "Resolution started",
        ),
        _row(
            RequestStatus.IN_PROGRESS,
            RequestAction.SEND_FOR_VALIDATION,
            RequestStatus.IN_VALIDATION,
            {ROLE_STAFF},
            "Sent for validation",
        ),
        _row(
            RequestStatus.IN_VALIDATION,
            RequestAction.APPROVE,
            RequestStatus.RESOLVED,
            {ROLE_CLIENT},
            "Approved and closed",
        ),
        _row(
            RequestStatus.RESOLVED,
            RequestAction.REOPEN,
            RequestStatus.REQUESTED,
            {ROLE_CLIENT},
            "Reopened",
        ),
    ]
)

ACTION_TARGETS: dict[RequestAction, RequestStatus] = {
    transition.action: transition.target for transition in TRANSITIONS.values()
}


def is_allowed(state: str, action: str, role: str) -> bool:
    try:
        key = (RequestStatus(state), RequestAction(action))
    except ValueError:
        return False
    transition = TRANSITIONS.get(key)
    return transition is not None and role in transition.roles


def resolve_transition(state: str, action: str, role: str) -> Transition:
    requested = ACTION_TARGETS.get(action, action)
    requested_label = requested.value if isinstance(requested, RequestStatus) else str(requested)
    if not is_allowed(state, action, role):
        raise InvalidTransition(current=str(getattr(state, "value", state)), requested=requested_label, role=role)
    return TRANSITIONS[(RequestStatus(state), RequestAction(action))]


def allowed_actions(state: str, role: str) -> list[str]:
    return [
        transition.action.value
        for (source, _), transition in TRANSITIONS.items()
        if source.value == state and role in transition.roles
    ]


def initial_state(price) -> tuple[RequestStatus, PaymentStatus]:
    if price is not None and price > 0:
        return RequestStatus.PENDING_PAYMENT, PaymentStatus.PENDING
    return RequestStatus.REQUESTED, PaymentStatus.NOT_APPLICABLE
