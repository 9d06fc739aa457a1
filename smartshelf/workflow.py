"""Status state machines for purchase orders and stock requests.

pending -> approved | rejected is the counterparty vendor's move; approved ->
completed (orders only) belongs to warehouse staff. rejected and completed are
terminal.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from smartshelf.models.inventory import OrderStatus, RequestStatus
from smartshelf.session import Session
from smartshelf.store import BackingStore
from smartshelf.validation import PermissionDenied, TransitionError

logger = logging.getLogger(__name__)


class WorkflowKind(str, Enum):
    PURCHASE_ORDER = "purchase_order"
    STOCK_REQUEST = "stock_request"

    @property
    def label(self) -> str:
        return "purchase order" if self is WorkflowKind.PURCHASE_ORDER else "stock request"

    @property
    def table(self) -> str:
        return "purchase_orders" if self is WorkflowKind.PURCHASE_ORDER else "stock_requests"


class Actor(str, Enum):
    # The vendor the order/request is addressed to
    COUNTERPARTY = "counterparty"
    STAFF = "staff"


PURCHASE_ORDER_TRANSITIONS: dict[str, dict[str, Actor]] = {
    OrderStatus.PENDING.value: {
        OrderStatus.APPROVED.value: Actor.COUNTERPARTY,
        OrderStatus.REJECTED.value: Actor.COUNTERPARTY,
    },
    OrderStatus.APPROVED.value: {
        OrderStatus.COMPLETED.value: Actor.STAFF,
    },
    OrderStatus.REJECTED.value: {},
    OrderStatus.COMPLETED.value: {},
}

STOCK_REQUEST_TRANSITIONS: dict[str, dict[str, Actor]] = {
    RequestStatus.PENDING.value: {
        RequestStatus.APPROVED.value: Actor.COUNTERPARTY,
        RequestStatus.REJECTED.value: Actor.COUNTERPARTY,
    },
    RequestStatus.APPROVED.value: {},
    RequestStatus.REJECTED.value: {},
}

_TRANSITIONS = {
    WorkflowKind.PURCHASE_ORDER: PURCHASE_ORDER_TRANSITIONS,
    WorkflowKind.STOCK_REQUEST: STOCK_REQUEST_TRANSITIONS,
}


def _value(status: Any) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def allowed_targets(kind: WorkflowKind, current: Any) -> list[str]:
    return list(_TRANSITIONS[kind].get(_value(current), {}))


def is_terminal(kind: WorkflowKind, status: Any) -> bool:
    return not allowed_targets(kind, status)


def check_transition(
    kind: WorkflowKind,
    current: Any,
    target: Any,
    session: Session,
    vendor_id: Optional[str],
) -> Actor:
    """Raises TransitionError for an illegal move and PermissionDenied for the wrong actor."""
    current, target = _value(current), _value(target)
    moves = _TRANSITIONS[kind].get(current)
    if moves is None:
        raise TransitionError(f"Unknown {kind.label} status: {current}")
    if target not in moves:
        raise TransitionError(f"Cannot move {kind.label} from {current} to {target}")

    actor = moves[target]
    if actor == Actor.COUNTERPARTY:
        if not (session.is_vendor and session.vendor_id and session.vendor_id == vendor_id):
            raise PermissionDenied(f"Only the vendor of this {kind.label} can mark it {target}")
    elif actor == Actor.STAFF:
        if not session.is_staff:
            raise PermissionDenied(f"Only warehouse staff can mark a {kind.label} {target}")
    return actor


def write_status(
    store: BackingStore,
    kind: WorkflowKind,
    row_id: str,
    observed: Any,
    target: Any,
    extra: Optional[dict] = None,
) -> dict:
    """Writes the new status only if the row still has the status the caller saw."""
    values = {"status": _value(target)}
    values.update(extra or {})
    row = store.update(kind.table, row_id, values, expected={"status": _value(observed)})
    logger.info("%s %s: %s -> %s", kind.label, row_id, _value(observed), _value(target))
    return row
