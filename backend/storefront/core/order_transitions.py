"""Order Status Transitions - validates every order status change before it is persisted.

Invariants:
    - ALLOWED_TRANSITIONS is the single source of truth for the order lifecycle
    - cancelled, refunded and expired are terminal
    - Same-status changes are no-ops (check_transition returns False), never errors
    - check_transition is PURE: it decides, the shell assigns the column and appends history

Design Decisions:
    - failed -> pending allowed: a buyer may retry a rejected payment on the same order
    - failed -> paid allowed: the gateway can approve a payment after an earlier rejection
"""

from datetime import datetime, timezone

from storefront.core.clock import ensure_utc
from storefront.core.domain_types import OrderStatus
from storefront.core.errors import InvalidStatusTransitionError


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PAID, OrderStatus.FAILED,
        OrderStatus.CANCELLED, OrderStatus.EXPIRED,
    }),
    OrderStatus.FAILED: frozenset({
        OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.CANCELLED,
    }),
    OrderStatus.PAID: frozenset({OrderStatus.DELIVERED, OrderStatus.REFUNDED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
}


def is_terminal(status: OrderStatus | str) -> bool:
    return not ALLOWED_TRANSITIONS[OrderStatus(status)]


def check_transition(current: OrderStatus | str, target: OrderStatus | str) -> bool:
    """Return True if the change must be applied, False if it is a no-op.

    Raises InvalidStatusTransitionError when the lifecycle forbids it.
    """
    current, target = OrderStatus(current), OrderStatus(target)
    if current == target:
        return False
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(current.value, target.value)
    return True


def build_history_entry(
    status: OrderStatus | str, changed_by: str, at: datetime | None = None,
    description: str | None = None,
) -> dict:
    """Status-history entry stored in orders.status_history (JSON)."""
    entry = {
        "status": OrderStatus(status).value,
        "changed_by": changed_by,
        "changed_at": (at or datetime.now(timezone.utc)).isoformat(),
    }
    if description:
        entry["description"] = description
    return entry


def pending_since(history: list[dict] | None) -> datetime | None:
    """When the order last entered `pending` (a payment retry restarts the clock)."""
    for entry in reversed(history or []):
        if entry.get("status") != OrderStatus.PENDING.value:
            continue
        try:
            return ensure_utc(datetime.fromisoformat(entry["changed_at"]))
        except (KeyError, TypeError, ValueError):
            return None
    return None
