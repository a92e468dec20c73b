"""
Lifecycle state machine for custom domains.

pending -> pending_nameservers -> verifying -> ssl_pending -> active,
with ``error`` reachable from any non-terminal state. Moves are forward
only; a domain leaves the machine only by being disconnected.
"""

from typing import Optional

from .enums import DomainStatus, OrderStatus, PortalDomainStatus, SSLStatus
from .exceptions import StateTransitionError


DOMAIN_ORDER = [
    DomainStatus.PENDING,
    DomainStatus.PENDING_NAMESERVERS,
    DomainStatus.VERIFYING,
    DomainStatus.SSL_PENDING,
    DomainStatus.ACTIVE,
]

TERMINAL_STATUSES = frozenset({DomainStatus.ACTIVE, DomainStatus.ERROR})

NON_TERMINAL_STATUSES = frozenset(s for s in DomainStatus if s not in TERMINAL_STATUSES)

SSL_ORDER = [
    SSLStatus.PENDING,
    SSLStatus.PROVISIONING,
    SSLStatus.ACTIVE,
]

ORDER_FLOW = [
    OrderStatus.PENDING_PAYMENT,
    OrderStatus.REGISTERING,
    OrderStatus.CONFIGURING_DNS,
    OrderStatus.UPDATING_NAMESERVERS,
    OrderStatus.COMPLETED,
]

PORTAL_ORDER = [
    PortalDomainStatus.PENDING,
    PortalDomainStatus.VERIFYING,
    PortalDomainStatus.ACTIVE,
]


def _forward(sequence: list, error_state, current, target) -> bool:
    if current == target:
        return True
    if current == error_state:
        return False
    if target == error_state:
        return current != sequence[-1]
    return sequence.index(target) > sequence.index(current)


def can_transition(current: DomainStatus, target: DomainStatus) -> bool:
    """True if moving from current to target never regresses."""
    return _forward(DOMAIN_ORDER, DomainStatus.ERROR, current, target)


def can_transition_ssl(current: SSLStatus, target: SSLStatus) -> bool:
    return _forward(SSL_ORDER, SSLStatus.ERROR, current, target)


def can_transition_order(current: OrderStatus, target: OrderStatus) -> bool:
    return _forward(ORDER_FLOW, OrderStatus.FAILED, current, target)


def can_transition_portal(current: PortalDomainStatus, target: PortalDomainStatus) -> bool:
    return _forward(PORTAL_ORDER, PortalDomainStatus.ERROR, current, target)


def require_transition(current: DomainStatus, target: DomainStatus) -> None:
    """
    Raise unless the move is allowed.

    Raises:
        StateTransitionError: on a backwards move or a move out of a terminal state
    """
    if not can_transition(current, target):
        raise StateTransitionError(
            code="invalid_transition",
            message=f"Cannot move domain from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )


def require_ssl_transition(current: SSLStatus, target: SSLStatus) -> None:
    if not can_transition_ssl(current, target):
        raise StateTransitionError(
            code="invalid_ssl_transition",
            message=f"Cannot move SSL status from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )


def is_terminal(status: DomainStatus) -> bool:
    return status in TERMINAL_STATUSES


def advance_one(status: DomainStatus) -> Optional[DomainStatus]:
    """
    Next status after a successful verification.

    pending and verifying both go to ssl_pending; ssl_pending goes to active.
    pending_nameservers is driven by zone activation, not record checks, and
    terminal statuses do not advance; both return None.
    """
    if status in (DomainStatus.PENDING, DomainStatus.VERIFYING):
        return DomainStatus.SSL_PENDING
    if status == DomainStatus.SSL_PENDING:
        return DomainStatus.ACTIVE
    return None
