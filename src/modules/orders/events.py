"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderPlaced(DomainEvent):
    """Raised when an order is persisted, before any provider call."""

    user_id: str = ""
    payment_method: str = ""
    amount: str = ""


@dataclass(frozen=True)
class OrderPaid(DomainEvent):
    """Raised exactly once, by the write that flipped ``payment`` to true."""

    payment_method: str = ""
    trigger: str = ""


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an admin moves an order to a different status."""

    old_status: str = ""
    new_status: str = ""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an unpaid order is abandoned at checkout."""

    reason: str = ""
