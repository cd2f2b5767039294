"""
OrderDesk Backend - Order Status Machine
==========================================

What:  Pure transition function over an order's status fields.
How:   `apply_transition(snapshot, action)` returns the next snapshot or raises
       TransitionRejectedError with a reason the admin UI can show.
Who:   OrderService, after reading the order fresh from the store.

Invariants held by every accepted transition:
    status == Canceled   ⇔ payment == Canceled ∧ delivery == Canceled
    status == Completed  ⇔ payment == Paid     ∧ delivery == Shipped

Transitions:
    Pay                      guard: not canceled      → payment = Paid
    SetDeliveryStatus(s)     guard: not canceled      → delivery = s
    Cancel                   guard: not completed     → all three = Canceled
    AssignShipper(id)        unconditional            → shipper_id = id

The module does no I/O and never touches the ORM object it was built from.
"""

import uuid
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Union

from orderdesk.exceptions import TransitionRejectedError
from orderdesk.models.status import DeliveryStatus, OrderStatus, PaymentStatus

CANCELED_MESSAGE = "This order was canceled!"
COMPLETED_MESSAGE = "Can not cancel this order that was completed."
DELIVERY_CANCEL_MESSAGE = "Use the cancel action to cancel an order's delivery."


@dataclass(frozen=True)
class StatusSnapshot:
    """The status-bearing fields of an order at one point in time."""

    status: OrderStatus
    payment_status: PaymentStatus
    delivery_status: DeliveryStatus
    shipper_id: Optional[uuid.UUID] = None

    @classmethod
    def of(cls, order: Any) -> "StatusSnapshot":
        return cls(
            status=OrderStatus(order.status),
            payment_status=PaymentStatus(order.payment_status),
            delivery_status=DeliveryStatus(order.delivery_status),
            shipper_id=order.shipper_id,
        )

    @property
    def is_canceled(self) -> bool:
        return (
            self.status == OrderStatus.CANCELED
            or self.payment_status == PaymentStatus.CANCELED
        )

    def changed_fields(self, before: "StatusSnapshot") -> Dict[str, Any]:
        """Column name → new value for every field that differs from `before`."""
        return {
            name: getattr(self, name)
            for name in ("status", "payment_status", "delivery_status", "shipper_id")
            if getattr(self, name) != getattr(before, name)
        }


# ── Actions ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Pay:
    name = "pay"


@dataclass(frozen=True)
class SetDeliveryStatus:
    delivery_status: DeliveryStatus
    name = "set_delivery_status"


@dataclass(frozen=True)
class Cancel:
    name = "cancel"


@dataclass(frozen=True)
class AssignShipper:
    shipper_id: Optional[uuid.UUID]
    name = "assign_shipper"


Action = Union[Pay, SetDeliveryStatus, Cancel, AssignShipper]


def derive_status(payment: PaymentStatus, delivery: DeliveryStatus) -> OrderStatus:
    """Aggregate status implied by payment and delivery status."""
    if payment == PaymentStatus.CANCELED and delivery == DeliveryStatus.CANCELED:
        return OrderStatus.CANCELED
    if payment == PaymentStatus.PAID and delivery == DeliveryStatus.SHIPPED:
        return OrderStatus.COMPLETED
    return OrderStatus.PENDING


def _reject_if_canceled(snapshot: StatusSnapshot, action: Action) -> None:
    if snapshot.is_canceled:
        raise TransitionRejectedError(
            message=CANCELED_MESSAGE,
            action=action.name,
            context={"status": snapshot.status.value, "payment_status": snapshot.payment_status.value},
        )


def apply_transition(snapshot: StatusSnapshot, action: Action) -> StatusSnapshot:
    """
    Apply `action` to `snapshot`.

    Returns:
        The next snapshot (equal to the input when nothing changes).

    Raises:
        TransitionRejectedError: A guard refused the action; state unchanged.
    """
    if isinstance(action, Pay):
        _reject_if_canceled(snapshot, action)
        payment = PaymentStatus.PAID
        return replace(
            snapshot,
            payment_status=payment,
            status=derive_status(payment, snapshot.delivery_status),
        )

    if isinstance(action, SetDeliveryStatus):
        _reject_if_canceled(snapshot, action)
        delivery = DeliveryStatus(action.delivery_status)
        if delivery == DeliveryStatus.CANCELED:
            raise TransitionRejectedError(
                message=DELIVERY_CANCEL_MESSAGE,
                action=action.name,
            )
        return replace(
            snapshot,
            delivery_status=delivery,
            status=derive_status(snapshot.payment_status, delivery),
        )

    if isinstance(action, Cancel):
        if snapshot.status == OrderStatus.COMPLETED:
            raise TransitionRejectedError(
                message=COMPLETED_MESSAGE,
                action=action.name,
                context={"status": snapshot.status.value},
            )
        return replace(
            snapshot,
            status=OrderStatus.CANCELED,
            payment_status=PaymentStatus.CANCELED,
            delivery_status=DeliveryStatus.CANCELED,
        )

    if isinstance(action, AssignShipper):
        return replace(snapshot, shipper_id=action.shipper_id)

    raise TypeError(f"Unknown order action: {action!r}")
