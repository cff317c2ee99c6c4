# lanka_basket/domain/order_status.py
from enum import Enum

from lanka_basket.domain.errors import ValidationError


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRM = "confirm"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"
    CARD = "CARD"


# tylko do przodu, delivered i cancelled sa koncowe
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRM, OrderStatus.CANCELLED},
    OrderStatus.CONFIRM: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: set(),
    PaymentStatus.FAILED: set(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]


def next_order_status(current: str, target: str) -> OrderStatus:
    """
    Validates a single order status move and returns the target as an enum.
    Raises ValidationError for unknown values and for moves the lifecycle does not allow.
    """
    try:
        cur = OrderStatus(current)
        tgt = OrderStatus(target)
    except ValueError:
        raise ValidationError(f"Unknown order status: {target!r}")

    if not can_transition(cur, tgt):
        raise ValidationError(f"Order status cannot change from {cur.value} to {tgt.value}")
    return tgt


def next_payment_status(current: str, target: str) -> PaymentStatus:
    cur = PaymentStatus(current)
    tgt = PaymentStatus(target)
    if tgt not in PAYMENT_TRANSITIONS[cur]:
        raise ValidationError(f"Payment status cannot change from {cur.value} to {tgt.value}")
    return tgt
