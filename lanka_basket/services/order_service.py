# lanka_basket/services/order_service.py
from sqlalchemy.orm import Session

from lanka_basket.data.models.order import OrderModel
from lanka_basket.domain.errors import NotFoundError
from lanka_basket.domain.order_status import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    next_order_status,
    next_payment_status,
)
from lanka_basket.repos.order_repo import OrderRepo
from lanka_basket.utils.logging import get_logger

logger = get_logger(__name__)


def order_to_dict(order: OrderModel) -> dict:
    return {
        "id": order.id,
        "order_id": order.order_id,
        "user_id": order.user_id,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "payment_id": order.payment_id,
        "invoice_receipt": order.invoice_receipt,
        "delivery_address": order.delivery_address,
        "sub_total": order.sub_total,
        "total": order.total,
        "items": [
            {
                "product_id": i.product_id,
                "name": i.name,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
            }
            for i in order.items
        ],
        "created_at": order.created_at,
    }


class OrderService:
    """
    Zapytania o zamowienia i zmiany statusu przez admina.
    Tworzenie zamowien jest w CheckoutService.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepo(db)

    #query
    def list_orders(self, user_id: int) -> list[dict]:
        return [order_to_dict(o) for o in self.repo.list_for_user(user_id)]

    def list_all_orders(self) -> list[dict]:
        return [order_to_dict(o) for o in self.repo.list_all()]

    #command
    def update_status(self, order_id: str, status: str) -> dict:
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        previous = order.status
        target = next_order_status(order.status, status)
        order.status = target.value

        # przy COD pieniadze sa odbierane przy dostawie
        if (
            target == OrderStatus.DELIVERED
            and order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value
            and order.payment_status == PaymentStatus.PENDING.value
        ):
            order.payment_status = next_payment_status(
                order.payment_status, PaymentStatus.COMPLETED.value
            ).value

        self.repo.commit()

        logger.info(f"Order {order.order_id} status {previous} -> {order.status}")
        return order_to_dict(order)
