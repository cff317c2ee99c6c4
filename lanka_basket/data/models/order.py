from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship, validates

from lanka_basket.data.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_id = Column(String, nullable=False, unique=True)  # ORD-<hex>, publiczny identyfikator
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    status = Column(String, nullable=False, default="pending")  # pending, confirm, processing, shipped, delivered, cancelled
    payment_status = Column(String, nullable=False, default="pending")  # pending, completed, failed
    payment_method = Column(String, nullable=False)  # CASH_ON_DELIVERY, CARD
    payment_id = Column(String, nullable=True)

    # jedna sesja platnosci = jedno zamowienie
    checkout_session_id = Column(String, nullable=True, unique=True)
    webhook_event_id = Column(String, nullable=True)
    invoice_receipt = Column(String, nullable=True)

    delivery_address = Column(JSON, nullable=False)
    sub_total = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )

    @validates("sub_total", "total")
    def _freeze_paid_amounts(self, key, value):
        current = getattr(self, key)
        if self.payment_status == "completed" and current is not None and current != value:
            raise ValueError(f"{key} cannot change once payment is completed")
        return value


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)

    order = relationship("OrderModel", back_populates="items")
