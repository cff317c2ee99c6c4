# lanka_basket/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List
from decimal import Decimal
from datetime import datetime

from lanka_basket.domain.order_status import OrderStatus


class LineItemIn(BaseModel):
    """Pozycja z koszyka wybrana do zamowienia."""

    product_id: int = Field(..., gt=0, alias="productId", description="Product id (> 0)")
    quantity: int = Field(..., gt=0, description="Quantity (> 0)")

    model_config = ConfigDict(populate_by_name=True)


class CheckoutIn(BaseModel):
    """Body for both cash-on-delivery and card checkout."""

    list_items: List[LineItemIn] = Field(..., min_length=1)
    address_id: int = Field(..., gt=0, alias="addressId")
    sub_total: Decimal = Field(..., ge=0, alias="subTotalAmt")
    total: Decimal = Field(..., ge=0, alias="totalAmt")

    model_config = ConfigDict(populate_by_name=True)


class OrderStatusIn(BaseModel):
    order_id: str = Field(..., min_length=1, alias="orderId")
    status: OrderStatus

    model_config = ConfigDict(populate_by_name=True)


class ApiResponse(BaseModel):
    message: str
    error: bool = False
    success: bool = True


class CashOnDeliveryOut(ApiResponse):
    order_id: str = Field(..., alias="orderId")
    status: str

    model_config = ConfigDict(populate_by_name=True)


class CheckoutSessionOut(ApiResponse):
    session_id: str = Field(..., alias="sessionId")
    redirect_url: str = Field(..., alias="redirectUrl")

    model_config = ConfigDict(populate_by_name=True)


class WebhookAck(BaseModel):
    received: bool = True


class OrderItemOut(BaseModel):
    product_id: int = Field(..., alias="productId")
    name: str
    quantity: int
    unit_price: Decimal = Field(..., alias="unitPrice")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class OrderOut(BaseModel):
    id: int
    order_id: str = Field(..., alias="orderId")
    user_id: int = Field(..., alias="userId")
    status: str = Field(..., alias="orderStatus")
    payment_status: str
    payment_method: str
    payment_id: str | None = Field(None, alias="paymentId")
    invoice_receipt: str | None = None
    delivery_address: dict
    sub_total: Decimal = Field(..., alias="subTotalAmt")
    total: Decimal = Field(..., alias="totalAmt")
    items: List[OrderItemOut]
    created_at: datetime = Field(..., alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class OrderListOut(ApiResponse):
    data: List[OrderOut]


class OrderDetailOut(ApiResponse):
    data: OrderOut


class ErrorOut(BaseModel):
    message: str
    error: bool = True
    success: bool = False
