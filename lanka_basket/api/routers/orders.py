# lanka_basket/api/routers/orders.py
from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from lanka_basket.api.deps import (
    get_checkout_service,
    get_current_user,
    get_order_service,
    require_admin,
)
from lanka_basket.data.models.user import UserModel
from lanka_basket.domain.errors import AuthenticationError
from lanka_basket.domain.schemas import (
    CashOnDeliveryOut,
    CheckoutIn,
    CheckoutSessionOut,
    ErrorOut,
    OrderDetailOut,
    OrderListOut,
    OrderStatusIn,
    WebhookAck,
)
from lanka_basket.services.checkout_service import CheckoutService
from lanka_basket.services.order_service import OrderService

router = APIRouter(prefix="/api/order", tags=["orders"])


@router.post(
    "/cash-on-delivery",
    response_model=CashOnDeliveryOut,
    status_code=201,
    responses={400: {"model": ErrorOut}, 404: {"model": ErrorOut}},
)
def cash_on_delivery(
    payload: CheckoutIn,
    user: UserModel = Depends(get_current_user),
    svc: CheckoutService = Depends(get_checkout_service),
):
    """
    Tworzy zamowienie platne przy odbiorze.
    """
    result = svc.submit_cash_on_delivery(
        user_id=user.id,
        line_items=payload.list_items,
        address_id=payload.address_id,
        sub_total=payload.sub_total,
        total=payload.total,
    )
    return {"message": "Order placed successfully", **result}


@router.post(
    "/checkout",
    response_model=CheckoutSessionOut,
    responses={400: {"model": ErrorOut}, 404: {"model": ErrorOut}, 502: {"model": ErrorOut}},
)
def checkout(
    payload: CheckoutIn,
    user: UserModel = Depends(get_current_user),
    svc: CheckoutService = Depends(get_checkout_service),
):
    """
    Tworzy sesje platnosci, zamowienie powstanie dopiero po webhooku.
    """
    result = svc.create_payment_session(
        user_id=user.id,
        line_items=payload.list_items,
        address_id=payload.address_id,
        sub_total=payload.sub_total,
        total=payload.total,
    )
    return {"message": "Payment session created", **result}


@router.post("/webhook", response_model=WebhookAck, responses={400: {"model": ErrorOut}})
async def payment_webhook(
    request: Request,
    svc: CheckoutService = Depends(get_checkout_service),
):
    # surowe body, podpis liczony jest po bajtach
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        return await run_in_threadpool(svc.handle_payment_webhook, payload, signature)
    except AuthenticationError as e:
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e.message}")


@router.get("/order-list", response_model=OrderListOut)
def order_list(
    user: UserModel = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    return {"message": "Order list", "data": svc.list_orders(user.id)}


@router.post("/admin/get-all-orders", response_model=OrderListOut)
def all_orders(
    admin: UserModel = Depends(require_admin),
    svc: OrderService = Depends(get_order_service),
):
    return {"message": "All orders", "data": svc.list_all_orders()}


@router.post(
    "/admin/update-status",
    response_model=OrderDetailOut,
    responses={400: {"model": ErrorOut}, 404: {"model": ErrorOut}},
)
def update_status(
    payload: OrderStatusIn,
    admin: UserModel = Depends(require_admin),
    svc: OrderService = Depends(get_order_service),
):
    order = svc.update_status(payload.order_id, payload.status.value)
    return {"message": "Order status updated", "data": order}
