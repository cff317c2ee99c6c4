# lanka_basket/services/checkout_service.py
import json
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lanka_basket.data.models.order import OrderModel, OrderItemModel
from lanka_basket.domain.errors import (
    ConflictError,
    NotFoundError,
    ShopError,
    ValidationError,
)
from lanka_basket.domain.order_status import OrderStatus, PaymentMethod, PaymentStatus
from lanka_basket.repos.address_repo import AddressRepo
from lanka_basket.repos.cart_repo import CartRepo
from lanka_basket.repos.order_repo import OrderRepo
from lanka_basket.repos.product_repo import ProductRepo
from lanka_basket.repos.user_repo import UserRepo
from lanka_basket.services.lock_service import LockService
from lanka_basket.services.notification_service import NotificationService
from lanka_basket.services.payment_client import PaymentClient
from lanka_basket.services.webhook_signature import verify_signature
from lanka_basket.utils.settings import (
    FRONTEND_URL,
    PAYMENT_WEBHOOK_SECRET,
    WEBHOOK_LOCK_TTL_SECONDS,
    WEBHOOK_TOLERANCE_SECONDS,
)
from lanka_basket.utils.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")
# processor limit dla pojedynczej wartosci metadata
METADATA_VALUE_LIMIT = 500

SESSION_COMPLETED = "checkout.session.completed"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def discounted_price(price, discount) -> Decimal:
    """Unit price after a percentage discount, rounded to cents."""
    discount = Decimal(str(discount or 0))
    return to_money(Decimal(str(price)) * (Decimal("100") - discount) / Decimal("100"))


@dataclass
class CartLineSnapshot:
    product_id: int
    name: str
    quantity: int
    unit_price: Decimal
    stock: int

    @property
    def amount(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class _RequestedLine:
    product_id: int
    quantity: int


class CheckoutService:
    """
    Checkout orchestration:
    - cash on delivery: zamowienie tworzone od razu
    - karta: tylko sesja platnosci, zamowienie powstaje dopiero po webhooku
    - webhook: weryfikacja podpisu i idempotentne utworzenie zamowienia
    """

    def __init__(
        self,
        db: Session,
        payment_client: PaymentClient,
        lock_service: LockService,
        notification_service: NotificationService | None = None,
        webhook_secret: str | None = None,
        webhook_tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
    ):
        self.db = db
        self.orders = OrderRepo(db)
        self.products = ProductRepo(db)
        self.addresses = AddressRepo(db)
        self.cart = CartRepo(db)
        self.users = UserRepo(db)
        self.payment_client = payment_client
        self.lock_service = lock_service
        self.notification_service = notification_service or NotificationService()
        self.webhook_secret = PAYMENT_WEBHOOK_SECRET if webhook_secret is None else webhook_secret
        self.webhook_tolerance = webhook_tolerance

    # commands
    def submit_cash_on_delivery(
        self,
        user_id: int,
        line_items,
        address_id: int,
        sub_total,
        total,
    ) -> dict:
        address = self._get_address(user_id, address_id)
        lines = self._snapshot_lines(line_items, paid=False)
        amount = self._reconcile_totals(lines, sub_total, total)

        order = self._build_order(
            user_id=user_id,
            lines=lines,
            address=address.snapshot(),
            amount=amount,
            payment_method=PaymentMethod.CASH_ON_DELIVERY,
            payment_status=PaymentStatus.PENDING,
        )

        try:
            self.orders.add_order(order)
            self._take_stock(lines, strict=True)
            self.cart.remove_products(user_id, [line.product_id for line in lines])
            self.orders.commit()
        except Exception:
            self.orders.rollback()
            raise

        logger.info(f"COD order {order.order_id} created for user {user_id}, total {amount}")
        self._notify(user_id, order)

        return {"order_id": order.order_id, "status": order.status}

    def create_payment_session(
        self,
        user_id: int,
        line_items,
        address_id: int,
        sub_total,
        total,
    ) -> dict:
        user = self.users.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")

        self._get_address(user_id, address_id)
        lines = self._snapshot_lines(line_items, paid=False)
        amount = self._reconcile_totals(lines, sub_total, total)

        #produkt, ilosc i naliczona cena, z tego webhook odtworzy zamowienie
        encoded_items = json.dumps(
            [[line.product_id, line.quantity, str(line.unit_price)] for line in lines],
            separators=(",", ":"),
        )
        if len(encoded_items) > METADATA_VALUE_LIMIT:
            raise ValidationError("Too many different products for a single card checkout")

        metadata = {
            "userId": str(user_id),
            "addressId": str(address_id),
            "subTotalAmt": str(amount),
            "totalAmt": str(amount),
            "items": encoded_items,
        }

        logger.info(f"Creating payment session for user {user_id}, total {amount}")
        session = self.payment_client.create_checkout_session(
            line_items=[
                {
                    "product_id": line.product_id,
                    "name": line.name,
                    "quantity": line.quantity,
                    "unit_amount": int(line.unit_price * 100),
                }
                for line in lines
            ],
            customer_email=user.email,
            metadata=metadata,
            success_url=f"{FRONTEND_URL}/success",
            cancel_url=f"{FRONTEND_URL}/cancel",
            client_reference_id=str(user_id),
        )

        logger.info(f"Payment session {session['id']} created for user {user_id}")
        return {"session_id": session["id"], "redirect_url": session["url"]}

    def handle_payment_webhook(self, raw_payload: bytes, signature_header: str | None) -> dict:
        """
        Verifies the signature first; nothing is read or written for a bad one.
        After verification every outcome is acknowledged, the processor only
        redelivers on unexpected failures (5xx).
        """
        verify_signature(
            raw_payload,
            signature_header,
            self.webhook_secret,
            tolerance=self.webhook_tolerance,
        )

        result = {"received": True, "order_id": None, "duplicate": False}

        try:
            event = self._parse_event(raw_payload)
            event_id = event.get("id")
            event_type = event.get("type")
            data = event.get("data")
            session = data.get("object") if isinstance(data, dict) else None
            if not isinstance(session, dict):
                session = {}

            if event_type == SESSION_COMPLETED and session.get("payment_status") != "paid":
                logger.info(
                    f"Event {event_id}: session {session.get('id')} completed "
                    f"with payment_status={session.get('payment_status')}, waiting for async result"
                )
                return result

            if event_type == ASYNC_PAYMENT_FAILED:
                logger.warning(f"Event {event_id}: payment failed for session {session.get('id')}")
                return result

            if event_type not in (SESSION_COMPLETED, ASYNC_PAYMENT_SUCCEEDED):
                logger.info(f"Event {event_id} of type {event_type} ignored")
                return result

            order = self._apply_paid_session(event_id, session)
            result["order_id"] = order.order_id

        except ConflictError as e:
            logger.info(f"Duplicate payment event: {e.message}")
            result["duplicate"] = True
        except ShopError as e:
            logger.error(f"Payment event could not be applied: {e.message}")

        return result

    # webhook helpers
    @staticmethod
    def _parse_event(raw_payload: bytes) -> dict:
        try:
            event = json.loads(raw_payload)
        except ValueError:
            raise ValidationError("Malformed webhook payload")
        if not isinstance(event, dict):
            raise ValidationError("Malformed webhook payload")
        return event

    def _apply_paid_session(self, event_id: str | None, session: dict) -> OrderModel:
        session_id = session.get("id")
        if not session_id:
            raise ValidationError("Checkout session id missing from event")

        owner = event_id or uuid.uuid4().hex
        locked = self._acquire_webhook_lock(session_id, owner)
        if locked is False:
            raise ConflictError(f"session {session_id} is being processed by another delivery")

        try:
            if self.orders.get_by_session_id(session_id):
                raise ConflictError(f"session {session_id} already has an order")
            return self._create_card_order(event_id, session_id, session)
        finally:
            if locked:
                self._release_webhook_lock(session_id, owner)

    def _acquire_webhook_lock(self, session_id: str, owner: str) -> bool | None:
        #None = redis niedostepny, zostaje unique constraint w bazie
        try:
            return self.lock_service.acquire_session_lock(
                session_id, owner, ttl=WEBHOOK_LOCK_TTL_SECONDS
            )
        except RedisError as e:
            logger.warning(f"Webhook lock unavailable for session {session_id}: {e}")
            return None

    def _release_webhook_lock(self, session_id: str, owner: str):
        try:
            self.lock_service.release_session_lock(session_id, owner)
        except RedisError as e:
            logger.warning(f"Failed to release webhook lock for session {session_id}: {e}")

    def _create_card_order(self, event_id: str | None, session_id: str, session: dict) -> OrderModel:
        metadata = session.get("metadata") or {}
        try:
            user_id = int(metadata["userId"])
            address_id = int(metadata["addressId"])
            raw_items = json.loads(metadata["items"])
            requested = [_RequestedLine(int(p), int(q)) for p, q, _ in raw_items]
            charged = {int(p): to_money(price) for p, _, price in raw_items}
        except (KeyError, TypeError, ValueError, InvalidOperation):
            raise ValidationError(f"Checkout session {session_id} carries incomplete metadata")

        if not self.users.get_user(user_id):
            raise NotFoundError(f"User {user_id} from session {session_id} not found")

        address = self._get_address(user_id, address_id, active_only=False)

        # platnosc juz pobrana, nazwa z produktu, cena z metadata sesji
        lines = self._snapshot_lines(requested, paid=True)
        for line in lines:
            line.unit_price = charged[line.product_id]
        amount = to_money(sum((line.amount for line in lines), Decimal("0.00")))

        amount_total = session.get("amount_total")
        if isinstance(amount_total, int) and amount_total != int(amount * 100):
            logger.warning(
                f"Session {session_id}: charged {amount_total} minor units, order total {amount}"
            )

        order = self._build_order(
            user_id=user_id,
            lines=lines,
            address=address.snapshot(),
            amount=amount,
            payment_method=PaymentMethod.CARD,
            payment_status=PaymentStatus.COMPLETED,
            payment_id=session.get("payment_intent"),
            checkout_session_id=session_id,
            webhook_event_id=event_id,
            invoice_receipt=session.get("invoice"),
        )

        try:
            self.orders.add_order(order)
            self._take_stock(lines, strict=False)
            self.cart.remove_products(user_id, [line.product_id for line in lines])
            self.orders.commit()
        except IntegrityError:
            self.orders.rollback()
            # duplikat tylko jesli rownolegla dostawa faktycznie zapisala zamowienie,
            # inaczej 500 i processor ponowi webhook
            if self.orders.get_by_session_id(session_id):
                raise ConflictError(f"session {session_id} already has an order")
            logger.error(f"Card order for session {session_id} could not be stored")
            raise
        except Exception:
            self.orders.rollback()
            raise

        logger.info(
            f"Card order {order.order_id} created from session {session_id} (event {event_id})"
        )
        self._notify(user_id, order)
        return order

    # shared order path
    def _get_address(self, user_id: int, address_id: int, active_only: bool = True):
        address = self.addresses.get_address(address_id)
        if not address or address.user_id != user_id:
            raise NotFoundError("Delivery address not found")
        if active_only and not address.status:
            raise NotFoundError("Delivery address not found")
        return address

    def _snapshot_lines(self, line_items, paid: bool = False) -> list[CartLineSnapshot]:
        """
        paid=True: klient juz zaplacil, produkt wycofany ze sklepu lub brak
        na magazynie nie blokuje zamowienia
        """
        # ten sam produkt kilka razy = jedna pozycja
        merged: dict[int, int] = {}
        for item in line_items or []:
            if not isinstance(item.quantity, int) or item.quantity <= 0:
                raise ValidationError("Quantity must be a positive integer")
            merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity

        if not merged:
            raise ValidationError("No items selected for the order")

        products = self.products.get_products(merged.keys())

        lines = []
        for product_id, quantity in merged.items():
            product = products.get(product_id)
            if not product or (not paid and not product.publish):
                raise NotFoundError(f"Product {product_id} not found")

            if not paid and quantity > product.stock:
                raise ValidationError(
                    f"Only {product.stock} item(s) of {product.name} left in stock"
                )

            lines.append(
                CartLineSnapshot(
                    product_id=product.id,
                    name=product.name,
                    quantity=quantity,
                    unit_price=discounted_price(product.price, product.discount),
                    stock=product.stock,
                )
            )
        return lines

    @staticmethod
    def _reconcile_totals(lines: list[CartLineSnapshot], sub_total, total) -> Decimal:
        amount = to_money(sum((line.amount for line in lines), Decimal("0.00")))

        for label, value in (("subTotalAmt", sub_total), ("totalAmt", total)):
            try:
                claimed = Decimal(str(value))
            except (InvalidOperation, TypeError):
                raise ValidationError(f"{label} is not a number")
            if abs(claimed - amount) >= CENT:
                raise ValidationError(
                    f"{label} {claimed} does not match the items total {amount}"
                )
        return amount

    def _take_stock(self, lines: list[CartLineSnapshot], strict: bool):
        for line in lines:
            if strict:
                if self.products.decrement_stock(line.product_id, line.quantity) == 0:
                    raise ValidationError(f"{line.name} went out of stock")
            else:
                if line.stock < line.quantity:
                    logger.warning(
                        f"Product {line.product_id} oversold: stock {line.stock}, ordered {line.quantity}"
                    )
                self.products.decrement_stock_clamped(line.product_id, line.quantity)

    def _notify(self, user_id: int, order: OrderModel):
        # zamowienie jest juz zapisane, brak brokera nie moze go cofnac
        try:
            self.notification_service.send_order_notification(
                user_id, order.order_id, order.payment_method
            )
        except Exception as e:
            logger.warning(f"Failed to queue notification for order {order.order_id}: {e}")

    @staticmethod
    def _build_order(
        user_id: int,
        lines: list[CartLineSnapshot],
        address: dict,
        amount: Decimal,
        payment_method: PaymentMethod,
        payment_status: PaymentStatus,
        **extra,
    ) -> OrderModel:
        return OrderModel(
            order_id=f"ORD-{uuid.uuid4().hex}",
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            payment_status=payment_status.value,
            payment_method=payment_method.value,
            delivery_address=address,
            sub_total=amount,
            total=amount,
            items=[
                OrderItemModel(
                    product_id=line.product_id,
                    name=line.name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for line in lines
            ],
            **extra,
        )
