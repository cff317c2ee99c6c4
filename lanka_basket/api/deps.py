# lanka_basket/api/deps.py
from functools import lru_cache

import jwt
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from lanka_basket.data.database import get_db
from lanka_basket.data.models.user import UserModel
from lanka_basket.domain.errors import AuthenticationError, AuthorizationError
from lanka_basket.repos.user_repo import UserRepo
from lanka_basket.services.checkout_service import CheckoutService
from lanka_basket.services.lock_service import LockService
from lanka_basket.services.notification_service import NotificationService
from lanka_basket.services.order_service import OrderService
from lanka_basket.services.payment_client import PaymentClient
from lanka_basket.utils.settings import JWT_ALGORITHM, JWT_SECRET_KEY


def _read_token(request: Request) -> str | None:
    # cookie z frontu albo naglowek Authorization: Bearer
    token = request.cookies.get("accessToken")
    if token:
        return token
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def get_current_user(request: Request, db: Session = Depends(get_db)) -> UserModel:
    token = _read_token(request)
    if not token:
        raise AuthenticationError("Provide token")

    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    try:
        user_id = int(payload.get("id") or payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token")

    user = UserRepo(db).get_user(user_id)
    if not user:
        raise AuthenticationError("User not found")
    return user


def require_admin(user: UserModel = Depends(get_current_user)) -> UserModel:
    if not user.is_admin:
        raise AuthorizationError("Permission denied")
    return user


def get_payment_client() -> PaymentClient:
    return PaymentClient()


@lru_cache
def get_lock_service() -> LockService:
    # jeden klient redis (pula polaczen) na proces
    return LockService()


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_checkout_service(
    db: Session = Depends(get_db),
    payment_client: PaymentClient = Depends(get_payment_client),
    lock_service: LockService = Depends(get_lock_service),
    notification_service: NotificationService = Depends(get_notification_service),
) -> CheckoutService:
    return CheckoutService(
        db=db,
        payment_client=payment_client,
        lock_service=lock_service,
        notification_service=notification_service,
    )


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)
