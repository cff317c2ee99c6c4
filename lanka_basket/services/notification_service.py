# lanka_basket/services/notification_service.py
from lanka_basket.celery_worker import celery_app
from lanka_basket.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Serwis do wysylania powiadomien o zamowieniach.
    Uzywa Celery do asynchronicznego przetwarzania.
    """

    @staticmethod
    def send_order_notification(user_id: int, order_id: str, payment_method: str):
        send_order_notification_task.delay(user_id, order_id, payment_method)


@celery_app.task(name="lanka_basket.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: int, order_id: str, payment_method: str):
    """
    Celery task, the delivery channel (email/SMS) plugs in here.
    For now it only logs.
    """
    logger.info(
        f"[NOTIFICATION] User {user_id}: order {order_id} placed ({payment_method})"
    )
    return {"user_id": user_id, "order_id": order_id, "status": "sent"}
