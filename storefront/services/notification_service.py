# storefront/services/notification_service.py
from decimal import Decimal

from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Order notifications, processed asynchronously by Celery.
    """

    @staticmethod
    def send_order_notification(user_id: int, order_id: int, total: Decimal, warning: str | None = None) -> bool:
        """
        Best-effort: the order already exists, so a broker failure is only logged.
        """
        try:
            send_order_notification_task.delay(user_id, order_id, str(total), warning)
            return True
        except Exception as e:
            logger.warning(f"Could not dispatch notification for order {order_id}: {e}")
            return False


@celery_app.task(name="storefront.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: int, order_id: int, total: str, warning: str | None = None):
    """
    Celery task - a real deployment would hand this to an email/SMS gateway.
    """
    logger.info(f"[NOTIFICATION] User {user_id}: Order {order_id} placed, total {total}")
    if warning:
        logger.warning(f"[NOTIFICATION] Order {order_id}: {warning}")

    return {"user_id": user_id, "order_id": order_id, "status": "sent"}
