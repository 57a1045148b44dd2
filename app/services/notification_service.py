# app/services/notification_service.py
from app.celery_worker import celery_app
from app.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Powiadomienia uzytkownika i alerty dla operatora.
    Uzywa Celery do asynchronicznego przetwarzania.
    """

    @staticmethod
    def send_order_notification(user_id: int, order_id: int):
        """
        Wysyła powiadomienie o przyjęciu zamówienia.
        """
        send_order_notification_task.delay(user_id, order_id)

    @staticmethod
    def send_reconciliation_alert(alert: dict):
        """
        Alert dla operatora: platnosc przechwycona, zamowienie nie zapisane.
        Najpierw log (widoczny nawet gdy broker lezy), potem task.
        """
        logger.error("[RECONCILIATION] payment captured without order", extra=alert)
        send_reconciliation_alert_task.delay(alert)


@celery_app.task(name="app.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: int, order_id: int):
    """
    Celery task - w prawdziwym systemie wysłałby email/SMS/push.
    Teraz tylko loguje.
    """
    logger.info(f"[NOTIFICATION] User {user_id}: Order {order_id} is being processed")
    return {"user_id": user_id, "order_id": order_id, "status": "sent"}


@celery_app.task(name="app.services.notification_service.send_reconciliation_alert_task")
def send_reconciliation_alert_task(alert: dict):
    """
    Celery task - tu podpina sie pager/kanal operatorow.
    Klucz korelacji z operatorem platnosci to capture_id.
    """
    logger.error(
        f"[ALERT] capture {alert.get('capture_id')} (intent {alert.get('intent_id')}) "
        f"has no order: {alert.get('reason')}",
        extra={"alert": alert},
    )
    return {"capture_id": alert.get("capture_id"), "status": "raised"}
