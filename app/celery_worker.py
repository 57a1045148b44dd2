# app/celery_worker.py
from celery import Celery

from app.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# WAŻNE: Explicite importuj taski, żeby Celery je zarejestrował
celery_app.conf.imports = (
    "app.services.notification_service",
)

# alerty o platnosciach bez zamowienia nie moga zginac razem z workerem
celery_app.conf.task_acks_late = True
celery_app.conf.timezone = "UTC"
