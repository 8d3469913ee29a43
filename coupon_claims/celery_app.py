from celery import Celery

from .config import load_settings

settings = load_settings()

app = Celery("coupon_claims", broker=settings.broker_url, backend=settings.result_backend)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_time_limit=60,
    task_soft_time_limit=30,
)
