"""
Celery application for outbound e-mail.

Broker and result backend default to REDIS_URL. E-mail tasks are routed
to the `email` queue.
"""

from celery import Celery

from projecthub.core.config import settings

EMAIL_TASKS = "projecthub.workers.email_tasks"

celery_app = Celery(
    "projecthub",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[EMAIL_TASKS],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
    # A task whose worker dies mid-send is redelivered, not lost.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_queues={"default": {}, "email": {}},
    task_routes={f"{EMAIL_TASKS}.*": {"queue": "email"}},
)
