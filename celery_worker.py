from celery import Celery
import os

# Celery configuration
celery_app = Celery(
    "hr_chat",
    broker=os.getenv("REDIS_URL", "redis://localhost:6379"),
    backend=os.getenv("REDIS_URL", "redis://localhost:6379"),
    include=["app.tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "purge-expired-notifications": {
            "task": "app.tasks.purge_expired_notifications",
            "schedule": 3600.0,
        },
    },
)
