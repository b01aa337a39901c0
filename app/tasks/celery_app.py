"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from core.config import config

# Create Celery app
celery_app = Celery(
    "class_capacity",
    broker=config.REDIS_URL,
    backend=config.REDIS_URL,
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=1000,
)

# Auto-discover tasks from app.tasks module
celery_app.autodiscover_tasks(["app.tasks"])

# Configure periodic tasks (Celery Beat)
celery_app.conf.beat_schedule = {
    # Look for classes running out of seats (hourly)
    "scan-classes-needing-attention": {
        "task": "scan_classes_needing_attention",
        "schedule": crontab(minute=0),
    },
}


if __name__ == "__main__":
    celery_app.start()
