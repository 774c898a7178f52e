"""Celery configuration for the triage_core project."""

import os

from celery import Celery
from django.conf import settings

# Set the default Django settings module for the 'celery' program
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "triage_core.settings.dev")

app = Celery("triage_core")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django app configs.
app.autodiscover_tasks()

app.conf.update(
    worker_disable_rate_limits=False,
    task_time_limit=30 * 60,  # 30 minutes max task execution time
    task_soft_time_limit=20 * 60,
    worker_max_tasks_per_child=1000,  # Prevent memory leaks
    worker_hijack_root_logger=False,
    task_create_missing_queues=True,
    task_default_queue="default",
    result_expires=60 * 60 * 24,  # Results expire in 1 day
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.TIME_ZONE,
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_log_format="%(asctime)s [%(process)d] [%(levelname)s] %(message)s",
    worker_task_log_format=(
        "%(asctime)s [%(process)d] [%(levelname)s] "
        "[%(task_name)s(%(task_id)s)] %(message)s"
    ),
)


@app.on_after_finalize.connect
def setup_periodic_tasks(sender, **kwargs):
    """Install the mail sync beat schedule once all apps are loaded."""
    from mail_sync.celery_beat import CELERY_BEAT_SCHEDULE

    sender.conf.beat_schedule = CELERY_BEAT_SCHEDULE
