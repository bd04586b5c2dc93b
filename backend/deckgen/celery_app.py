from celery import Celery
from celery.schedules import crontab

from deckgen.config import settings

celery_app = Celery("deckgen", broker=settings.redis_url, backend=settings.redis_url, include=["deckgen.tasks"])
celery_app.conf.update(
    task_track_started=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    beat_schedule={
        "process-scheduled-decks": {
            "task": "deckgen.tasks.process_scheduled_decks",
            "schedule": crontab(hour=2, minute=0),
        },
        "poll-scheduled-batches": {
            "task": "deckgen.tasks.poll_scheduled_batches",
            "schedule": crontab(minute="*/5"),
        },
    },
)
