# app/services/notifications.py
import logging
from typing import Any, Iterable, Mapping

import redis
from rq import Queue, Retry

from app.core.config import settings

log = logging.getLogger(__name__)

_queue: Queue | None = None


def _get_queue() -> Queue:
    global _queue
    if _queue is None:
        _queue = Queue(settings.notifications_queue, connection=redis.from_url(settings.redis_url))
    return _queue


def enqueue(event_type: str, payload: Mapping[str, Any]) -> str | None:
    """
    Кладемо подію в чергу: викликаємо handle_event у воркері.
    Повертає job.id або None у разі помилки: перехід уже закомічено,
    доставка сповіщення його не відкочує.
    """
    q = _get_queue()
    try:
        job = q.enqueue(
            "app.workers.rq_worker.handle_event",
            event_type,
            dict(payload),
            job_timeout=settings.notification_job_timeout,
            retry=Retry(
                max=len(settings.notification_retry_intervals),
                interval=settings.notification_retry_intervals,
            ),
        )
        return getattr(job, "id", None)
    except Exception as e:
        log.exception("Failed to enqueue event '%s': %s", event_type, e)
        return None


def notify(user_id: int | None, title: str, message: str, severity: str = "info") -> str | None:
    if user_id is None:
        return None
    return enqueue("notification", {
        "user_id": user_id,
        "title": title,
        "message": message,
        "severity": severity,
    })


def notify_many(user_ids: Iterable[int | None], title: str, message: str, severity: str = "info") -> None:
    for uid in dict.fromkeys(user_ids):
        notify(uid, title, message, severity)
