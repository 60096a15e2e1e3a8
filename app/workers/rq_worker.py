# app/workers/rq_worker.py
import os
import logging
from typing import Any, Callable, Mapping

import redis
from rq import Queue, Worker

from app.core.config import settings
from app.core.logging import setup_logging

logger = logging.getLogger("worker.notifications")


def send_notification_mock(user_id: Any, title: str, message: str, severity: str) -> None:
    # транспорт доставки (email/push) поза межами сервісу, лише лог
    logger.info(
        "SEND_NOTIFICATION",
        extra={"user_id": user_id, "title": title, "severity": severity, "body_len": len(message)},
    )


def on_notification(payload: Mapping[str, Any]) -> None:
    send_notification_mock(
        payload.get("user_id"),
        payload.get("title") or "",
        payload.get("message") or "",
        payload.get("severity") or "info",
    )


EVENT_HANDLERS: dict[str, Callable[[Mapping[str, Any]], None]] = {
    "notification": on_notification,
}


def handle_event(event_type: str, payload: Mapping[str, Any] | None = None) -> None:
    handler = EVENT_HANDLERS.get(event_type)
    if not handler:
        logger.warning("unknown_event", extra={"event_type": event_type})
        return
    handler(payload or {})


def main() -> None:
    setup_logging(settings.log_level, json_logs=settings.env == "prod")
    logger.info("worker_starting", extra={"queue": settings.notifications_queue, "redis": settings.redis_url})
    conn = redis.from_url(settings.redis_url)
    queue = Queue(settings.notifications_queue, connection=conn)
    worker = Worker([queue], connection=conn, name=os.getenv("WORKER_NAME", "notifications-worker"))
    worker.work(logging_level=logging.INFO)


if __name__ == "__main__":
    main()
