# app/core/logging.py
import json
import logging
import logging.config
import uuid
from typing import Any, Mapping
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# атрибути, які є в кожному LogRecord; усе інше прийшло через extra=
_RESERVED = frozenset(vars(logging.LogRecord("x", logging.INFO, "", 0, "", (), None))) | {"message", "asctime"}


def record_extra(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED and not k.startswith("_")}


class ExtraFormatter(logging.Formatter):
    """Плоский формат + key=value з extra (ticket_id, request_id, ...)."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extra = record_extra(record)
        if not extra:
            return base
        return base + " " + " ".join(f"{k}={v}" for k, v in sorted(extra.items()))


class JsonFormatter(logging.Formatter):
    """Один JSON-об'єкт на рядок, для збирача логів у prod."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            **record_extra(record),
        }
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Єдина конфігурація логів для апки, воркера та Uvicorn."""
    LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"()": ExtraFormatter, "fmt": LOG_FORMAT},
            "json": {"()": JsonFormatter},
        },
        "handlers": {
            "default": {"class": "logging.StreamHandler", "formatter": "json" if json_logs else "plain"},
        },
        "loggers": {
            "": {"handlers": ["default"], "level": level},
            "uvicorn": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["default"], "level": level, "propagate": False},
            "rq.worker": {"handlers": ["default"], "level": level, "propagate": False},
        },
    })


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    X-Request-ID: береться з вхідного заголовка або генерується,
    кладеться в request.state і повертається у відповіді.
    """

    header_name = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        response: Response = await call_next(request)
        response.headers[self.header_name] = request_id
        return response


def log_extra(request: Request) -> Mapping[str, Any]:
    """
    Хелпер для роутерів:
    logger.info("ticket_created", extra={**log_extra(req), "ticket_id": t.id})
    """
    rid = getattr(request.state, "request_id", None)
    return {"request_id": rid} if rid else {}
