# app/core/config.py
import json
from typing import List, Union, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    # ==== Інфраструктура ====
    database_url: str = "postgresql+asyncpg://app:app@db:5432/fulfillment"
    redis_url: str = "redis://redis:6379/0"
    notifications_queue: str = "notifications"
    # RQ: паузи між повторними спробами доставки, секунди
    notification_retry_intervals: List[int] = [5, 15, 30]
    notification_job_timeout: int = 60

    # ==== Identity provider (JWT видає зовнішній IdP) ====
    jwt_secret: str = "changeme"
    jwt_alg: str = "HS256"
    jwt_expires_min: int = 60

    # ==== CORS ====
    # CORS_ORIGINS=http://localhost:5173,http://127.0.0.1:5173,...
    cors_origins: Union[str, List[str]] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8080",
    ]

    # ==== Нумерація тікетів ====
    repair_ticket_prefix: str = "REP"
    booking_ticket_prefix: str = "BKG"

    # ==== Bootstrap / demo ====
    admin_email: str = "admin@example.com"
    admin_name: str = "Admin"
    create_demo_users: bool = True

    # ==== UI build (опційно) ====
    ui_dist_dir: Optional[str] = None

    # ==== Логування / Оточення ====
    env: str = "dev"          # dev|staging|prod
    log_level: str = "INFO"   # DEBUG|INFO|WARNING|ERROR

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                try:
                    parsed = json.loads(s)
                except ValueError:
                    parsed = None
                if isinstance(parsed, list):
                    return [str(i).strip() for i in parsed if str(i).strip()]
            return [i.strip() for i in s.split(",") if i.strip()]
        return v


settings = Settings()
