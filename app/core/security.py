# app/core/security.py
from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import jwt, JWTError

ALGORITHM = "HS256"

# Токени видає зовнішній identity provider; тут лише перевірка підпису
# і (для dev-скриптів/тестів) випуск токена з тими ж claims.


def create_access_token(
    *, subject: str, role: str, name: str | None, secret: str,
    expires_minutes: int = 60, algorithm: str = ALGORITHM,
) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=expires_minutes)
    payload = {
        "sub": subject,
        "role": role,
        "name": name,
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str = ALGORITHM) -> Dict[str, Any]:
    try:
        data = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        raise ValueError("invalid_token") from e
    if data.get("type") != "access" or "sub" not in data:
        raise ValueError("invalid_token_payload")
    return data
