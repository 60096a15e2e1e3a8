from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import decode_token
from app.db.models import RoleEnum as Role, User
from app.db.session import get_session

# Токен видає зовнішній identity provider, логіна в нас немає,
# тому простий HTTP Bearer замість OAuth2PasswordBearer
bearer_scheme = HTTPBearer(auto_error=False)

# Тип для DI сесії БД
DBDep = Annotated[AsyncSession, Depends(get_session)]


async def get_current_user(
    db: DBDep,
    creds: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> User:
    """
    Декодує Bearer JWT, дістає користувача з довідника і перевіряє активність.
    """
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials, settings.jwt_secret, settings.jwt_alg)
        email: str | None = payload.get("sub")
        if not email:
            raise ValueError("no_sub")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    res = await db.execute(select(User).where(User.email == email))
    user = res.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User inactive or not found")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_role(*allowed: Role):
    """
    Пускає лише користувачів, чия роль входить у перелік allowed.
    Приклад: @router.get(..., dependencies=[Depends(require_role(Role.service_admin))])
    super_admin проходить завжди.
    """
    allowed_set = set(allowed) | {Role.super_admin}

    async def _guard(current: CurrentUser) -> User:
        if current.role not in allowed_set:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return current

    return _guard


def require_staff():
    """Усі, крім звичайного заявника."""
    return require_role(Role.technician, Role.service_admin, Role.procurement_admin)
