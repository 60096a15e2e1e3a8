# tests/conftest.py
import os

# до імпорту app: settings читаються один раз при імпорті
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./unused.db")
os.environ.setdefault("JWT_SECRET", "test-secret")

from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from app.db.base import Base  # noqa: E402
from app.db.models import Resource, RoleEnum, User  # noqa: E402
from app.services import notifications  # noqa: E402


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def sent(monkeypatch):
    """Замість Redis записуємо все, що пішло б у чергу."""
    calls = []

    def _enqueue(event_type, payload):
        calls.append((event_type, dict(payload)))
        return f"job-{len(calls)}"

    monkeypatch.setattr(notifications, "enqueue", _enqueue)
    return calls


@pytest_asyncio.fixture
async def users(db):
    specs = {
        "employee": ("employee@example.com", "Employee", RoleEnum.employee),
        "other": ("other@example.com", "Other Employee", RoleEnum.employee),
        "tech": ("tech@example.com", "Tech One", RoleEnum.technician),
        "tech2": ("tech2@example.com", "Tech Two", RoleEnum.technician),
        "admin": ("service@example.com", "Service Admin", RoleEnum.service_admin),
        "procurement": ("procurement@example.com", "Procurement", RoleEnum.procurement_admin),
        "root": ("root@example.com", "Root", RoleEnum.super_admin),
    }
    created = {key: User(email=e, name=n, role=r, is_active=True) for key, (e, n, r) in specs.items()}
    db.add_all(created.values())
    await db.commit()
    return SimpleNamespace(**created)


@pytest_asyncio.fixture
async def resource(db):
    r = Resource(name="Zoom Room 1", category="zoom", capacity=100, is_active=True)
    db.add(r)
    await db.commit()
    return r
