import asyncio
import os
import tempfile
import warnings
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

# Set environment variables BEFORE importing app modules
os.environ["ENVIRONMENT"] = "local"
os.environ["DATABASE_DSN"] = f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'giftlists_tests.db')}"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-32-chars-minimum!!"
os.environ["REDIS_DSN"] = ""
os.environ["EMAIL_NOTIFICATIONS_ENABLED"] = "false"

warnings.filterwarnings("ignore", category=DeprecationWarning)

from fastapi.testclient import TestClient

from giftlists.core.access_grants import grant_store
from giftlists.core.security import create_access_token, create_csrf_token, hash_list_password
from giftlists.db.session import Base, build_engine, build_session_factory, get_db, get_session_factory
from giftlists.main import app
from giftlists.services.events import EventRecorder
from giftlists.models.models import (
    Gift,
    GiftEvent,
    GiftList,
    GiftPriority,
    GiftStatus,
    Notification,
    PrivacyMode,
    Reservation,
    ReservationStatus,
    User,
)


def pytest_configure(config):
    warnings.filterwarnings("ignore", category=DeprecationWarning)


@pytest.fixture
def anyio_backend():
    return "asyncio"


class Seed:
    """Synchronous helpers that write fixtures straight into the test database."""

    def __init__(self, engine) -> None:
        self.engine = engine
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def _add(self, obj):
        with Session(self.engine, expire_on_commit=False) as session:
            session.add(obj)
            session.commit()
            return obj.id

    def user(self, name: str = "Owner", email: str | None = None) -> int:
        email = email or f"user{self._next()}@example.com"
        return self._add(User(name=name, email=email))

    def gift_list(
        self,
        owner_id: int | None,
        privacy: PrivacyMode = PrivacyMode.PUBLIC,
        password: str | None = None,
        slug: str | None = None,
        title: str = "Birthday",
    ) -> int:
        return self._add(
            GiftList(
                owner_id=owner_id,
                title=title,
                slug=slug or f"list-{self._next()}",
                privacy=privacy.value,
                password_hash=hash_list_password(password) if password else None,
            )
        )

    def gift(
        self,
        list_id: int,
        title: str = "Headphones",
        price: str | None = "50.00",
        priority: GiftPriority = GiftPriority.MEDIUM,
        status: GiftStatus = GiftStatus.AVAILABLE,
    ) -> int:
        return self._add(
            Gift(
                list_id=list_id,
                title=title,
                price=Decimal(price) if price is not None else None,
                priority=priority.value,
                status=status.value,
            )
        )

    def slug(self, list_id: int) -> str:
        with Session(self.engine) as session:
            return session.get(GiftList, list_id).slug

    def gift_status(self, gift_id: int) -> str:
        with Session(self.engine) as session:
            return session.get(Gift, gift_id).status

    def reservations(self, gift_id: int) -> list[Reservation]:
        with Session(self.engine, expire_on_commit=False) as session:
            rows = session.execute(
                select(Reservation).where(Reservation.gift_id == gift_id).order_by(Reservation.id)
            )
            return list(rows.scalars().all())

    def active_reservations(self, gift_id: int) -> list[Reservation]:
        return [r for r in self.reservations(gift_id) if r.status == ReservationStatus.ACTIVE.value]

    def events(self, list_id: int) -> list[GiftEvent]:
        with Session(self.engine, expire_on_commit=False) as session:
            rows = session.execute(select(GiftEvent).where(GiftEvent.list_id == list_id).order_by(GiftEvent.id))
            return list(rows.scalars().all())

    def notifications(self, user_id: int) -> list[Notification]:
        with Session(self.engine, expire_on_commit=False) as session:
            rows = session.execute(
                select(Notification).where(Notification.user_id == user_id).order_by(Notification.id)
            )
            return list(rows.scalars().all())

    def assert_consistent(self, gift_id: int) -> None:
        """A gift is reserved exactly when it has one active reservation."""
        active = self.active_reservations(gift_id)
        assert len(active) <= 1
        assert (self.gift_status(gift_id) == GiftStatus.RESERVED.value) == (len(active) == 1)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "giftlists-test.db"


@pytest.fixture
def seed(db_path):
    from giftlists.models import models as models_module
    _ = models_module
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    yield Seed(sync_engine)
    sync_engine.dispose()


@pytest.fixture
def session_factory(seed, db_path):
    engine = build_engine(f"sqlite+aiosqlite:///{db_path}")
    yield build_session_factory(engine)
    asyncio.run(engine.dispose())


@pytest.fixture(autouse=True)
def db_override(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    grant_store._memory.clear()
    yield
    app.dependency_overrides.clear()
    grant_store._memory.clear()


@pytest.fixture
def test_client():
    with TestClient(app) as client:
        yield client


class FailingRecorder(EventRecorder):
    """Fails after the status change has been flushed, like a dying disk would."""

    async def record(self, session, event_type, **kwargs):
        await super().record(session, event_type, **kwargs)
        raise OperationalError("INSERT INTO gift_events", {}, Exception("disk I/O error"))


class ConstraintRecorder(EventRecorder):
    """Raises an integrity error with the given driver message after the reservation row is written."""

    def __init__(self, message: str) -> None:
        self.message = message

    async def record(self, session, event_type, **kwargs):
        raise IntegrityError("INSERT INTO gift_events", {}, Exception(self.message))


def login(client: TestClient, user_id: int) -> None:
    client.cookies.set("access_token", create_access_token(str(user_id)))


def csrf_headers(client: TestClient) -> dict[str, str]:
    token = client.get("/session/csrf").json()["csrf_token"]
    return {"X-CSRF-Token": token}


def new_csrf_for(session_id: str) -> str:
    return create_csrf_token(session_id)
