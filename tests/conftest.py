"""
Shared fixtures for the reservation service tests.

Every test that touches the store gets its own file-backed SQLite database
(the same BEGIN IMMEDIATE engine setup the application uses), so tests are
isolated and concurrency tests exercise real transaction locking.
"""

from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Generator, Optional
from unittest.mock import Mock

import pytest

# Must be set before anything imports stay_reservations.config
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite:///{Path(tempfile.gettempdir()) / 'stay_reservations_test.db'}",
)
os.environ.setdefault("CALLBACK_USERNAME", "payments")
os.environ.setdefault("CALLBACK_PASSWORD", "s3cret")
os.environ.setdefault("EXPIRATION_SWEEP_INTERVAL_SECONDS", "0")

from sqlalchemy.engine import Engine  # noqa: E402

from stay_reservations.db.engine import create_db_engine  # noqa: E402
from stay_reservations.models.base import Base  # noqa: E402
from stay_reservations.models.listing_calendars import ListingCalendar  # noqa: E402,F401
from stay_reservations.models.reservations import Reservation  # noqa: E402,F401
from stay_reservations.network.collaborators import CatalogClient, IdentityClient  # noqa: E402
from stay_reservations.services.lifecycle import ReservationService  # noqa: E402
from stay_reservations.services.notifications import Notifier  # noqa: E402
from stay_reservations.services.scheduler import ExpirationScheduler  # noqa: E402

# 2024-06-01 09:00 UTC, three hours before that day's checkout instant
DEFAULT_NOW = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = DEFAULT_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeTimer:
    """Stand-in for threading.Timer that fires only when the test says so."""

    def __init__(self, interval: float, function: Callable[..., Any], args: tuple = ()) -> None:
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> Any:
        return self.function(*self.args)


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(
        self, interval: float, function: Callable[..., Any], args: tuple = ()
    ) -> FakeTimer:
        timer = FakeTimer(interval, function, args)
        self.timers.append(timer)
        return timer

    def fire_all(self) -> list[Any]:
        return [timer.fire() for timer in list(self.timers) if not timer.cancelled]


def user_record(user_id: str, role: str = "user") -> dict[str, Any]:
    return {"id": user_id, "email": f"{user_id}@example.com", "role": role}


def listing_record(listing_id: str) -> dict[str, Any]:
    return {"id": listing_id, "title": f"Listing {listing_id}"}


@pytest.fixture
def db_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """Fresh SQLite database with the full schema."""
    test_engine = create_db_engine(f"sqlite:///{tmp_path / 'reservations.db'}")
    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def timers() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture
def identity() -> Mock:
    """Identity collaborator that knows every user as a regular booker."""
    mock = Mock(spec=IdentityClient)
    mock.get_user.side_effect = lambda user_id: user_record(user_id)
    return mock


@pytest.fixture
def catalog() -> Mock:
    """Catalog collaborator that knows every listing."""
    mock = Mock(spec=CatalogClient)
    mock.get_listing.side_effect = lambda listing_id: listing_record(listing_id)
    return mock


@pytest.fixture
def notifier() -> Mock:
    return Mock(spec=Notifier)


@pytest.fixture
def make_service(
    db_engine: Engine,
    identity: Mock,
    catalog: Mock,
    notifier: Mock,
    clock: FrozenClock,
    timers: FakeTimerFactory,
) -> Callable[..., ReservationService]:
    """
    Build ReservationService instances sharing one database.

    Calling it twice simulates a process restart: the second service starts
    with an empty timer map.
    """

    def _make(timer_factory: Optional[Callable[..., Any]] = None) -> ReservationService:
        def scheduler_factory(
            engine: Engine, expire: Callable[..., bool], clock: Callable[[], datetime]
        ) -> ExpirationScheduler:
            return ExpirationScheduler(
                engine,
                expire,
                clock=clock,
                timer_factory=timer_factory or timers,
                checkout_hour=12,
            )

        return ReservationService(
            db_engine,
            identity=identity,
            catalog=catalog,
            notifier=notifier,
            scheduler_factory=scheduler_factory,
            clock=clock,
        )

    return _make


@pytest.fixture
def service(make_service: Callable[..., ReservationService]) -> ReservationService:
    return make_service()
