"""
Fixtures partagees : base SQLite en memoire, double Redis en memoire, horloge pilotable.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import app.domain.entities  # noqa: F401
from app.domain.entities import Activity, ActivityType, Gender, Segment, SegmentType, User


# ============================================================
# Double Redis en memoire
# ============================================================

class FakeLock:
    """Verrou non bloquant : acquire() echoue si le nom est deja detenu."""

    def __init__(self, server: "FakeRedis", name: str):
        self.server = server
        self.name = name

    def acquire(self, blocking=None, blocking_timeout=None) -> bool:
        if self.name in self.server.held_locks:
            return False
        self.server.held_locks.add(self.name)
        return True

    def release(self) -> None:
        self.server.held_locks.discard(self.name)


class FakeRedis:
    """Sous-ensemble de redis.Redis utilise par le tracking (decode_responses=True)."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.held_locks = set()
        self.lock_requests: List[dict] = []

    def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    def setex(self, key: str, ttl: int, value: str) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    def ttl(self, key: str) -> int:
        if key not in self.store:
            return -2
        return self.ttls.get(key, -1)

    def expire(self, key: str, ttl: int) -> bool:
        if key not in self.store:
            return False
        self.ttls[key] = ttl
        return True

    def lock(self, name: str, timeout=None, blocking_timeout=None) -> FakeLock:
        self.lock_requests.append({"name": name, "timeout": timeout, "blocking_timeout": blocking_timeout})
        return FakeLock(self, name)

    def ping(self) -> bool:
        return True


class FakeClock:
    """Horloge UTC naive pilotee par les tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 5, 1, 7, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================
# Base de donnees
# ============================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


# ============================================================
# Fabriques d'entites
# ============================================================

# Trace rectiligne vers l'est sur le parallele 45N (colineaire au point pres)
BASE_LAT = 45.0
BASE_LNG = 5.0


def straight_route(start_lng: float = BASE_LNG, steps: int = 4, step_deg: float = 0.008,
                   lat: float = BASE_LAT) -> List[List[float]]:
    return [[round(start_lng + i * step_deg, 6), lat] for i in range(steps + 1)]


def make_user(session: Session, username: str, gender: Optional[Gender] = None, **fields) -> User:
    user = User(name=username.title(), username=username, gender=gender, **fields)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def make_segment(session: Session, creator: User, route: Sequence[Sequence[float]],
                 distance_meters: float = 2500.0, name: str = "Col test", **fields) -> Segment:
    segment = Segment(
        creator_id=creator.id,
        name=name,
        segment_type=SegmentType.RUN,
        distance_meters=distance_meters,
        route=[list(p) for p in route],
        **fields,
    )
    segment.apply_footprint(segment.route)
    session.add(segment)
    session.commit()
    session.refresh(segment)
    return segment


def make_activity(session: Session, user: User, route: Optional[Sequence[Sequence[float]]],
                  distance_meters: float = 2500.0, duration_seconds: int = 600,
                  completed_at: Optional[datetime] = datetime(2026, 5, 1, 8, 0, 0), **fields) -> Activity:
    started = (completed_at or datetime(2026, 5, 1, 8, 0, 0)) - timedelta(seconds=duration_seconds)
    activity = Activity(
        user_id=user.id,
        activity_type=fields.pop("activity_type", ActivityType.RUN),
        title=fields.pop("title", "Sortie"),
        distance_meters=distance_meters,
        duration_seconds=duration_seconds,
        moving_time_seconds=duration_seconds,
        started_at=started,
        completed_at=completed_at,
        route=[list(p) for p in route] if route else None,
        **fields,
    )
    activity.apply_footprint(activity.route)
    session.add(activity)
    session.commit()
    session.refresh(activity)
    return activity
