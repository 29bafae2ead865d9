"""
Pytest configuration and shared fixtures for the route simulator tests.
"""
import os
import threading
import time

os.environ.setdefault("ROUTE_STORE_BACKEND", "memory")

from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import pytest
from fastapi.testclient import TestClient
from redis import WatchError

from app.exceptions import StoreError
from app.models.route import Route
from app.services import polyline
from app.services.route_store import InMemoryRouteStore
from app.services.trip_scheduler import TripScheduler


class WorkerGate:
    """Holds calls made from worker threads until the test releases them."""

    def __init__(self) -> None:
        self.armed = False
        self.delay = 0.0
        self.entered = threading.Event()
        self.released = threading.Event()

    def pass_through(self) -> None:
        if threading.current_thread() is threading.main_thread():
            return
        if self.delay:
            time.sleep(self.delay)
        if self.armed:
            self.entered.set()
            self.released.wait(2)


class RecordingStore(InMemoryRouteStore):
    """In-memory store that records calls and can be told to fail or stall."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.failing: Set[str] = set()
        self.gate = WorkerGate()

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.failing:
            raise StoreError(f"{name} unavailable")

    def insert_trip(self, fields: Dict[str, Any]):
        self._record("insert_trip", fields)
        return super().insert_trip(fields)

    def update_trip(self, trip_id: str, fields: Dict[str, Any]):
        self._record("update_trip", trip_id, dict(fields))
        self.gate.pass_through()
        return super().update_trip(trip_id, fields)

    def delete_trip(self, trip_id: str) -> None:
        self._record("delete_trip", trip_id)
        super().delete_trip(trip_id)

    def calls_named(self, name: str) -> List[Tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]


class FakePipeline:
    """
    Pipeline with redis-py's WATCH/MULTI behaviour: commands run immediately
    after watch() and are queued after multi() or when nothing is watched.
    execute() raises WatchError if a watched key changed in between.
    """

    def __init__(self, client: "FakeRedis") -> None:
        self.client = client
        self.watched: Dict[str, int] = {}
        self.queue: List[Tuple[Any, Tuple[Any, ...]]] = []
        self.buffering = True

    def __enter__(self) -> "FakePipeline":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.reset()

    def reset(self) -> None:
        self.watched = {}
        self.queue = []
        self.buffering = True

    def watch(self, *keys: str) -> None:
        self.buffering = False
        for key in keys:
            self.watched[key] = self.client.versions.get(key, 0)

    def multi(self) -> None:
        self.buffering = True

    def __getattr__(self, name: str):
        command = getattr(self.client, name)
        if not self.buffering:
            return command

        def queued(*args: Any) -> "FakePipeline":
            self.queue.append((command, args))
            return self
        return queued

    def execute(self) -> List[Any]:
        with self.client.lock:
            changed = [k for k, v in self.watched.items() if self.client.versions.get(k, 0) != v]
            if changed:
                self.reset()
                raise WatchError("Watched variable changed.")
            results = [command(*args) for command, args in self.queue]
        self.reset()
        return results


class FakeRedis:
    """Dict-backed stand-in for the handful of Redis commands the store uses."""

    def __init__(self) -> None:
        self.values: Dict[str, str] = {}
        self.zsets: Dict[str, Dict[str, float]] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.versions: Dict[str, int] = {}
        self.lock = threading.RLock()

    def _bump(self, key: str) -> None:
        self.versions[key] = self.versions.get(key, 0) + 1

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> bool:
        with self.lock:
            self.values[key] = value
            self._bump(key)
        return True

    def mget(self, keys: Sequence[str]) -> List[Optional[str]]:
        return [self.values.get(key) for key in keys]

    def delete(self, *keys: str) -> int:
        removed = 0
        with self.lock:
            for key in keys:
                if self.values.pop(key, None) is not None:
                    self._bump(key)
                    removed += 1
        return removed

    def zadd(self, name: str, mapping: Dict[str, float]) -> int:
        self.zsets.setdefault(name, {}).update(mapping)
        return len(mapping)

    def zrange(self, name: str, start: int, end: int) -> List[str]:
        members = sorted(self.zsets.get(name, {}).items(), key=lambda item: (item[1], item[0]))
        names = [member for member, _ in members]
        return names[start:] if end == -1 else names[start:end + 1]

    def sadd(self, name: str, *values: str) -> int:
        self.sets.setdefault(name, set()).update(values)
        return len(values)

    def srem(self, name: str, *values: str) -> int:
        bucket = self.sets.get(name, set())
        removed = len(bucket & set(values))
        bucket.difference_update(values)
        return removed

    def smembers(self, name: str) -> Set[str]:
        return set(self.sets.get(name, set()))


class GatedRedis(FakeRedis):
    """FakeRedis whose reads from worker threads stall on a WorkerGate."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = WorkerGate()

    def get(self, key: str) -> Optional[str]:
        value = super().get(key)
        self.gate.pass_through()
        return value


def line_points(count: int) -> List[Tuple[float, float]]:
    """Points along a short north-south line near Colombo."""
    return [(6.9 + i * 0.001, 79.86) for i in range(count)]


def add_route(store, points, duration: Optional[int] = 11, name: str = "Test Route") -> Route:
    return store.insert_route({
        "display_name": name,
        "origin_label": "Fort",
        "destination_label": "Kandy",
        "distance_km": 12.5,
        "estimated_duration_minutes": duration,
        "encoded_polyline": polyline.encode(points),
        "is_active": True,
    })


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def scheduler(store) -> TripScheduler:
    return TripScheduler(store=store)


@pytest.fixture
def eleven_point_route(store) -> Route:
    """11 points over 11 minutes: one point per minute at 1x."""
    return add_route(store, line_points(11), duration=11)


@pytest.fixture
def client():
    """Test client wired to a fresh in-memory store and scheduler."""
    from app.dependencies import editor_sessions, get_route_store, get_trip_scheduler
    from app.main import app

    get_route_store.cache_clear()
    get_trip_scheduler.cache_clear()
    editor_sessions.clear()

    with TestClient(app) as test_client:
        yield test_client

    get_route_store.cache_clear()
    get_trip_scheduler.cache_clear()
    editor_sessions.clear()
