import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from ..exceptions import (
    DegenerateRoute,
    EmptyRoute,
    InvalidSpeed,
    StoreError,
    TripLimitExceeded,
    TripNotFound,
)
from ..models.route import Route
from ..models.trip import Trip, TripView
from . import polyline
from .polyline import LatLng
from .route_store import RouteStore

logger = logging.getLogger(__name__)

MAX_TRIPS = 10
DEFAULT_DURATION_MINUTES = 210

# Fields a follow-up write copies from the in-memory trip
SNAPSHOT_FIELDS = {
    "current_point_index",
    "current_latitude",
    "current_longitude",
    "progress_percent",
    "speed_multiplier",
    "is_animating",
}


def time_per_point_ms(total_duration_minutes: float, number_of_points: int) -> float:
    """Milliseconds spent on each point when the whole route takes the given duration."""
    return (total_duration_minutes * 60 * 1000) / number_of_points


def format_duration(minutes: float) -> str:
    """Format minutes as '2h 5m' or '45m'."""
    hours = int(minutes // 60)
    mins = int(math.floor(minutes % 60 + 0.5))
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def progress_percent(index: int, total_points: int) -> float:
    if total_points <= 1:
        return 0.0
    return round(index / (total_points - 1) * 100, 2)


@dataclass
class _TripState:
    trip: Trip
    points: List[LatLng]
    duration_minutes: float
    task: Optional[asyncio.Task] = None
    push: Optional[asyncio.Task] = None
    version: int = 0

    @property
    def idle(self) -> bool:
        return self.task is None and not self.trip.is_animating


class TripScheduler:
    """
    Owns the live trips and the timer that advances each one along its route.

    Every animating trip gets its own asyncio task that sleeps for the trip's
    per-point interval and then advances the point index by one. Public
    methods must be called from the event loop thread; they are the only way
    the trip collection changes.

    Tick snapshots are written from a worker thread, with at most one write
    per trip in flight. Every in-memory change bumps the trip's version; when
    a write finishes and the version has moved on, the current snapshot is
    written after it. A stop, reset or speed change made while a tick write
    was running therefore always ends up in the store.
    """

    def __init__(
        self,
        store: RouteStore,
        max_trips: int = MAX_TRIPS,
        default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
    ):
        self.store = store
        self.max_trips = max_trips
        self.default_duration_minutes = default_duration_minutes
        self._trips: Dict[str, _TripState] = {}
        self._pending: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._trips)

    def _state(self, trip_id: str) -> _TripState:
        state = self._trips.get(trip_id)
        if state is None:
            raise TripNotFound(f"Trip {trip_id} not found")
        return state

    @staticmethod
    def _check_speed(speed_multiplier: float) -> None:
        if not speed_multiplier or speed_multiplier <= 0:
            raise InvalidSpeed(f"Speed multiplier must be positive, got {speed_multiplier}")

    def create_trip(self, route: Route, speed_multiplier: float = 1) -> Trip:
        """Create an idle trip positioned at the first point of the route."""
        if len(self._trips) >= self.max_trips:
            raise TripLimitExceeded(f"Maximum {self.max_trips} trips allowed")
        self._check_speed(speed_multiplier)

        points = polyline.decode(route.encoded_polyline)
        if not points:
            raise EmptyRoute(f"Route {route.id} has no points")
        if len(points) == 1:
            raise DegenerateRoute(f"Route {route.id} has a single point")

        first = points[0]
        trip = self.store.insert_trip({
            "route_id": route.id,
            "route_display_name": route.display_name,
            "current_point_index": 0,
            "current_latitude": first.lat,
            "current_longitude": first.lng,
            "total_points": len(points),
            "speed_multiplier": speed_multiplier,
            "is_animating": False,
            "progress_percent": 0.0,
        })

        duration = route.estimated_duration_minutes or self.default_duration_minutes
        self._trips[trip.trip_id] = _TripState(trip=trip, points=points, duration_minutes=duration)
        logger.info(f"Created trip {trip.trip_id} on route {route.id} ({len(points)} points)")
        return trip.model_copy()

    def interval_seconds(self, trip_id: str) -> float:
        """Current tick interval, always derived from the trip's present duration and speed."""
        state = self._state(trip_id)
        per_point = time_per_point_ms(state.duration_minutes, state.trip.total_points)
        return per_point / state.trip.speed_multiplier / 1000

    def start_animation(self, trip_id: str) -> None:
        state = self._trips.get(trip_id)
        if state is None or state.task is not None:
            return

        interval = self.interval_seconds(trip_id)
        loop = asyncio.get_running_loop()

        self.store.update_trip(trip_id, {"is_animating": True})
        self._touch(state, is_animating=True)
        state.task = loop.create_task(self._run(trip_id, interval))
        logger.info(f"Started trip {trip_id} at {interval:.3f}s per point")

    def stop_animation(self, trip_id: str) -> None:
        state = self._trips.get(trip_id)
        if state is None or state.idle:
            return

        if state.task is not None:
            state.task.cancel()
            state.task = None
        self._touch(state, is_animating=False)
        self.store.update_trip(trip_id, {"is_animating": False})
        logger.info(f"Stopped trip {trip_id} at point {state.trip.current_point_index}")

    def update_speed(self, trip_id: str, speed_multiplier: float) -> Trip:
        """Change playback speed; a running trip restarts its clock at the current point."""
        state = self._state(trip_id)
        self._check_speed(speed_multiplier)
        was_animating = state.task is not None

        self.store.update_trip(trip_id, {"speed_multiplier": speed_multiplier})
        self._touch(state, speed_multiplier=speed_multiplier)

        if was_animating:
            self.stop_animation(trip_id)
            self.start_animation(trip_id)
        return state.trip.model_copy()

    def reset_trip(self, trip_id: str) -> Trip:
        state = self._state(trip_id)
        self.stop_animation(trip_id)

        first = state.points[0]
        fields = {
            "current_point_index": 0,
            "current_latitude": first.lat,
            "current_longitude": first.lng,
            "progress_percent": 0.0,
            "is_animating": False,
        }
        self.store.update_trip(trip_id, fields)
        self._touch(state, **fields)
        return state.trip.model_copy()

    def delete_trip(self, trip_id: str) -> None:
        self._state(trip_id)
        self.stop_animation(trip_id)
        self.store.delete_trip(trip_id)
        del self._trips[trip_id]
        logger.info(f"Deleted trip {trip_id}")

    def advance(self, trip_id: str) -> Optional[Dict[str, Any]]:
        """
        Move a trip forward by one point and return the fields to persist.

        When the index would pass the last point the trip goes idle at the
        last point instead and the returned fields only clear is_animating.
        Returns None for unknown trips.
        """
        state = self._trips.get(trip_id)
        if state is None:
            return None

        index = state.trip.current_point_index + 1
        if index >= state.trip.total_points:
            state.task = None
            self._touch(state, is_animating=False)
            logger.info(f"Trip {trip_id} reached the end of its route")
            return {"is_animating": False}

        point = state.points[index]
        fields = {
            "current_point_index": index,
            "current_latitude": point.lat,
            "current_longitude": point.lng,
            "progress_percent": progress_percent(index, state.trip.total_points),
            "is_animating": True,
        }
        self._touch(state, **fields)
        return fields

    async def tick(self, trip_id: str) -> bool:
        """Advance one point and wait for the snapshot write; False once the trip is idle."""
        state = self._trips.get(trip_id)
        fields = self.advance(trip_id)
        if fields is None:
            return False
        await asyncio.shield(self._schedule_push(trip_id, state, fields))
        return fields["is_animating"]

    async def _run(self, trip_id: str, interval: float) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        ticks = 0
        while True:
            ticks += 1
            # deadlines are absolute so store latency never stretches the cadence
            await asyncio.sleep(max(0.0, started + ticks * interval - loop.time()))
            state = self._trips.get(trip_id)
            fields = self.advance(trip_id)
            if fields is None:
                return
            self._schedule_push(trip_id, state, fields)
            if not fields["is_animating"]:
                return

    def _schedule_push(self, trip_id: str, state: _TripState, fields: Dict[str, Any]) -> asyncio.Task:
        if state.push is not None and not state.push.done():
            # the running write sees the newer version and follows up with a snapshot
            return state.push
        push = asyncio.get_running_loop().create_task(self._push(trip_id, state, fields, state.version))
        state.push = push
        self._pending.add(push)
        push.add_done_callback(self._pending.discard)
        return push

    async def _push(self, trip_id: str, state: _TripState, fields: Dict[str, Any], version: int) -> None:
        while True:
            try:
                await asyncio.to_thread(self.store.update_trip, trip_id, fields)
            except StoreError as e:
                if trip_id in self._trips:
                    logger.error(f"Error syncing trip {trip_id} to store: {str(e)}")
                else:
                    logger.debug(f"Dropped write for deleted trip {trip_id}")
            if trip_id not in self._trips or state.version == version:
                return
            version = state.version
            fields = self._snapshot(state)

    @staticmethod
    def _snapshot(state: _TripState) -> Dict[str, Any]:
        return state.trip.model_dump(include=SNAPSHOT_FIELDS)

    async def drain(self) -> None:
        """Wait until every in-flight snapshot write, follow-ups included, has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _touch(self, state: _TripState, **fields: Any) -> None:
        for key, value in fields.items():
            setattr(state.trip, key, value)
        state.version += 1
        state.trip.updated_at = datetime.now(timezone.utc)

    def get_trip(self, trip_id: str) -> Trip:
        return self._state(trip_id).trip.model_copy()

    def view(self, trip_id: str) -> TripView:
        state = self._state(trip_id)
        trip = state.trip
        speed = trip.speed_multiplier
        remaining_points = trip.total_points - trip.current_point_index - 1
        remaining = remaining_points * time_per_point_ms(state.duration_minutes, trip.total_points) / (60 * 1000 * speed)
        total_at_speed = state.duration_minutes / speed

        return TripView(
            **trip.model_dump(),
            remaining_minutes=remaining,
            total_minutes_at_speed=total_at_speed,
            remaining_label=format_duration(remaining),
            duration_label=format_duration(total_at_speed),
        )

    def list_trips(self) -> List[TripView]:
        return [self.view(trip_id) for trip_id in self._trips]

    def shutdown(self) -> None:
        """Cancel every running timer without touching the store. Pending writes finish in drain()."""
        for state in self._trips.values():
            if state.task is not None:
                state.task.cancel()
                state.task = None
        logger.info("Trip scheduler stopped")
