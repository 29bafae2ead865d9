from functools import lru_cache

from .config import config
from .services.editor_sessions import EditorSessionRegistry
from .services.route_store import RouteStore, create_route_store
from .services.trip_scheduler import TripScheduler

# Open editor sessions, keyed by session id
editor_sessions = EditorSessionRegistry(expiry=config.EDITOR_SESSION_EXPIRY)


@lru_cache
def get_route_store() -> RouteStore:
    return create_route_store(config)


@lru_cache
def get_trip_scheduler() -> TripScheduler:
    return TripScheduler(
        store=get_route_store(),
        max_trips=config.MAX_TRIPS,
        default_duration_minutes=config.DEFAULT_DURATION_MINUTES,
    )


def get_editor_sessions() -> EditorSessionRegistry:
    return editor_sessions
