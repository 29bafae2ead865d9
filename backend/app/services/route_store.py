import json
import logging
import uuid
from abc import ABC, abstractmethod
from copy import deepcopy
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

from redis import Redis, RedisError, WatchError

from ..exceptions import RouteNotFound, StoreError
from ..models.route import Route
from ..models.trip import Trip

logger = logging.getLogger(__name__)

ROUTE_KEY = "route:{}"
TRIP_KEY = "trip:{}"
ROUTES_INDEX = "routes:by_sequence"
TRIPS_INDEX = "trips:all"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_encoded_polyline(raw: Optional[str]) -> str:
    """Collapse doubled backslashes introduced by storage quoting."""
    if not raw:
        return ""
    if "\\\\" in raw:
        return raw.replace("\\\\", "\\")
    return raw


class RouteStore(ABC):
    """Persistent record store for routes and live trip snapshots."""

    @abstractmethod
    def list_routes(self) -> List[Route]:
        """All routes ordered by sequence_number ascending."""

    @abstractmethod
    def get_route(self, route_id: str) -> Optional[Route]:
        ...

    @abstractmethod
    def insert_route(self, fields: Dict[str, Any]) -> Route:
        ...

    @abstractmethod
    def update_route(self, route_id: str, fields: Dict[str, Any]) -> Route:
        ...

    @abstractmethod
    def list_trips(self) -> List[Trip]:
        ...

    @abstractmethod
    def insert_trip(self, fields: Dict[str, Any]) -> Trip:
        ...

    @abstractmethod
    def update_trip(self, trip_id: str, fields: Dict[str, Any]) -> Trip:
        ...

    @abstractmethod
    def delete_trip(self, trip_id: str) -> None:
        ...

    def next_sequence_number(self) -> int:
        routes = self.list_routes()
        return routes[-1].sequence_number + 1 if routes else 1

    @staticmethod
    def _new_route_document(fields: Dict[str, Any], sequence_number: int) -> Dict[str, Any]:
        now = _utc_now()
        document = dict(fields)
        document.pop("id", None)
        document.setdefault("sequence_number", sequence_number)
        document.update({"id": str(uuid.uuid4()), "created_at": now, "updated_at": now})
        return document

    @staticmethod
    def _new_trip_document(fields: Dict[str, Any]) -> Dict[str, Any]:
        now = _utc_now()
        document = dict(fields)
        document.pop("trip_id", None)
        document.update({"trip_id": str(uuid.uuid4()), "created_at": now, "updated_at": now})
        return document

    @staticmethod
    def _to_route(document: Dict[str, Any]) -> Route:
        route = Route.model_validate(document)
        route.encoded_polyline = normalize_encoded_polyline(route.encoded_polyline)
        return route


class InMemoryRouteStore(RouteStore):
    """Thread-safe in-process store, used when Redis is not available."""

    def __init__(self) -> None:
        self._routes: Dict[str, Dict[str, Any]] = {}
        self._trips: Dict[str, Dict[str, Any]] = {}
        self._lock = RLock()

    def list_routes(self) -> List[Route]:
        with self._lock:
            documents = sorted(self._routes.values(), key=lambda r: r["sequence_number"])
            return [self._to_route(deepcopy(doc)) for doc in documents]

    def get_route(self, route_id: str) -> Optional[Route]:
        with self._lock:
            document = self._routes.get(route_id)
            return self._to_route(deepcopy(document)) if document else None

    def insert_route(self, fields: Dict[str, Any]) -> Route:
        with self._lock:
            document = self._new_route_document(fields, self.next_sequence_number())
            route = self._to_route(document)
            self._routes[route.id] = route.model_dump()
            return route

    def update_route(self, route_id: str, fields: Dict[str, Any]) -> Route:
        with self._lock:
            document = self._routes.get(route_id)
            if document is None:
                raise RouteNotFound(f"Route {route_id} not found")
            document.update(fields)
            document["updated_at"] = _utc_now()
            return self._to_route(deepcopy(document))

    def list_trips(self) -> List[Trip]:
        with self._lock:
            return [Trip.model_validate(deepcopy(doc)) for doc in self._trips.values()]

    def insert_trip(self, fields: Dict[str, Any]) -> Trip:
        with self._lock:
            trip = Trip.model_validate(self._new_trip_document(fields))
            self._trips[trip.trip_id] = trip.model_dump()
            return trip

    def update_trip(self, trip_id: str, fields: Dict[str, Any]) -> Trip:
        with self._lock:
            document = self._trips.get(trip_id)
            if document is None:
                raise StoreError(f"Trip {trip_id} not found")
            document.update(fields)
            document["updated_at"] = _utc_now()
            return Trip.model_validate(deepcopy(document))

    def delete_trip(self, trip_id: str) -> None:
        with self._lock:
            self._trips.pop(trip_id, None)


class RedisRouteStore(RouteStore):
    """Route Store backed by Redis JSON documents."""

    def __init__(self, host: str = "localhost", port: int = 6379, password: Optional[str] = None,
                 client: Optional[Redis] = None):
        """Initialize Redis connection."""
        self.redis = client or Redis(host=host, port=port, password=password, decode_responses=True)

    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except RedisError as e:
            logger.warning(f"Redis ping failed: {str(e)}")
            return False

    def _get_document(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            data = self.redis.get(key)
        except RedisError as e:
            logger.error(f"Error getting {key} from Redis: {str(e)}")
            raise StoreError(f"Failed to read {key}") from e
        return json.loads(data) if data else None

    def _set_document(self, key: str, document: Dict[str, Any]) -> None:
        try:
            self.redis.set(key, json.dumps(document, default=str))
        except RedisError as e:
            logger.error(f"Error setting {key} in Redis: {str(e)}")
            raise StoreError(f"Failed to write {key}") from e

    def list_routes(self) -> List[Route]:
        try:
            route_ids = self.redis.zrange(ROUTES_INDEX, 0, -1)
            payloads = self.redis.mget([ROUTE_KEY.format(rid) for rid in route_ids]) if route_ids else []
        except RedisError as e:
            logger.error(f"Error listing routes from Redis: {str(e)}")
            raise StoreError("Failed to list routes") from e

        return [self._to_route(json.loads(payload)) for payload in payloads if payload]

    def get_route(self, route_id: str) -> Optional[Route]:
        document = self._get_document(ROUTE_KEY.format(route_id))
        return self._to_route(document) if document else None

    def insert_route(self, fields: Dict[str, Any]) -> Route:
        route = self._to_route(self._new_route_document(fields, self.next_sequence_number()))
        self._set_document(ROUTE_KEY.format(route.id), route.model_dump(mode="json"))
        try:
            self.redis.zadd(ROUTES_INDEX, {route.id: route.sequence_number})
        except RedisError as e:
            logger.error(f"Error indexing route {route.id}: {str(e)}")
            raise StoreError(f"Failed to index route {route.id}") from e
        logger.info(f"Stored route {route.id} ({route.display_name})")
        return route

    def _update_document(self, key: str, fields: Dict[str, Any], to_model: Callable[[Dict[str, Any]], Any]):
        """
        Merge fields into a stored document with an optimistic WATCH/MULTI write.

        Returns None when the document does not exist. A concurrent write or
        delete of the key aborts the transaction and the merge is retried
        against the new value, so an update never brings back a deleted record.
        """
        while True:
            try:
                with self.redis.pipeline() as pipe:
                    pipe.watch(key)
                    data = pipe.get(key)
                    if not data:
                        return None
                    document = json.loads(data)
                    document.update(fields)
                    document["updated_at"] = _utc_now()
                    record = to_model(document)
                    pipe.multi()
                    pipe.set(key, json.dumps(record.model_dump(mode="json")))
                    pipe.execute()
                    return record
            except WatchError:
                logger.debug(f"{key} changed during update, retrying")
            except RedisError as e:
                logger.error(f"Error updating {key} in Redis: {str(e)}")
                raise StoreError(f"Failed to update {key}") from e

    def update_route(self, route_id: str, fields: Dict[str, Any]) -> Route:
        route = self._update_document(ROUTE_KEY.format(route_id), fields, self._to_route)
        if route is None:
            raise RouteNotFound(f"Route {route_id} not found")
        return route

    def list_trips(self) -> List[Trip]:
        try:
            trip_ids = sorted(self.redis.smembers(TRIPS_INDEX))
            payloads = self.redis.mget([TRIP_KEY.format(tid) for tid in trip_ids]) if trip_ids else []
        except RedisError as e:
            logger.error(f"Error listing trips from Redis: {str(e)}")
            raise StoreError("Failed to list trips") from e

        return [Trip.model_validate(json.loads(payload)) for payload in payloads if payload]

    def insert_trip(self, fields: Dict[str, Any]) -> Trip:
        trip = Trip.model_validate(self._new_trip_document(fields))
        self._set_document(TRIP_KEY.format(trip.trip_id), trip.model_dump(mode="json"))
        try:
            self.redis.sadd(TRIPS_INDEX, trip.trip_id)
        except RedisError as e:
            logger.error(f"Error indexing trip {trip.trip_id}: {str(e)}")
            raise StoreError(f"Failed to index trip {trip.trip_id}") from e
        return trip

    def update_trip(self, trip_id: str, fields: Dict[str, Any]) -> Trip:
        trip = self._update_document(TRIP_KEY.format(trip_id), fields, Trip.model_validate)
        if trip is None:
            raise StoreError(f"Trip {trip_id} not found")
        return trip

    def delete_trip(self, trip_id: str) -> None:
        try:
            pipe = self.redis.pipeline()
            pipe.delete(TRIP_KEY.format(trip_id))
            pipe.srem(TRIPS_INDEX, trip_id)
            pipe.execute()
        except RedisError as e:
            logger.error(f"Error deleting trip {trip_id} from Redis: {str(e)}")
            raise StoreError(f"Failed to delete trip {trip_id}") from e


def create_route_store(settings) -> RouteStore:
    """Build the configured store, falling back to memory if Redis is unreachable."""
    if settings.ROUTE_STORE_BACKEND == "memory":
        logger.info("Using in-memory route store")
        return InMemoryRouteStore()

    store = RedisRouteStore(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        password=settings.REDIS_PASSWORD,
    )
    if store.ping():
        logger.info("Successfully connected to Redis")
        return store

    logger.warning("Failed to connect to Redis. Using in-memory fallback.")
    return InMemoryRouteStore()
