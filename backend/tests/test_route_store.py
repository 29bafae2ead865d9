import threading
from unittest.mock import MagicMock

import pytest
from redis import ConnectionError as RedisConnectionError

from app.exceptions import RouteNotFound, StoreError
from app.services import polyline
from app.services.route_store import (
    InMemoryRouteStore,
    RedisRouteStore,
    create_route_store,
    normalize_encoded_polyline,
)
from conftest import FakeRedis, GatedRedis, add_route, line_points


@pytest.fixture(params=["memory", "redis"])
def any_store(request):
    if request.param == "memory":
        return InMemoryRouteStore()
    return RedisRouteStore(client=FakeRedis())


def test_normalize_collapses_doubled_backslashes():
    assert normalize_encoded_polyline("ab\\\\cd") == "ab\\cd"
    assert normalize_encoded_polyline("ab\\cd") == "ab\\cd"
    assert normalize_encoded_polyline(None) == ""


class TestRouteRecords:
    def test_insert_assigns_id_and_sequence(self, any_store):
        first = add_route(any_store, line_points(3), name="First")
        second = add_route(any_store, line_points(4), name="Second")

        assert first.id and second.id and first.id != second.id
        assert (first.sequence_number, second.sequence_number) == (1, 2)
        assert first.created_at == first.updated_at

    def test_list_sorted_by_sequence(self, any_store):
        any_store.insert_route({"display_name": "Late", "sequence_number": 9, "encoded_polyline": ""})
        any_store.insert_route({"display_name": "Early", "sequence_number": 2, "encoded_polyline": ""})

        assert [r.display_name for r in any_store.list_routes()] == ["Early", "Late"]

    def test_update_replaces_polyline(self, any_store):
        route = add_route(any_store, line_points(3))
        encoded = polyline.encode(line_points(5))

        updated = any_store.update_route(route.id, {"encoded_polyline": encoded})

        assert updated.encoded_polyline == encoded
        assert updated.updated_at >= route.updated_at
        assert any_store.get_route(route.id).encoded_polyline == encoded

    def test_update_missing_route(self, any_store):
        with pytest.raises(RouteNotFound):
            any_store.update_route("missing", {"encoded_polyline": ""})

    def test_reads_are_normalized(self, any_store):
        # "\\" is the encoding of a -15 latitude delta; storage doubled it
        route = any_store.insert_route({"display_name": "Quoted", "encoded_polyline": "\\\\?"})

        stored = any_store.get_route(route.id)

        assert stored.encoded_polyline == "\\?"
        assert polyline.decode(stored.encoded_polyline) == [(-0.00015, 0.0)]
        assert any_store.list_routes()[0].encoded_polyline == "\\?"

    def test_get_missing_route(self, any_store):
        assert any_store.get_route("missing") is None


class TestTripRecords:
    def trip_fields(self, route_id="r1"):
        return {
            "route_id": route_id,
            "route_display_name": "Route",
            "current_point_index": 0,
            "current_latitude": 6.9,
            "current_longitude": 79.8,
            "total_points": 5,
            "speed_multiplier": 1,
            "is_animating": False,
            "progress_percent": 0.0,
        }

    def test_insert_update_delete(self, any_store):
        trip = any_store.insert_trip(self.trip_fields())
        assert trip.trip_id

        updated = any_store.update_trip(trip.trip_id, {"current_point_index": 2, "is_animating": True})
        assert updated.current_point_index == 2
        assert any_store.list_trips()[0].is_animating is True

        any_store.delete_trip(trip.trip_id)
        assert any_store.list_trips() == []

    def test_update_missing_trip(self, any_store):
        with pytest.raises(StoreError):
            any_store.update_trip("missing", {"is_animating": False})


class TestRedisConcurrentWrites:
    def trip_fields(self):
        return TestTripRecords().trip_fields()

    def run_update(self, store, trip_id, fields, errors):
        def update():
            try:
                store.update_trip(trip_id, fields)
            except StoreError as e:
                errors.append(e)
        worker = threading.Thread(target=update)
        worker.start()
        return worker

    def test_update_racing_delete_does_not_resurrect_trip(self):
        client = GatedRedis()
        store = RedisRouteStore(client=client)
        trip = store.insert_trip(self.trip_fields())
        client.gate.armed = True
        errors = []

        worker = self.run_update(store, trip.trip_id, {"current_point_index": 3}, errors)
        assert client.gate.entered.wait(2)
        store.delete_trip(trip.trip_id)
        client.gate.released.set()
        worker.join(2)

        assert f"trip:{trip.trip_id}" not in client.values
        assert store.list_trips() == []
        assert len(errors) == 1

    def test_update_retries_after_concurrent_write(self):
        client = GatedRedis()
        store = RedisRouteStore(client=client)
        trip = store.insert_trip(self.trip_fields())
        client.gate.armed = True
        errors = []

        worker = self.run_update(store, trip.trip_id, {"current_point_index": 3}, errors)
        assert client.gate.entered.wait(2)
        store.update_trip(trip.trip_id, {"speed_multiplier": 5})
        client.gate.released.set()
        worker.join(2)

        stored = store.list_trips()[0]
        assert errors == []
        assert stored.current_point_index == 3
        assert stored.speed_multiplier == 5


class TestRedisFailures:
    def test_errors_become_store_errors(self):
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("down")
        client.zrange.side_effect = RedisConnectionError("down")
        client.set.side_effect = RedisConnectionError("down")
        store = RedisRouteStore(client=client)

        with pytest.raises(StoreError):
            store.get_route("r1")
        with pytest.raises(StoreError):
            store.list_routes()
        with pytest.raises(StoreError):
            store.insert_trip(TestTripRecords().trip_fields())

    def test_ping_failure(self):
        client = MagicMock()
        client.ping.side_effect = RedisConnectionError("down")
        assert RedisRouteStore(client=client).ping() is False


class TestCreateRouteStore:
    def test_memory_backend(self):
        settings = MagicMock(ROUTE_STORE_BACKEND="memory")
        assert isinstance(create_route_store(settings), InMemoryRouteStore)

    def test_falls_back_when_redis_unreachable(self, monkeypatch):
        monkeypatch.setattr(RedisRouteStore, "ping", lambda self: False)
        settings = MagicMock(ROUTE_STORE_BACKEND="redis", REDIS_HOST="localhost", REDIS_PORT=6379, REDIS_PASSWORD=None)
        assert isinstance(create_route_store(settings), InMemoryRouteStore)

    def test_uses_redis_when_reachable(self, monkeypatch):
        monkeypatch.setattr(RedisRouteStore, "ping", lambda self: True)
        settings = MagicMock(ROUTE_STORE_BACKEND="redis", REDIS_HOST="localhost", REDIS_PORT=6379, REDIS_PASSWORD=None)
        assert isinstance(create_route_store(settings), RedisRouteStore)
