from fastapi import APIRouter, Depends, HTTPException
from typing import List

from ..dependencies import get_route_store, get_trip_scheduler
from ..exceptions import RouteEngineError
from ..models.trip import SpeedUpdate, TripCreate, TripView
from ..services.route_store import RouteStore
from ..services.trip_scheduler import TripScheduler
from .common import http_error

router = APIRouter(prefix="/api/trips", tags=["trips"])


@router.get("", response_model=List[TripView])
async def list_trips(scheduler: TripScheduler = Depends(get_trip_scheduler)):
    """Get all tracked trips with their timing figures."""
    return scheduler.list_trips()


@router.post("", response_model=TripView, status_code=201)
async def create_trip(
    request: TripCreate,
    store: RouteStore = Depends(get_route_store),
    scheduler: TripScheduler = Depends(get_trip_scheduler),
):
    """Create a trip on a route, parked at its first point."""
    try:
        route = store.get_route(request.route_id)
        if route is None:
            raise HTTPException(status_code=404, detail=f"Route {request.route_id} not found")
        trip = scheduler.create_trip(route, request.speed_multiplier)
        return scheduler.view(trip.trip_id)
    except RouteEngineError as e:
        raise http_error(e)


@router.get("/{trip_id}", response_model=TripView)
async def get_trip(trip_id: str, scheduler: TripScheduler = Depends(get_trip_scheduler)):
    try:
        return scheduler.view(trip_id)
    except RouteEngineError as e:
        raise http_error(e)


@router.post("/{trip_id}/start", response_model=TripView)
async def start_trip(trip_id: str, scheduler: TripScheduler = Depends(get_trip_scheduler)):
    try:
        scheduler.start_animation(trip_id)
        return scheduler.view(trip_id)
    except RouteEngineError as e:
        raise http_error(e)


@router.post("/{trip_id}/stop", response_model=TripView)
async def stop_trip(trip_id: str, scheduler: TripScheduler = Depends(get_trip_scheduler)):
    try:
        scheduler.stop_animation(trip_id)
        return scheduler.view(trip_id)
    except RouteEngineError as e:
        raise http_error(e)


@router.put("/{trip_id}/speed", response_model=TripView)
async def update_speed(
    trip_id: str,
    request: SpeedUpdate,
    scheduler: TripScheduler = Depends(get_trip_scheduler),
):
    try:
        scheduler.update_speed(trip_id, request.speed_multiplier)
        return scheduler.view(trip_id)
    except RouteEngineError as e:
        raise http_error(e)


@router.post("/{trip_id}/reset", response_model=TripView)
async def reset_trip(trip_id: str, scheduler: TripScheduler = Depends(get_trip_scheduler)):
    try:
        scheduler.reset_trip(trip_id)
        return scheduler.view(trip_id)
    except RouteEngineError as e:
        raise http_error(e)


@router.delete("/{trip_id}")
async def delete_trip(trip_id: str, scheduler: TripScheduler = Depends(get_trip_scheduler)):
    try:
        scheduler.delete_trip(trip_id)
    except RouteEngineError as e:
        raise http_error(e)
    return {"message": "Trip deleted"}
