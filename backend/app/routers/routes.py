from fastapi import APIRouter, Depends, HTTPException
from typing import List

from ..exceptions import RouteEngineError
from ..models.route import Coordinate, Route, RouteDetail
from ..services import polyline
from ..services.route_store import RouteStore
from ..dependencies import get_route_store
from .common import http_error

router = APIRouter(prefix="/api/routes", tags=["routes"])


@router.get("", response_model=List[Route])
async def list_routes(store: RouteStore = Depends(get_route_store)):
    """Get all routes ordered by sequence number."""
    try:
        return store.list_routes()
    except RouteEngineError as e:
        raise http_error(e)


@router.get("/{route_id}", response_model=RouteDetail)
async def get_route(route_id: str, store: RouteStore = Depends(get_route_store)):
    """Get one route with its decoded points."""
    try:
        route = store.get_route(route_id)
        if route is None:
            raise HTTPException(status_code=404, detail=f"Route {route_id} not found")
        points = polyline.decode(route.encoded_polyline)
    except RouteEngineError as e:
        raise http_error(e)

    return RouteDetail(
        **route.model_dump(),
        points=[Coordinate(latitude=p.lat, longitude=p.lng) for p in points],
    )
