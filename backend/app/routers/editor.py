import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_editor_sessions, get_route_store
from ..exceptions import RouteEngineError
from ..models.route import (
    AreaSelection,
    Coordinate,
    EditorSession,
    EditorSessionCreate,
    IndexSelection,
    Route,
    RouteSaveRequest,
)
from ..services.editor_sessions import EditorSessionRegistry
from ..services.route_editor import RouteEditor
from ..services.route_store import RouteStore
from .common import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/editor/sessions", tags=["route-editor"])


def _as_point(coordinate: Coordinate):
    return coordinate.latitude, coordinate.longitude


def _session_state(session_id: str, editor: RouteEditor) -> EditorSession:
    return EditorSession(
        session_id=session_id,
        route_id=editor.route_id,
        display_name=editor.display_name,
        is_new_route=editor.is_new_route,
        points=[Coordinate(latitude=p.lat, longitude=p.lng) for p in editor.points],
        highlighted_index=editor.highlighted_index,
        selected_indices=sorted(editor.selected),
    )


def _get_editor(session_id: str, sessions: EditorSessionRegistry) -> RouteEditor:
    editor = sessions.get(session_id)
    if editor is None:
        raise HTTPException(status_code=404, detail=f"Editor session {session_id} not found")
    return editor


@router.post("", response_model=EditorSession)
async def open_session(
    request: EditorSessionCreate,
    store: RouteStore = Depends(get_route_store),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    """Open an editor on a new route or on an existing one."""
    try:
        if request.route_id:
            route = store.get_route(request.route_id)
            if route is None:
                raise HTTPException(status_code=404, detail=f"Route {request.route_id} not found")
            editor = RouteEditor.from_route(route)
            if request.display_name:
                editor.display_name = request.display_name
        else:
            editor = RouteEditor(display_name=request.display_name or "New route")
    except RouteEngineError as e:
        raise http_error(e)

    session_id = str(uuid.uuid4())
    sessions[session_id] = editor
    return _session_state(session_id, editor)


@router.get("/{session_id}", response_model=EditorSession)
async def get_session(session_id: str, sessions: EditorSessionRegistry = Depends(get_editor_sessions)):
    return _session_state(session_id, _get_editor(session_id, sessions))


@router.post("/{session_id}/points", response_model=EditorSession)
async def append_point(
    session_id: str,
    point: Coordinate,
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    """Add a point at the end of the route."""
    editor = _get_editor(session_id, sessions)
    editor.append_point(_as_point(point))
    return _session_state(session_id, editor)


@router.post("/{session_id}/points/insert", response_model=EditorSession)
async def insert_point(
    session_id: str,
    point: Coordinate,
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    """Insert a point into the segment closest to it."""
    editor = _get_editor(session_id, sessions)
    try:
        editor.insert_near_segment(_as_point(point))
    except RouteEngineError as e:
        raise http_error(e)
    return _session_state(session_id, editor)


@router.put("/{session_id}/points/{index}", response_model=EditorSession)
async def relocate_point(
    session_id: str,
    index: int,
    point: Coordinate,
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    editor = _get_editor(session_id, sessions)
    try:
        editor.relocate_point(index, _as_point(point))
    except RouteEngineError as e:
        raise http_error(e)
    return _session_state(session_id, editor)


@router.delete("/{session_id}/points/{index}", response_model=EditorSession)
async def delete_point(
    session_id: str,
    index: int,
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    editor = _get_editor(session_id, sessions)
    try:
        editor.delete_at(index)
    except RouteEngineError as e:
        raise http_error(e)
    return _session_state(session_id, editor)


@router.post("/{session_id}/select", response_model=EditorSession)
async def select_area(
    session_id: str,
    area: AreaSelection,
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    """Select every point inside a rectangle."""
    editor = _get_editor(session_id, sessions)
    editor.select_in_area(_as_point(area.corner1), _as_point(area.corner2))
    return _session_state(session_id, editor)


@router.post("/{session_id}/points/delete", response_model=EditorSession)
async def delete_points(
    session_id: str,
    selection: IndexSelection,
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    """Delete the given indices, or the current selection when none are given."""
    editor = _get_editor(session_id, sessions)
    try:
        if selection.indices is None:
            editor.delete_selected()
        else:
            editor.delete_indices(selection.indices)
    except RouteEngineError as e:
        raise http_error(e)
    return _session_state(session_id, editor)


@router.delete("/{session_id}/points", response_model=EditorSession)
async def clear_points(session_id: str, sessions: EditorSessionRegistry = Depends(get_editor_sessions)):
    editor = _get_editor(session_id, sessions)
    editor.clear()
    return _session_state(session_id, editor)


@router.post("/{session_id}/save", response_model=Route)
async def save_session(
    session_id: str,
    request: RouteSaveRequest,
    store: RouteStore = Depends(get_route_store),
    sessions: EditorSessionRegistry = Depends(get_editor_sessions),
):
    """Encode the edited points and persist them, then close the session."""
    editor = _get_editor(session_id, sessions)
    try:
        encoded = editor.encode()
        if editor.is_new_route:
            route = store.insert_route({
                "display_name": request.display_name or editor.display_name,
                "origin_label": request.origin_label,
                "destination_label": request.destination_label,
                "distance_km": request.distance_km,
                "estimated_duration_minutes": request.estimated_duration_minutes,
                "encoded_polyline": encoded,
                "is_active": True,
            })
        else:
            route = store.update_route(editor.route_id, {"encoded_polyline": encoded})
    except RouteEngineError as e:
        raise http_error(e)

    sessions.pop(session_id, None)
    logger.info(f"Saved route {route.id} with {len(editor)} points")
    return route


@router.delete("/{session_id}")
async def discard_session(session_id: str, sessions: EditorSessionRegistry = Depends(get_editor_sessions)):
    _get_editor(session_id, sessions)
    sessions.pop(session_id, None)
    return {"message": "Editor session discarded"}
