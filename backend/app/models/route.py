from datetime import datetime
from typing import List, Optional, Set
from pydantic import BaseModel, Field


class Coordinate(BaseModel):
    """A single geographic position in decimal degrees."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Route(BaseModel):
    """Model for a persisted route."""
    id: str
    display_name: str
    sequence_number: int
    origin_label: Optional[str] = None
    destination_label: Optional[str] = None
    distance_km: Optional[float] = None
    estimated_duration_minutes: Optional[int] = None
    encoded_polyline: str = ""
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class RouteDetail(Route):
    """Route together with its decoded point sequence."""
    points: List[Coordinate]


class EditorSessionCreate(BaseModel):
    """Request model for opening an editor session."""
    route_id: Optional[str] = Field(None, description="Existing route to revise; omit for a new route")
    display_name: Optional[str] = None


class EditorSession(BaseModel):
    """Model for the state of an editor session."""
    session_id: str
    route_id: Optional[str] = None
    display_name: str
    is_new_route: bool
    points: List[Coordinate]
    highlighted_index: Optional[int] = None
    selected_indices: List[int] = []


class AreaSelection(BaseModel):
    """Two opposite corners of a selection rectangle."""
    corner1: Coordinate
    corner2: Coordinate


class IndexSelection(BaseModel):
    """Indices to delete; the current area selection is used when omitted."""
    indices: Optional[Set[int]] = None


class RouteSaveRequest(BaseModel):
    """Metadata supplied when an editor session is saved."""
    display_name: Optional[str] = None
    origin_label: Optional[str] = None
    destination_label: Optional[str] = None
    distance_km: Optional[float] = Field(None, ge=0)
    estimated_duration_minutes: Optional[int] = Field(None, gt=0)
