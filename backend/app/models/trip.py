from datetime import datetime
from pydantic import BaseModel, Field, field_validator

SPEED_OPTIONS = (1, 2, 3, 5, 10, 20)


class Trip(BaseModel):
    """Model for one live animation of a vehicle along a route."""
    trip_id: str
    route_id: str
    route_display_name: str
    current_point_index: int = 0
    current_latitude: float
    current_longitude: float
    total_points: int
    speed_multiplier: float = 1
    is_animating: bool = False
    progress_percent: float = 0.0
    created_at: datetime
    updated_at: datetime


class TripView(Trip):
    """Trip with derived timing figures for display."""
    remaining_minutes: float
    total_minutes_at_speed: float
    remaining_label: str
    duration_label: str


class TripCreate(BaseModel):
    """Request model for creating a trip."""
    route_id: str = Field(..., min_length=1)
    speed_multiplier: float = 1

    @field_validator("speed_multiplier")
    @classmethod
    def check_speed(cls, value: float) -> float:
        if value not in SPEED_OPTIONS:
            raise ValueError(f"speed_multiplier must be one of {SPEED_OPTIONS}")
        return value


class SpeedUpdate(BaseModel):
    """Request model for changing a trip's playback speed."""
    speed_multiplier: float

    @field_validator("speed_multiplier")
    @classmethod
    def check_speed(cls, value: float) -> float:
        if value not in SPEED_OPTIONS:
            raise ValueError(f"speed_multiplier must be one of {SPEED_OPTIONS}")
        return value
