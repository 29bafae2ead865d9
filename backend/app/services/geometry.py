"""
Planar geometry helpers for route editing.

Latitude and longitude are treated as flat Cartesian coordinates, which is
good enough for picking points on a single route at street scale.
"""
import math
from typing import NamedTuple, Sequence, Set, Tuple

from .polyline import LatLng

Point = Tuple[float, float]


class SegmentProjection(NamedTuple):
    point: LatLng
    distance: float
    t: float


def nearest_point_on_segment(p: Point, a: Point, b: Point) -> SegmentProjection:
    """Project p onto the segment a-b, clamped to the segment's endpoints."""
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    length_sq = dx * dx + dy * dy

    if length_sq == 0:
        t = 0.0
    else:
        t = ((p[0] - a[0]) * dx + (p[1] - a[1]) * dy) / length_sq
        t = max(0.0, min(1.0, t))

    nearest = LatLng(a[0] + t * dx, a[1] + t * dy)
    distance = math.hypot(p[0] - nearest.lat, p[1] - nearest.lng)
    return SegmentProjection(nearest, distance, t)


def points_in_bounding_box(points: Sequence[Point], corner1: Point, corner2: Point) -> Set[int]:
    """Indices of points inside the closed rectangle spanned by two corners."""
    min_lat, max_lat = sorted((corner1[0], corner2[0]))
    min_lng, max_lng = sorted((corner1[1], corner2[1]))

    return {
        i for i, (lat, lng) in enumerate(points)
        if min_lat <= lat <= max_lat and min_lng <= lng <= max_lng
    }
