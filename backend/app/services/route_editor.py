from typing import Iterable, List, Optional, Set, Tuple

from ..exceptions import IndexOutOfRange, InsufficientPoints
from ..models.route import Route
from . import polyline
from .geometry import nearest_point_on_segment, points_in_bounding_box
from .polyline import LatLng


class RouteEditor:
    """Mutable point sequence for a route being authored or revised."""

    def __init__(
        self,
        display_name: str = "",
        points: Optional[Iterable[Tuple[float, float]]] = None,
        route_id: Optional[str] = None,
    ):
        self.route_id = route_id
        self.display_name = display_name
        self.points: List[LatLng] = [LatLng(lat, lng) for lat, lng in (points or [])]
        self.highlighted_index: Optional[int] = None
        self.selected: Set[int] = set()

    @classmethod
    def from_route(cls, route: Route) -> "RouteEditor":
        """Open an existing route for revision."""
        return cls(
            display_name=route.display_name,
            points=polyline.decode(route.encoded_polyline),
            route_id=route.id,
        )

    @property
    def is_new_route(self) -> bool:
        return self.route_id is None

    def __len__(self) -> int:
        return len(self.points)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.points):
            raise IndexOutOfRange(f"Point index {index} out of range for {len(self.points)} points")

    def append_point(self, p: Tuple[float, float]) -> int:
        self.points.append(LatLng(*p))
        return len(self.points) - 1

    def insert_near_segment(self, p: Tuple[float, float]) -> int:
        """
        Insert p between the two consecutive points whose segment lies closest to it.

        The raw location is inserted, not its projection onto the segment.
        Returns the index of the new point.
        """
        if len(self.points) < 2:
            raise InsufficientPoints("At least 2 points are needed to insert on a segment")

        best_index = 0
        best_distance = float("inf")
        for i in range(len(self.points) - 1):
            projection = nearest_point_on_segment(p, self.points[i], self.points[i + 1])
            if projection.distance < best_distance:
                best_index = i
                best_distance = projection.distance

        insert_at = best_index + 1
        self.points.insert(insert_at, LatLng(*p))
        self._shift_bookkeeping(insert_at, 1)
        return insert_at

    def relocate_point(self, index: int, p: Tuple[float, float]) -> None:
        self._check_index(index)
        self.points[index] = LatLng(*p)

    def highlight(self, index: Optional[int]) -> None:
        if index is not None:
            self._check_index(index)
        self.highlighted_index = index

    def delete_at(self, index: int) -> None:
        self._check_index(index)
        del self.points[index]

        if self.highlighted_index == index:
            self.highlighted_index = None
        self.selected.discard(index)
        self._shift_bookkeeping(index + 1, -1)

    def delete_indices(self, indices: Iterable[int]) -> int:
        """Remove every listed index; the remaining points keep their order."""
        doomed = set(indices)
        for index in doomed:
            self._check_index(index)

        self.points = [p for i, p in enumerate(self.points) if i not in doomed]

        if self.highlighted_index is not None:
            if self.highlighted_index in doomed:
                self.highlighted_index = None
            else:
                self.highlighted_index -= sum(1 for i in doomed if i < self.highlighted_index)
        self.selected = {
            s - sum(1 for i in doomed if i < s) for s in self.selected if s not in doomed
        }
        return len(doomed)

    def select_in_area(self, corner1: Tuple[float, float], corner2: Tuple[float, float]) -> Set[int]:
        self.selected = points_in_bounding_box(self.points, corner1, corner2)
        return set(self.selected)

    def delete_selected(self) -> int:
        removed = self.delete_indices(self.selected)
        self.selected = set()
        return removed

    def clear(self) -> None:
        self.points = []
        self.highlighted_index = None
        self.selected = set()

    def to_codec_sequence(self) -> List[LatLng]:
        if len(self.points) < 2:
            raise InsufficientPoints(f"A route needs at least 2 points, got {len(self.points)}")
        return list(self.points)

    def encode(self) -> str:
        return polyline.encode(self.to_codec_sequence())

    def _shift_bookkeeping(self, start: int, delta: int) -> None:
        # indices >= start move by delta
        if self.highlighted_index is not None and self.highlighted_index >= start:
            self.highlighted_index += delta
        self.selected = {s + delta if s >= start else s for s in self.selected}
