import math

import pytest

from app.services.geometry import nearest_point_on_segment, points_in_bounding_box


class TestNearestPointOnSegment:
    def test_point_before_start_clamps_to_a(self):
        result = nearest_point_on_segment((5, -5), (0, 0), (0, 10))
        assert result.point == (0, 0)
        assert result.t == 0
        assert result.distance == pytest.approx(math.sqrt(50))

    def test_point_past_end_clamps_to_b(self):
        result = nearest_point_on_segment((0, 15), (0, 0), (0, 10))
        assert result.point == (0, 10)
        assert result.t == 1
        assert result.distance == pytest.approx(5)

    def test_midpoint_on_segment(self):
        result = nearest_point_on_segment((0, 5), (0, 0), (0, 10))
        assert result.t == pytest.approx(0.5)
        assert result.distance == 0

    def test_perpendicular_projection(self):
        result = nearest_point_on_segment((1, 5), (0, 0), (0, 10))
        assert result.point == (0, 5)
        assert result.distance == pytest.approx(1)

    def test_degenerate_segment_uses_a(self):
        result = nearest_point_on_segment((3, 4), (0, 0), (0, 0))
        assert result.t == 0
        assert result.point == (0, 0)
        assert result.distance == pytest.approx(5)


class TestPointsInBoundingBox:
    points = [(0, 0), (1, 1), (2, 2), (3, 3), (4, 4)]

    def test_inclusive_edges(self):
        assert points_in_bounding_box(self.points, (1, 1), (3, 3)) == {1, 2, 3}

    def test_corner_order_does_not_matter(self):
        assert points_in_bounding_box(self.points, (3, 1), (1, 3)) == {1, 2, 3}
        assert points_in_bounding_box(self.points, (3, 3), (1, 1)) == {1, 2, 3}

    def test_empty_selection(self):
        assert points_in_bounding_box(self.points, (10, 10), (11, 11)) == set()

    def test_zero_area_box(self):
        assert points_in_bounding_box(self.points, (2, 2), (2, 2)) == {2}
