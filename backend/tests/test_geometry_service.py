"""
Tests des primitives geometriques (shapely + projection Web-Mercator).
"""
import pytest
from shapely.geometry import LineString, Point

from app.domain.errors import ValidationError
from app.domain.services.geometry_service import GeometryService, geometry_service
from app.domain.value_objects import Coordinate


def _zigzag(n: int = 12):
    return [{"lat": 45.0 + (0.0003 if i % 2 else 0.0), "lng": 5.0 + i * 0.001} for i in range(n)]


class TestConstruction:
    def test_point_to_geometry(self):
        point = geometry_service.point_to_geometry(45.1, 5.2)
        assert (point.x, point.y) == (5.2, 45.1)

    def test_point_with_altitude(self):
        point = geometry_service.point_to_geometry(45.1, 5.2, 350.0)
        assert geometry_service.extract_point(point)["altitude"] == 350.0

    def test_point_out_of_bounds(self):
        with pytest.raises(ValidationError):
            geometry_service.point_to_geometry(95, 5)

    def test_line_requires_two_points(self):
        with pytest.raises(ValidationError):
            geometry_service.line_to_geometry([{"lat": 45.0, "lng": 5.0}])
        with pytest.raises(ValidationError):
            geometry_service.line_to_geometry([])

    def test_line_point_missing_latitude(self):
        with pytest.raises(ValidationError):
            geometry_service.line_to_geometry([{"lat": 45.0, "lng": 5.0}, {"lng": 5.1}])

    def test_line_accepts_coordinates(self):
        line = geometry_service.line_to_geometry([Coordinate(45.0, 5.0), Coordinate(45.0, 5.01)])
        assert list(line.coords) == [(5.0, 45.0), (5.01, 45.0)]

    def test_line_from_positions_roundtrip(self):
        positions = [[5.0, 45.0, 200.0], [5.01, 45.0, 210.0]]
        line = geometry_service.line_from_positions(positions)
        assert geometry_service.to_positions(line) == positions
        assert geometry_service.extract_line(line)[1] == {"latitude": 45.0, "longitude": 5.01, "altitude": 210.0}


class TestMeasures:
    def test_haversine_one_degree_latitude(self):
        assert GeometryService.haversine_distance(45.0, 5.0, 46.0, 5.0) == pytest.approx(111_195, rel=1e-4)

    def test_projected_distance_is_planar_mercator(self):
        # En Mercator, l'echelle vaut 1/cos(lat) : ~1.41 a 45 degres
        a = geometry_service.point_to_geometry(45.0, 5.0)
        b = geometry_service.point_to_geometry(45.0, 5.01)
        projected = geometry_service.distance_meters(a, b)
        geodesic = GeometryService.haversine_distance(45.0, 5.0, 45.0, 5.01)
        assert projected == pytest.approx(geodesic * 1.414, rel=0.01)

    def test_length_of_line(self):
        line = LineString([(5.0, 45.0), (5.01, 45.0), (5.02, 45.0)])
        assert geometry_service.length_meters(line) == pytest.approx(
            2 * geometry_service.distance_between_points(45.0, 5.0, 45.0, 5.01), rel=1e-9
        )

    def test_length_of_point_is_zero(self):
        assert geometry_service.length_meters(Point(5.0, 45.0)) == 0


class TestPredicates:
    def test_disjoint_lines_have_no_intersection(self):
        a = LineString([(5.0, 45.0), (5.01, 45.0)])
        b = LineString([(5.0, 45.1), (5.01, 45.1)])
        assert geometry_service.intersects(a, b) is False
        assert geometry_service.intersection(a, b) is None

    def test_overlapping_lines_intersection(self):
        a = LineString([(5.0, 45.0), (5.02, 45.0)])
        b = LineString([(5.01, 45.0), (5.03, 45.0)])
        shared = geometry_service.intersection(a, b)
        assert shared is not None
        assert shared.length == pytest.approx(0.01)

    def test_within_radius(self):
        a = geometry_service.point_to_geometry(45.0, 5.0)
        b = geometry_service.point_to_geometry(45.0, 5.001)
        distance = geometry_service.distance_meters(a, b)
        assert geometry_service.within(a, b, distance + 1)
        assert not geometry_service.within(a, b, distance - 1)

    def test_buffer_contains_nearby_point(self):
        area = geometry_service.buffer(geometry_service.point_to_geometry(45.0, 5.0), 500)
        assert area.contains(geometry_service.point_to_geometry(45.0, 5.001))
        assert not area.contains(geometry_service.point_to_geometry(45.0, 5.05))

    def test_centroid(self):
        centroid = geometry_service.centroid(LineString([(5.0, 45.0), (5.02, 45.0)]))
        assert (centroid.x, centroid.y) == pytest.approx((5.01, 45.0))


class TestSimplify:
    def test_zero_tolerance_never_adds_points(self):
        line = geometry_service.line_to_geometry(_zigzag())
        assert len(geometry_service.simplify(line, 0).coords) <= len(line.coords)

    @pytest.mark.parametrize("tolerance", [1, 10, 50, 500])
    def test_simplified_is_no_longer_and_keeps_endpoints(self, tolerance):
        line = geometry_service.line_to_geometry(_zigzag())
        simplified = geometry_service.simplify(line, tolerance)
        assert len(simplified.coords) <= len(line.coords)
        assert geometry_service.length_meters(simplified) <= geometry_service.length_meters(line) + 1e-6
        assert simplified.coords[0] == line.coords[0]
        assert simplified.coords[-1] == line.coords[-1]

    def test_large_tolerance_keeps_endpoints_only(self):
        line = geometry_service.line_to_geometry(_zigzag())
        assert len(geometry_service.simplify(line, 10_000).coords) == 2


class TestProximity:
    def test_find_near_orders_by_distance_and_limits(self):
        origin = geometry_service.point_to_geometry(45.0, 5.0)
        candidates = {
            "far": Point(5.03, 45.0),
            "near": Point(5.001, 45.0),
            "mid": Point(5.01, 45.0),
            "missing": None,
        }
        result = geometry_service.find_near(list(candidates), origin, 5000, None, key=candidates.get)
        assert result == ["near", "mid", "far"]
        assert geometry_service.find_near(list(candidates), origin, 5000, 1, key=candidates.get) == ["near"]

    def test_find_near_excludes_outside_radius(self):
        origin = geometry_service.point_to_geometry(45.0, 5.0)
        result = geometry_service.find_near(["x"], origin, 100, None, key=lambda _: Point(5.1, 45.0))
        assert result == []

    def test_search_box_contains_radius(self):
        min_lat, min_lng, max_lat, max_lng = geometry_service.search_box(45.0, 5.0, 1000)
        edge = geometry_service.point_to_geometry(45.0, max_lng)
        assert geometry_service.distance_meters(geometry_service.point_to_geometry(45.0, 5.0), edge) >= 999.999
        assert min_lat < 45.0 < max_lat
