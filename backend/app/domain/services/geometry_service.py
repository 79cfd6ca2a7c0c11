"""
Service geometrique - Domain Layer
Isole tous les calculs spatiaux derriere une interface unique (moteur interchangeable).

Geometries en WGS-84 (SRID 4326, ordre x=lng, y=lat). Les mesures en metres
se font apres projection Web-Mercator (EPSG:3857) : distances planes, pas
geodesiques. Pour une distance exacte entre deux coordonnees brutes, utiliser
haversine_distance.
"""
import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union

from pyproj import Transformer
from shapely import ops
from shapely.geometry import LineString, Point
from shapely.geometry.base import BaseGeometry

from app.domain.errors import ValidationError
from app.domain.value_objects import Coordinate

logger = logging.getLogger(__name__)

SRID = 4326
METRIC_SRID = 3857
EARTH_RADIUS_M = 6_371_000

# Metres Web-Mercator par degre de longitude (constant) ; minorant pour la latitude
MERCATOR_METERS_PER_DEGREE = 2 * math.pi * 6_378_137 / 360

T = TypeVar("T")
PointInput = Union[Coordinate, Mapping[str, Any]]
BoundingBox = Tuple[float, float, float, float]  # (min_lat, min_lng, max_lat, max_lng)

_TO_METRIC = Transformer.from_crs(f"EPSG:{SRID}", f"EPSG:{METRIC_SRID}", always_xy=True)
_TO_WGS84 = Transformer.from_crs(f"EPSG:{METRIC_SRID}", f"EPSG:{SRID}", always_xy=True)


class GeometryService:
    """Primitives spatiales : construction, distances, intersections, buffer, simplification."""

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def point_to_geometry(self, latitude: float, longitude: float, altitude: Optional[float] = None) -> Point:
        """Construit un POINT (SRID 4326) apres validation des bornes."""
        coord = Coordinate(latitude, longitude, altitude)
        if coord.altitude is not None:
            return Point(coord.longitude, coord.latitude, coord.altitude)
        return Point(coord.longitude, coord.latitude)

    def line_to_geometry(self, points: Sequence[PointInput]) -> LineString:
        """Construit une LINESTRING a partir de coordonnees.

        Leve ValidationError si moins de 2 points ou si un point n'a pas lat/lng.
        L'altitude n'est conservee que si le premier point en porte une
        (les points suivants sans altitude prennent 0).
        """
        if not points:
            raise ValidationError("Points array cannot be empty")
        if len(points) < 2:
            raise ValidationError("LineString requires at least 2 points")

        coords = [p if isinstance(p, Coordinate) else Coordinate.from_dict(p) for p in points]
        has_altitude = coords[0].altitude is not None
        if has_altitude:
            return LineString([(c.longitude, c.latitude, c.altitude or 0.0) for c in coords])
        return LineString([(c.longitude, c.latitude) for c in coords])

    def line_from_positions(self, positions: Optional[Sequence[Sequence[float]]]) -> LineString:
        """Construit une LINESTRING depuis des positions GeoJSON [lng, lat(, alt)]."""
        if not positions:
            raise ValidationError("Route has no positions")
        points = []
        for position in positions:
            if position is None or len(position) < 2:
                raise ValidationError("Each position must have longitude and latitude")
            alt = position[2] if len(position) > 2 else None
            points.append(Coordinate(float(position[1]), float(position[0]), alt))
        return self.line_to_geometry(points)

    def to_positions(self, geometry: BaseGeometry) -> List[List[float]]:
        """Positions GeoJSON [lng, lat(, alt)] d'une geometrie lineaire ou ponctuelle."""
        return [list(coord) for coord in geometry.coords]

    def extract_point(self, point: Point) -> Dict[str, Optional[float]]:
        return {
            "latitude": point.y,
            "longitude": point.x,
            "altitude": point.z if point.has_z else None,
        }

    def extract_line(self, line: LineString) -> List[Dict[str, Optional[float]]]:
        return [
            {
                "latitude": coord[1],
                "longitude": coord[0],
                "altitude": coord[2] if len(coord) > 2 else None,
            }
            for coord in line.coords
        ]

    # ------------------------------------------------------------------
    # Mesures
    # ------------------------------------------------------------------

    def to_metric(self, geometry: BaseGeometry) -> BaseGeometry:
        """Projette une geometrie WGS-84 en Web-Mercator."""
        return ops.transform(_TO_METRIC.transform, geometry)

    def to_wgs84(self, geometry: BaseGeometry) -> BaseGeometry:
        return ops.transform(_TO_WGS84.transform, geometry)

    def distance_meters(self, a: BaseGeometry, b: BaseGeometry) -> float:
        """Distance plane entre deux geometries projetees."""
        return float(self.to_metric(a).distance(self.to_metric(b)))

    def length_meters(self, geometry: BaseGeometry) -> float:
        """Longueur projetee d'une geometrie (0 pour un point)."""
        return float(self.to_metric(geometry).length)

    def distance_between_points(self, lat1: float, lng1: float, lat2: float, lng2: float) -> float:
        return self.distance_meters(self.point_to_geometry(lat1, lng1), self.point_to_geometry(lat2, lng2))

    @staticmethod
    def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Distance geodesique (grand cercle) en metres."""
        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)

        a = (
            math.sin(delta_lat / 2) ** 2
            + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
        )
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
        return EARTH_RADIUS_M * c

    # ------------------------------------------------------------------
    # Predicats et operations
    # ------------------------------------------------------------------

    def intersects(self, a: BaseGeometry, b: BaseGeometry) -> bool:
        return bool(a.intersects(b))

    def intersection(self, a: BaseGeometry, b: BaseGeometry) -> Optional[BaseGeometry]:
        """Intersection des deux geometries, None si vide."""
        result = a.intersection(b)
        if result.is_empty:
            return None
        return result

    def within(self, a: BaseGeometry, b: BaseGeometry, radius_meters: float) -> bool:
        """True si a et b sont a moins de radius_meters (projection metrique)."""
        return self.distance_meters(a, b) <= radius_meters

    def buffer(self, geometry: BaseGeometry, radius_meters: float) -> BaseGeometry:
        """Zone tampon de radius_meters autour de la geometrie (retour en WGS-84)."""
        return self.to_wgs84(self.to_metric(geometry).buffer(radius_meters))

    def simplify(self, geometry: BaseGeometry, tolerance_meters: float = 10.0) -> BaseGeometry:
        """Simplification Douglas-Peucker en metres.

        Pour une ligne, le resultat est un sous-ensemble des sommets d'origine
        (extremites conservees) : le nombre de points ne peut jamais augmenter.
        """
        if tolerance_meters <= 0:
            return geometry
        if not isinstance(geometry, LineString):
            return self.to_wgs84(self.to_metric(geometry).simplify(tolerance_meters))
        if len(geometry.coords) < 3:
            return geometry

        original = list(geometry.coords)
        metric = self.to_metric(geometry)
        kept = set(metric.simplify(tolerance_meters, preserve_topology=False).coords)

        selected = [
            coord for index, (coord, projected) in enumerate(zip(original, metric.coords))
            if projected in kept or index in (0, len(original) - 1)
        ]
        return LineString(selected)

    def centroid(self, geometry: BaseGeometry) -> Point:
        return geometry.centroid

    # ------------------------------------------------------------------
    # Recherche de proximite
    # ------------------------------------------------------------------

    def bounding_box(self, geometry: BaseGeometry) -> BoundingBox:
        min_lng, min_lat, max_lng, max_lat = geometry.bounds
        return min_lat, min_lng, max_lat, max_lng

    def search_box(self, latitude: float, longitude: float, radius_meters: float) -> BoundingBox:
        """Rectangle englobant (degres) de tous les points a moins de radius_meters en Web-Mercator.

        En Web-Mercator un degre vaut au moins MERCATOR_METERS_PER_DEGREE sur
        chaque axe : le rectangle est donc un pre-filtre sans faux negatif.
        """
        delta = radius_meters / MERCATOR_METERS_PER_DEGREE
        return (
            max(-90.0, latitude - delta),
            max(-180.0, longitude - delta),
            min(90.0, latitude + delta),
            min(180.0, longitude + delta),
        )

    def find_near(
        self,
        candidates: Iterable[T],
        point: BaseGeometry,
        radius_meters: float,
        limit: Optional[int],
        key: Callable[[T], Optional[BaseGeometry]],
    ) -> List[T]:
        """Candidats a moins de radius_meters du point, du plus proche au plus lointain.

        Les candidats sans geometrie exploitable sont ignores (log en warning).
        """
        target = self.to_metric(point)
        scored: List[Tuple[float, int, T]] = []
        for index, candidate in enumerate(candidates):
            try:
                geometry = key(candidate)
                if geometry is None:
                    continue
                distance = self.to_metric(geometry).distance(target)
            except (ValidationError, ValueError) as exc:
                logger.warning(f"Geometrie invalide ignoree pendant la recherche de proximite: {exc}")
                continue
            if distance <= radius_meters:
                scored.append((distance, index, candidate))

        scored.sort(key=lambda item: (item[0], item[1]))
        results = [candidate for _, _, candidate in scored]
        if limit is not None:
            results = results[:limit]
        return results


# Instance globale
geometry_service = GeometryService()
