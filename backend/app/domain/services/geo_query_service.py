"""
Service de requetes geospatiales - Domain Layer
Recherche de proximite, intersections de routes et recherche par emprise.

Chaque requete combine un pre-filtre rectangle sur les colonnes indexees
(RouteFootprint / localisation utilisateur) et un calcul exact via
GeometryService. Les colonnes et directions de tri dynamiques passent
obligatoirement par une liste blanche (GeoColumn / SortDirection).
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Type, Union

from shapely.errors import GEOSException
from shapely.geometry import LineString
from shapely.geometry.base import BaseGeometry
from sqlalchemy import and_
from sqlmodel import Session, select

from app.domain.entities import Activity, Segment, User
from app.domain.errors import ValidationError
from app.domain.services.geometry_service import BoundingBox, GeometryService, geometry_service

logger = logging.getLogger(__name__)

DEFAULT_ACTIVITY_RADIUS_M = 5000.0
DEFAULT_SEGMENT_RADIUS_M = 5000.0
DEFAULT_USER_RADIUS_M = 10000.0


class GeoColumn(str, Enum):
    """Colonnes geographiques autorisees dans les requetes dynamiques"""
    ROUTE = "route"
    LOCATION = "location"
    START_POINT = "start_point"
    END_POINT = "end_point"


class SortDirection(str, Enum):
    """Directions de tri autorisees"""
    ASC = "ASC"
    DESC = "DESC"


# Colonnes (lat, lng) physiques par colonne logique ponctuelle
_POINT_COLUMNS = {
    GeoColumn.LOCATION: ("location_lat", "location_lng"),
    GeoColumn.START_POINT: ("start_lat", "start_lng"),
    GeoColumn.END_POINT: ("end_lat", "end_lng"),
}


def validate_column_name(column: Union[str, GeoColumn]) -> GeoColumn:
    """Retourne la colonne autorisee ou leve ValidationError (jamais de passage en l'etat)."""
    if isinstance(column, GeoColumn):
        return column
    try:
        return GeoColumn(column)
    except ValueError:
        raise ValidationError(
            f"Invalid column name: {column!r}. Allowed: {', '.join(c.value for c in GeoColumn)}"
        )


def validate_direction(direction: Union[str, SortDirection]) -> SortDirection:
    """Retourne la direction autorisee (insensible a la casse) ou leve ValidationError."""
    if isinstance(direction, SortDirection):
        return direction
    if not isinstance(direction, str):
        raise ValidationError(f"Invalid sort direction: {direction!r}")
    try:
        return SortDirection(direction.upper())
    except ValueError:
        raise ValidationError(f"Invalid sort direction: {direction!r}. Allowed: ASC, DESC")


@dataclass
class SegmentMatch:
    """Segment intersecte par une activite avec son taux de recouvrement."""
    segment: Segment
    overlap_percentage: float
    overlap_distance: float


class GeoQueryService:
    """Requetes spatiales sur les activites, segments et utilisateurs."""

    def __init__(self, geometry: Optional[GeometryService] = None):
        self.geometry = geometry or geometry_service

    # ------------------------------------------------------------------
    # Geometrie d'une ligne en base
    # ------------------------------------------------------------------

    def geometry_of(self, row: Any, column: Union[str, GeoColumn]) -> Optional[BaseGeometry]:
        """Geometrie d'une entite pour la colonne logique demandee (None si absente)."""
        column = validate_column_name(column)
        if column == GeoColumn.ROUTE:
            route = getattr(row, "route", None)
            if not route:
                return None
            return self.geometry.line_from_positions(route)

        lat_attr, lng_attr = _POINT_COLUMNS[column]
        lat = getattr(row, lat_attr, None)
        lng = getattr(row, lng_attr, None)
        if lat is None or lng is None:
            return None
        return self.geometry.point_to_geometry(lat, lng)

    def route_of(self, row: Any) -> Optional[LineString]:
        return self.geometry_of(row, GeoColumn.ROUTE)

    # ------------------------------------------------------------------
    # Pre-filtres rectangle
    # ------------------------------------------------------------------

    def _box_filter(self, model: Type[Any], column: GeoColumn, box: BoundingBox):
        """Clause SQL : la colonne logique intersecte le rectangle (colonnes indexees)."""
        min_lat, min_lng, max_lat, max_lng = box
        if column == GeoColumn.ROUTE:
            return and_(
                model.min_lat.is_not(None),
                model.min_lat <= max_lat,
                model.max_lat >= min_lat,
                model.min_lng <= max_lng,
                model.max_lng >= min_lng,
            )
        lat_attr, lng_attr = _POINT_COLUMNS[column]
        lat_col = getattr(model, lat_attr)
        lng_col = getattr(model, lng_attr)
        return and_(
            lat_col.is_not(None),
            lat_col.between(min_lat, max_lat),
            lng_col.between(min_lng, max_lng),
        )

    def _expand_box(self, box: BoundingBox, radius_meters: float) -> BoundingBox:
        min_lat, min_lng, max_lat, max_lng = box
        low = self.geometry.search_box(min_lat, min_lng, radius_meters)
        high = self.geometry.search_box(max_lat, max_lng, radius_meters)
        return low[0], low[1], high[2], high[3]

    # ------------------------------------------------------------------
    # Primitives generiques
    # ------------------------------------------------------------------

    def near_point(
        self,
        session: Session,
        query,
        model: Type[Any],
        column: Union[str, GeoColumn],
        latitude: float,
        longitude: float,
        radius_meters: float,
        limit: Optional[int] = None,
    ) -> List[Any]:
        """Applique le filtre de proximite a une requete et retourne les lignes triees par distance."""
        column = validate_column_name(column)
        if radius_meters < 0:
            raise ValidationError("Radius must be positive")

        point = self.geometry.point_to_geometry(latitude, longitude)
        box = self.geometry.search_box(latitude, longitude, radius_meters)
        rows = session.exec(query.where(self._box_filter(model, column, box))).all()

        return self.geometry.find_near(
            rows, point, radius_meters, limit, key=lambda row: self.geometry_of(row, column)
        )

    def order_by_distance(
        self,
        rows: Sequence[Any],
        column: Union[str, GeoColumn],
        latitude: float,
        longitude: float,
        direction: Union[str, SortDirection] = SortDirection.ASC,
    ) -> List[Any]:
        """Trie des lignes par distance au point. Les lignes sans geometrie sont placees en dernier."""
        column = validate_column_name(column)
        direction = validate_direction(direction)
        point = self.geometry.point_to_geometry(latitude, longitude)

        located = []
        missing = []
        for row in rows:
            geometry = self.geometry_of(row, column)
            if geometry is None:
                missing.append(row)
            else:
                located.append((self.geometry.distance_meters(geometry, point), row))

        located.sort(key=lambda item: item[0], reverse=direction == SortDirection.DESC)
        return [row for _, row in located] + missing

    # ------------------------------------------------------------------
    # Recherche a proximite
    # ------------------------------------------------------------------

    def find_activities_near_point(
        self,
        session: Session,
        latitude: float,
        longitude: float,
        radius_meters: float = DEFAULT_ACTIVITY_RADIUS_M,
        limit: Optional[int] = 20,
    ) -> List[Activity]:
        query = select(Activity).where(Activity.deleted_at.is_(None))
        return self.near_point(
            session, query, Activity, GeoColumn.ROUTE, latitude, longitude, radius_meters, limit
        )

    def find_segments_near_point(
        self,
        session: Session,
        latitude: float,
        longitude: float,
        radius_meters: float = DEFAULT_SEGMENT_RADIUS_M,
        limit: Optional[int] = 20,
    ) -> List[Segment]:
        return self.near_point(
            session, select(Segment), Segment, GeoColumn.ROUTE, latitude, longitude, radius_meters, limit
        )

    def find_users_near_point(
        self,
        session: Session,
        latitude: float,
        longitude: float,
        radius_meters: float = DEFAULT_USER_RADIUS_M,
        limit: Optional[int] = 50,
    ) -> List[User]:
        return self.near_point(
            session, select(User), User, GeoColumn.LOCATION, latitude, longitude, radius_meters, limit
        )

    # ------------------------------------------------------------------
    # Intersections de routes
    # ------------------------------------------------------------------

    def find_candidate_segments(self, session: Session, activity: Activity) -> List[Segment]:
        """Segments dont l'emprise recoupe celle de l'activite (filtre grossier, sans calcul exact)."""
        if activity.min_lat is None:
            return []
        box = (activity.min_lat, activity.min_lng, activity.max_lat, activity.max_lng)
        query = (
            select(Segment)
            .where(self._box_filter(Segment, GeoColumn.ROUTE, box))
            .order_by(Segment.created_at, Segment.id)
        )
        return list(session.exec(query).all())

    def overlap_percentage(self, activity_route: LineString, segment: Segment) -> Optional[float]:
        """Part (en %) de la longueur du segment couverte par la route de l'activite.

        None si les geometries ne se croisent pas. Valeur non arrondie : c'est
        elle qui est comparee au seuil de recouvrement.
        """
        segment_route = self.route_of(segment)
        if segment_route is None:
            raise ValidationError(f"Segment {segment.id} has no route")
        if not self.geometry.intersects(activity_route, segment_route):
            return None

        shared = self.geometry.intersection(activity_route, segment_route)
        if shared is None:
            return None

        segment_length = self.geometry.length_meters(segment_route)
        if segment_length <= 0:
            raise ValidationError(f"Segment {segment.id} has a zero-length route")
        return self.geometry.length_meters(shared) / segment_length * 100

    def find_intersecting_segments(
        self,
        session: Session,
        activity: Activity,
        min_overlap_percentage: float = 0.0,
    ) -> List[SegmentMatch]:
        """Segments recouverts par la route de l'activite, au-dela du seuil donne."""
        activity_route = self.route_of(activity)
        if activity_route is None:
            return []

        matches = []
        for segment in self.find_candidate_segments(session, activity):
            try:
                overlap = self.overlap_percentage(activity_route, segment)
            except (ValidationError, ValueError, GEOSException) as exc:
                logger.warning(f"Segment {segment.id} ignore (geometrie invalide): {exc}")
                continue
            if overlap is None or overlap < min_overlap_percentage:
                continue
            matches.append(SegmentMatch(
                segment=segment,
                overlap_percentage=round(overlap, 2),
                overlap_distance=round(segment.distance_meters * overlap / 100, 2),
            ))
        return matches

    def find_activities_intersecting_segment(
        self, session: Session, segment: Segment, limit: Optional[int] = 100
    ) -> List[Activity]:
        """Activites dont la route croise le segment, les plus recentes d'abord."""
        segment_route = self.route_of(segment)
        if segment_route is None:
            return []

        box = self.geometry.bounding_box(segment_route)
        query = (
            select(Activity)
            .where(
                Activity.deleted_at.is_(None),
                self._box_filter(Activity, GeoColumn.ROUTE, box),
            )
            .order_by(Activity.completed_at.desc(), Activity.created_at.desc())
        )

        results = []
        for activity in session.exec(query).all():
            try:
                route = self.route_of(activity)
            except ValidationError as exc:
                logger.warning(f"Activite {activity.id} ignoree (route invalide): {exc}")
                continue
            if route is not None and self.geometry.intersects(route, segment_route):
                results.append(activity)
                if limit is not None and len(results) >= limit:
                    break
        return results

    # ------------------------------------------------------------------
    # Distances et emprises
    # ------------------------------------------------------------------

    def distance_between_activities(self, first: Activity, second: Activity) -> Optional[float]:
        """Distance projetee (m) entre les points de depart, None si l'un d'eux manque."""
        start_a = self.geometry_of(first, GeoColumn.START_POINT)
        start_b = self.geometry_of(second, GeoColumn.START_POINT)
        if start_a is None or start_b is None:
            return None
        return self.geometry.distance_meters(start_a, start_b)

    def _validate_box(self, min_lat: float, min_lng: float, max_lat: float, max_lng: float) -> BoundingBox:
        # Bornes WGS-84 verifiees via point_to_geometry
        self.geometry.point_to_geometry(min_lat, min_lng)
        self.geometry.point_to_geometry(max_lat, max_lng)
        if min_lat > max_lat or min_lng > max_lng:
            raise ValidationError("Bounding box minimum must not exceed maximum")
        return min_lat, min_lng, max_lat, max_lng

    def find_activities_in_bounding_box(
        self,
        session: Session,
        min_lat: float,
        min_lng: float,
        max_lat: float,
        max_lng: float,
        limit: Optional[int] = 100,
    ) -> List[Activity]:
        box = self._validate_box(min_lat, min_lng, max_lat, max_lng)
        query = (
            select(Activity)
            .where(
                Activity.deleted_at.is_(None),
                self._box_filter(Activity, GeoColumn.ROUTE, box),
            )
            .order_by(Activity.completed_at.desc(), Activity.created_at.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return list(session.exec(query).all())

    def find_segments_in_bounding_box(
        self,
        session: Session,
        min_lat: float,
        min_lng: float,
        max_lat: float,
        max_lng: float,
        limit: Optional[int] = 100,
    ) -> List[Segment]:
        box = self._validate_box(min_lat, min_lng, max_lat, max_lng)
        query = select(Segment).where(self._box_filter(Segment, GeoColumn.ROUTE, box)).order_by(Segment.name)
        if limit is not None:
            query = query.limit(limit)
        return list(session.exec(query).all())

    def find_similar_route_activities(
        self,
        session: Session,
        activity: Activity,
        max_distance_meters: float = 1000.0,
        limit: Optional[int] = 20,
    ) -> List[Activity]:
        """Activites dont la route passe a moins de max_distance_meters de celle-ci (hors elle-meme)."""
        route = self.route_of(activity)
        if route is None:
            return []

        box = self._expand_box(self.geometry.bounding_box(route), max_distance_meters)
        query = select(Activity).where(
            Activity.id != activity.id,
            Activity.deleted_at.is_(None),
            self._box_filter(Activity, GeoColumn.ROUTE, box),
        )
        rows = session.exec(query).all()
        return self.geometry.find_near(rows, route, max_distance_meters, limit, key=self.route_of)


# Instance globale
geo_query_service = GeoQueryService()
