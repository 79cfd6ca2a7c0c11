"""
Emprise geographique commune aux entites portant une route.

Les routes sont stockees en JSON (positions GeoJSON [lng, lat(, alt)], SRID 4326).
Les colonnes flottantes indexees ci-dessous servent de pre-filtre rectangle
avant le calcul exact des distances.
"""
from sqlmodel import SQLModel, Field
from typing import List, Optional, Sequence


class RouteFootprint(SQLModel):
    """Bounding box + points de depart/arrivee d'une route."""
    min_lat: Optional[float] = Field(default=None, index=True)
    min_lng: Optional[float] = Field(default=None, index=True)
    max_lat: Optional[float] = Field(default=None, index=True)
    max_lng: Optional[float] = Field(default=None, index=True)

    start_lat: Optional[float] = Field(default=None, index=True)
    start_lng: Optional[float] = Field(default=None, index=True)
    end_lat: Optional[float] = Field(default=None, index=True)
    end_lng: Optional[float] = Field(default=None, index=True)

    def apply_footprint(self, positions: Optional[Sequence[Sequence[float]]]) -> None:
        """Recalcule l'emprise a partir des positions [lng, lat(, alt)]."""
        if not positions:
            for name in (
                "min_lat", "min_lng", "max_lat", "max_lng",
                "start_lat", "start_lng", "end_lat", "end_lng",
            ):
                setattr(self, name, None)
            return

        lngs: List[float] = [float(p[0]) for p in positions]
        lats: List[float] = [float(p[1]) for p in positions]
        self.min_lat, self.max_lat = min(lats), max(lats)
        self.min_lng, self.max_lng = min(lngs), max(lngs)
        self.start_lng, self.start_lat = lngs[0], lats[0]
        self.end_lng, self.end_lat = lngs[-1], lats[-1]
