"""
Entité Segment - Domain Layer
Parcours de reference cree par un athlete, sur lequel les efforts sont classes.
"""
from sqlmodel import SQLModel, Field, JSON, Column
from pydantic import field_validator
from typing import Optional, List
from uuid import UUID, uuid4
from datetime import datetime
from enum import Enum

from app.core.clock import utcnow
from app.domain.entities.footprint import RouteFootprint

MIN_SEGMENT_DISTANCE_M = 100
MAX_SEGMENT_DISTANCE_M = 100_000


class SegmentType(str, Enum):
    """Types de segments"""
    RUN = "run"
    RIDE = "ride"


class SegmentBase(RouteFootprint):
    """Modèle de base pour Segment"""
    name: str = Field(max_length=255)
    description: Optional[str] = None
    segment_type: SegmentType
    distance_meters: float

    # Terrain
    avg_grade_percent: float = 0.0
    max_grade_percent: float = 0.0
    elevation_gain: float = 0.0

    is_hazardous: bool = Field(default=False)
    city: Optional[str] = Field(default=None, index=True)
    state: Optional[str] = None


class Segment(SegmentBase, table=True):
    """Segment complet pour la base de données"""
    id: Optional[UUID] = Field(default_factory=uuid4, primary_key=True)
    creator_id: UUID = Field(foreign_key="user.id", index=True)

    route: List[List[float]] = Field(
        sa_column=Column(JSON, nullable=False),
        description="Positions [lng, lat, alt?] du segment (SRID 4326)"
    )

    # Compteurs maintenus par le matcher
    total_attempts: int = Field(default=0)
    unique_athletes: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SegmentCreate(SQLModel):
    """Schéma pour créer un segment"""
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    segment_type: SegmentType
    distance_meters: float = Field(ge=MIN_SEGMENT_DISTANCE_M, le=MAX_SEGMENT_DISTANCE_M)
    route: List[List[float]]
    avg_grade_percent: float = 0.0
    max_grade_percent: float = 0.0
    elevation_gain: float = 0.0
    is_hazardous: bool = False
    city: Optional[str] = None
    state: Optional[str] = None

    @field_validator("route")
    @classmethod
    def validate_route(cls, v: List[List[float]]) -> List[List[float]]:
        if len(v) < 2:
            raise ValueError("Segment route requires at least 2 points")
        for position in v:
            if len(position) < 2:
                raise ValueError("Each position must have longitude and latitude")
            lng, lat = position[0], position[1]
            if not -180 <= lng <= 180 or not -90 <= lat <= 90:
                raise ValueError("Position out of WGS-84 bounds")
        return v


class SegmentRead(SQLModel):
    """Schéma pour lire un segment (réponse API)"""
    id: UUID
    creator_id: UUID
    name: str
    description: Optional[str]
    segment_type: SegmentType
    distance_meters: float
    avg_grade_percent: float
    max_grade_percent: float
    elevation_gain: float
    total_attempts: int
    unique_athletes: int
    is_hazardous: bool
    city: Optional[str]
    state: Optional[str]
