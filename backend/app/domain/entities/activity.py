"""
Entité Activity - Domain Layer
Représente une séance terminée (saisie manuelle ou issue d'une session de tracking GPS)
"""
from sqlmodel import SQLModel, Field, JSON, Column
from pydantic import model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID, uuid4
from enum import Enum

from app.core.clock import utcnow
from app.domain.entities.footprint import RouteFootprint


class ActivityType(str, Enum):
    """Types d'activités supportés"""
    RUN = "run"
    RIDE = "ride"
    WALK = "walk"
    SWIM = "swim"
    GYM = "gym"
    OTHER = "other"


class ActivityVisibility(str, Enum):
    """Visibilité d'une activité dans le feed"""
    PUBLIC = "public"
    FOLLOWERS = "followers"
    PRIVATE = "private"


class ActivityBase(RouteFootprint):
    """Modèle de base pour Activity"""
    activity_type: ActivityType
    title: str = Field(max_length=255)
    description: Optional[str] = None
    visibility: ActivityVisibility = Field(default=ActivityVisibility.PUBLIC)

    distance_meters: float = Field(default=0.0, ge=0)
    duration_seconds: int = Field(default=0, ge=0)
    moving_time_seconds: int = Field(default=0, ge=0)
    elevation_gain: float = 0.0
    elevation_loss: float = 0.0
    avg_speed_kmh: Optional[float] = None
    max_speed_kmh: Optional[float] = None
    avg_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None

    started_at: datetime
    completed_at: Optional[datetime] = Field(default=None, index=True)


class Activity(ActivityBase, table=True):
    """Entité Activity complète pour la base de données"""
    id: Optional[UUID] = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="user.id", index=True)

    # Trace GPS : positions GeoJSON [lng, lat(, alt)]
    route: Optional[List[List[float]]] = Field(
        sa_column=Column(JSON),
        default=None,
        description="Positions [lng, lat, alt?] de la trace (SRID 4326)"
    )
    # Points bruts de la session de tracking
    raw_data: Optional[Dict[str, Any]] = Field(
        sa_column=Column(JSON),
        default=None,
        description="Payload brut {'points': [...]} issu du tracking"
    )

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = Field(default=None, index=True)

    def is_matchable(self) -> bool:
        """Le matching exige une route, une date de fin et une duree > 0."""
        return bool(self.route) and self.completed_at is not None and self.duration_seconds > 0


class ActivityRead(SQLModel):
    """Schéma pour lire une activité (réponse API)"""
    id: UUID
    user_id: UUID
    activity_type: ActivityType
    title: str
    description: Optional[str]
    visibility: ActivityVisibility
    distance_meters: float
    duration_seconds: int
    moving_time_seconds: int
    elevation_gain: float
    elevation_loss: float
    avg_speed_kmh: Optional[float]
    max_speed_kmh: Optional[float]
    avg_heart_rate: Optional[int]
    max_heart_rate: Optional[int]
    started_at: datetime
    completed_at: Optional[datetime]
    created_at: datetime


class ActivityCreate(SQLModel):
    """Schéma pour créer une activité saisie manuellement"""
    activity_type: ActivityType
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    visibility: ActivityVisibility = ActivityVisibility.PUBLIC
    distance_meters: float = Field(default=0.0, ge=0)
    duration_seconds: int = Field(default=0, ge=0)
    moving_time_seconds: Optional[int] = Field(default=None, ge=0)
    elevation_gain: float = 0.0
    elevation_loss: float = 0.0
    avg_heart_rate: Optional[int] = Field(default=None, ge=30, le=220)
    max_heart_rate: Optional[int] = Field(default=None, ge=30, le=220)
    started_at: datetime
    completed_at: Optional[datetime] = None
    route: Optional[List[List[float]]] = None

    @model_validator(mode="after")
    def check_times(self) -> "ActivityCreate":
        if self.moving_time_seconds is None:
            self.moving_time_seconds = self.duration_seconds
        if self.moving_time_seconds > self.duration_seconds:
            raise ValueError("moving_time_seconds cannot exceed duration_seconds")
        if self.route is not None:
            if len(self.route) < 2:
                raise ValueError("Route requires at least 2 points")
            for position in self.route:
                if len(position) < 2 or not -180 <= position[0] <= 180 or not -90 <= position[1] <= 90:
                    raise ValueError("Position out of WGS-84 bounds")
        return self
