"""
Entité SegmentEffort - Domain Layer
Tentative d'une activite sur un segment, avec son classement.
"""
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Index, UniqueConstraint
from typing import Optional, TYPE_CHECKING
from uuid import UUID, uuid4
from datetime import datetime

from app.core.clock import utcnow

if TYPE_CHECKING:
    from .user import User
    from .segment import Segment
    from .activity import Activity


class SegmentEffort(SQLModel, table=True):
    """Effort d'un athlete sur un segment.

    Seuls is_pr, is_kom et rank_overall sont modifies apres creation ;
    ils sont recalcules a chaque nouvel effort sur le meme segment.
    """
    __tablename__ = "segment_effort"
    __table_args__ = (
        UniqueConstraint("segment_id", "activity_id", name="uq_segment_effort_segment_activity"),
        Index("ix_segment_effort_segment_duration", "segment_id", "duration_seconds"),
        Index("ix_segment_effort_user_segment_achieved", "user_id", "segment_id", "achieved_at"),
    )

    id: Optional[UUID] = Field(default_factory=uuid4, primary_key=True)
    segment_id: UUID = Field(foreign_key="segment.id", index=True)
    activity_id: UUID = Field(foreign_key="activity.id", index=True)
    user_id: UUID = Field(foreign_key="user.id", index=True)

    duration_seconds: int
    avg_speed_kmh: Optional[float] = None
    avg_heart_rate: Optional[int] = None

    # Classements
    rank_overall: Optional[int] = None
    rank_age_group: Optional[int] = None
    is_kom: bool = Field(default=False, index=True)
    is_pr: bool = Field(default=False, index=True)

    achieved_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Relations (lecture seule, pour l'affichage des classements)
    user: Optional["User"] = Relationship()
    segment: Optional["Segment"] = Relationship()
    activity: Optional["Activity"] = Relationship()


class SegmentEffortRead(SQLModel):
    """Schéma pour lire un effort (réponse API)"""
    id: UUID
    segment_id: UUID
    activity_id: UUID
    user_id: UUID
    duration_seconds: int
    avg_speed_kmh: Optional[float]
    avg_heart_rate: Optional[int]
    rank_overall: Optional[int]
    is_kom: bool
    is_pr: bool
    achieved_at: datetime
