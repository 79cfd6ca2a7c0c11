"""
Service de Segments - Domain Layer
Catalogue des segments : creation (avec emprise) et lecture.
"""
import logging
from typing import List
from uuid import UUID

from sqlmodel import Session, select

from app.domain.entities import Segment, SegmentCreate
from app.domain.errors import NotFoundError
from app.domain.services.geometry_service import geometry_service

logger = logging.getLogger(__name__)


class SegmentService:
    """Creation et lecture des segments de reference"""

    def create_segment(self, session: Session, creator_id: UUID, data: SegmentCreate) -> Segment:
        """
        Cree un segment a partir d'une route deja validee par le schema.

        Args:
            session: Session de base de donnees
            creator_id: Athlete createur
            data: Champs du segment (route en positions [lng, lat(, alt)])

        Returns:
            Le segment persiste, emprise calculee
        """
        # Leve ValidationError si la geometrie est inexploitable
        geometry_service.line_from_positions(data.route)

        segment = Segment(**data.model_dump(), creator_id=creator_id)
        segment.apply_footprint(data.route)

        session.add(segment)
        session.commit()
        session.refresh(segment)
        logger.info(f"Segment {segment.id} '{segment.name}' cree par {creator_id}")
        return segment

    def get_segment(self, session: Session, segment_id: UUID) -> Segment:
        segment = session.get(Segment, segment_id)
        if segment is None:
            raise NotFoundError(f"Segment {segment_id} not found")
        return segment

    def list_user_segments(self, session: Session, creator_id: UUID) -> List[Segment]:
        return list(session.exec(
            select(Segment).where(Segment.creator_id == creator_id).order_by(Segment.created_at.desc())
        ).all())


# Instance globale
segment_service = SegmentService()
