"""
Service d'activites : creation manuelle, lecture, pagination, suppression logique.
"""
import logging
from sqlmodel import Session, select, func
from uuid import UUID
from typing import Optional

from app.core.clock import utcnow
from app.domain.entities import Activity, ActivityCreate
from app.domain.entities.activity import ActivityType
from app.domain.errors import NotFoundError
from app.domain.services.geometry_service import geometry_service

logger = logging.getLogger(__name__)


class ActivityService:

    def create_activity(self, session: Session, user_id: UUID, data: ActivityCreate) -> Activity:
        """Enregistre une activite saisie manuellement (route optionnelle)."""
        if data.route:
            # Leve ValidationError si la route est inexploitable
            geometry_service.line_from_positions(data.route)

        duration = data.duration_seconds
        distance = data.distance_meters
        moving = data.moving_time_seconds if data.moving_time_seconds is not None else duration

        activity = Activity(
            **data.model_dump(exclude={"route", "moving_time_seconds"}),
            user_id=user_id,
            moving_time_seconds=moving,
            route=data.route,
            avg_speed_kmh=round((distance / 1000) / (moving / 3600), 2) if moving > 0 else None,
        )
        activity.apply_footprint(data.route)

        session.add(activity)
        session.commit()
        session.refresh(activity)
        logger.info(f"Activite manuelle {activity.id} creee (user={user_id})")
        return activity

    def get_activity(self, session: Session, activity_id: UUID) -> Activity:
        activity = session.get(Activity, activity_id)
        if activity is None or activity.deleted_at is not None:
            raise NotFoundError(f"Activity {activity_id} not found")
        return activity

    def get_activities_paginated(
        self,
        session: Session,
        user_id: UUID,
        page: int,
        per_page: int,
        activity_type: Optional[ActivityType] = None,
    ) -> dict:
        base_query = select(Activity).where(
            Activity.user_id == user_id,
            Activity.deleted_at.is_(None),
        )
        if activity_type:
            base_query = base_query.where(Activity.activity_type == activity_type)

        total = session.exec(select(func.count()).select_from(base_query.subquery())).one()
        offset = (page - 1) * per_page
        query = base_query.order_by(Activity.started_at.desc()).offset(offset).limit(per_page)
        activities = session.exec(query).all()
        total_pages = (total + per_page - 1) // per_page if total > 0 else 1

        return {
            "items": activities,
            "total": total,
            "page": page,
            "per_page": per_page,
            "pages": total_pages,
        }

    def soft_delete_activity(self, session: Session, user_id: UUID, activity_id: UUID) -> None:
        """Suppression logique ; seules les activites du proprietaire sont concernees."""
        activity = self.get_activity(session, activity_id)
        if activity.user_id != user_id:
            raise NotFoundError(f"Activity {activity_id} not found")

        activity.deleted_at = utcnow()
        activity.updated_at = activity.deleted_at
        session.add(activity)
        session.commit()
        logger.info(f"Activite {activity_id} supprimee (logique)")


activity_service = ActivityService()
