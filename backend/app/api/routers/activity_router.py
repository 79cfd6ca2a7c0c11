"""
Routes des activites : saisie manuelle, lecture, suppression, splits, zones d'allure, statistiques.
Routes = validation + delegation au service. Pas de logique metier ici.
"""
import logging
from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from typing import List, Optional
from uuid import UUID

from app.core.database import get_session
from app.domain.entities import Activity, ActivityCreate, ActivityRead, ActivityType, ActivityVisibility
from app.domain.errors import NotFoundError
from app.domain.services.activity_service import activity_service
from app.domain.services.geo_query_service import geo_query_service
from app.domain.services.segment_effort_worker import segment_effort_worker
from app.domain.services.statistics_service import statistics_service
from app.api.routers._shared import current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["activities"])


def _visible_activity(session: Session, activity_id: UUID, user_id: UUID) -> Activity:
    """Activite lisible par l'utilisateur (les activites privees restent a leur proprietaire)."""
    activity = activity_service.get_activity(session, activity_id)
    if activity.visibility == ActivityVisibility.PRIVATE and activity.user_id != user_id:
        raise NotFoundError(f"Activity {activity_id} not found")
    return activity


@router.post("/activities", response_model=ActivityRead, status_code=status.HTTP_201_CREATED)
async def create_activity(
    payload: ActivityCreate,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Saisie manuelle ; le matching est planifie si l'activite est terminee avec une route"""
    activity = activity_service.create_activity(session, user_id, payload)
    if activity.is_matchable():
        segment_effort_worker.enqueue(activity.id)
    return activity


@router.get("/activities")
async def get_activities(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=50, ge=1, le=200),
    activity_type: Optional[ActivityType] = None,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Recupere les activites de l'utilisateur avec pagination"""
    result = activity_service.get_activities_paginated(session, user_id, page, per_page, activity_type)
    result["items"] = [ActivityRead.model_validate(a) for a in result["items"]]
    return result


@router.get("/activities/nearby", response_model=List[ActivityRead])
async def get_nearby_activities(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: float = Query(default=5000, gt=0, le=50000),
    limit: int = Query(default=20, ge=1, le=100),
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    activities = geo_query_service.find_activities_near_point(session, latitude, longitude, radius, limit)
    return [a for a in activities if a.visibility != ActivityVisibility.PRIVATE or a.user_id == user_id]


@router.get("/activities/{activity_id}", response_model=ActivityRead)
async def get_activity(
    activity_id: UUID,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    return _visible_activity(session, activity_id, user_id)


@router.delete("/activities/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity(
    activity_id: UUID,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    activity_service.soft_delete_activity(session, user_id, activity_id)


@router.get("/activities/{activity_id}/splits")
async def get_activity_splits(
    activity_id: UUID,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Splits au kilometre calcules depuis les points GPS bruts"""
    activity = _visible_activity(session, activity_id, user_id)
    return {"data": statistics_service.calculate_splits(activity)}


@router.get("/activities/{activity_id}/pace-zones")
async def get_activity_pace_zones(
    activity_id: UUID,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    activity = _visible_activity(session, activity_id, user_id)
    return {"data": statistics_service.calculate_pace_zones(activity)}


@router.get("/statistics/me")
async def get_my_statistics(
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Bilan global, par type d'activite et sur 7/30 jours"""
    return {"data": statistics_service.get_user_stats(session, user_id)}
