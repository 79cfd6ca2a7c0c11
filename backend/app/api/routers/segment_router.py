"""
Routes des segments : catalogue, recherche a proximite, classements, records et KOM/QOM.
Routes = validation + delegation au service. Pas de logique metier ici.
"""
import logging
from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from typing import Any, Dict, List, Optional
from uuid import UUID

from app.core.database import get_session
from app.domain.entities import Gender, SegmentCreate, SegmentRead, User
from app.domain.entities.segment_effort import SegmentEffort
from app.domain.errors import NotFoundError
from app.domain.services.geo_query_service import geo_query_service
from app.domain.services.segment_matcher_service import segment_matcher_service
from app.domain.services.segment_service import segment_service
from app.domain.value_objects import Duration, Pace, Speed
from app.api.routers._shared import current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["segments"])


def _user_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": str(user.id), "name": user.name, "username": user.username, "avatar": user.avatar}


def _effort_summary(effort: SegmentEffort) -> Dict[str, Any]:
    speed = effort.avg_speed_kmh or 0.0
    return {
        "effort_id": str(effort.id),
        "elapsed_time_seconds": effort.duration_seconds,
        "elapsed_time_formatted": Duration(effort.duration_seconds).format(),
        "average_speed_kmh": round(speed, 2),
        "average_pace_min_km": Pace.from_speed(Speed(speed)).format() if speed > 0 else None,
        "achieved_at": effort.achieved_at.isoformat() if effort.achieved_at else None,
        "is_kom": effort.is_kom,
        "is_pr": effort.is_pr,
    }


@router.post("/segments", response_model=SegmentRead, status_code=status.HTTP_201_CREATED)
async def create_segment(
    payload: SegmentCreate,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Cree un segment de reference"""
    return segment_service.create_segment(session, user_id, payload)


@router.get("/segments/nearby", response_model=List[SegmentRead])
async def get_nearby_segments(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: float = Query(default=5000, gt=0, le=50000),
    limit: int = Query(default=20, ge=1, le=100),
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Segments a proximite d'un point, du plus proche au plus lointain"""
    return geo_query_service.find_segments_near_point(session, latitude, longitude, radius, limit)


@router.get("/segments/{segment_id}", response_model=SegmentRead)
async def get_segment(
    segment_id: UUID,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    return segment_service.get_segment(session, segment_id)


@router.get("/segments/{segment_id}/leaderboard")
async def get_leaderboard(
    segment_id: UUID,
    limit: int = Query(default=20, ge=1, le=100),
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Meilleur effort de chaque athlete, du plus rapide au plus lent"""
    segment = segment_service.get_segment(session, segment_id)
    leaderboard = segment_matcher_service.get_leaderboard(session, segment, limit)
    return {
        "data": [
            {"rank": index + 1, "user": _user_summary(effort.user), **_effort_summary(effort)}
            for index, effort in enumerate(leaderboard)
        ],
        "segment": {
            "id": str(segment.id),
            "name": segment.name,
            "distance_km": round(segment.distance_meters / 1000, 2),
            "total_efforts": segment.total_attempts,
            "unique_athletes": segment.unique_athletes,
        },
    }


def _crown_response(session: Session, segment_id: UUID, gender: Gender, label: str) -> Dict[str, Any]:
    segment = segment_service.get_segment(session, segment_id)
    effort = segment_matcher_service.get_kom_holder(session, segment, gender)
    segment_info = {"id": str(segment.id), "name": segment.name}
    if effort is None:
        return {"data": None, "message": f"No {label} recorded for this segment yet", "segment": segment_info}
    return {"data": {"user": _user_summary(effort.user), **_effort_summary(effort)}, "segment": segment_info}


@router.get("/segments/{segment_id}/kom")
async def get_kom(
    segment_id: UUID,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Detenteur actuel du KOM (athlete masculin le plus rapide)"""
    return _crown_response(session, segment_id, Gender.MALE, "KOM")


@router.get("/segments/{segment_id}/qom")
async def get_qom(
    segment_id: UUID,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Detentrice actuelle du QOM (athlete feminine la plus rapide)"""
    return _crown_response(session, segment_id, Gender.FEMALE, "QOM")


def _records_response(session: Session, user_id: UUID) -> Dict[str, Any]:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")

    records = segment_matcher_service.get_user_personal_records(session, user_id)
    return {
        "data": [
            {
                "segment": {
                    "id": str(effort.segment.id),
                    "name": effort.segment.name,
                    "distance_km": round(effort.segment.distance_meters / 1000, 2),
                    "type": effort.segment.segment_type.value,
                },
                "personal_record": _effort_summary(effort),
                "rank": effort.rank_overall,
                "total_attempts": segment_matcher_service.count_user_attempts(
                    session, user_id, effort.segment_id
                ),
            }
            for effort in records
        ],
        "user": _user_summary(user),
    }


@router.get("/me/segments", response_model=List[SegmentRead])
async def get_my_segments(
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Segments crees par l'utilisateur, les plus recents d'abord"""
    return segment_service.list_user_segments(session, user_id)


@router.get("/me/records")
async def get_my_records(
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    return _records_response(session, user_id)


@router.get("/users/{athlete_id}/records")
async def get_user_records(
    athlete_id: UUID,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    return _records_response(session, athlete_id)


@router.get("/users/{athlete_id}/achievements")
async def get_user_achievements(
    athlete_id: UUID,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Segments dont l'athlete detient le meilleur temps global"""
    achievements = segment_matcher_service.get_user_kom_qom_achievements(session, athlete_id)
    return {
        "data": [
            {
                "segment": {"id": str(effort.segment_id), "name": effort.segment.name},
                **_effort_summary(effort),
            }
            for effort in achievements
        ]
    }
