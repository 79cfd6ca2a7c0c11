"""
Routes de tracking GPS en direct : start, track, pause, resume, finish, status.
Routes = validation + delegation au service. Pas de logique metier ici.
"""
import logging
from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field
from sqlmodel import Session
from typing import Optional
from uuid import UUID

from app.core.database import get_session
from app.domain.entities import ActivityRead, ActivityType, ActivityVisibility
from app.domain.errors import NotFoundError, StateConflictError
from app.domain.services.tracking_session_store import tracking_session_store
from app.domain.services.segment_effort_worker import segment_effort_worker
from app.api.routers._shared import current_user_id, limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tracking", tags=["tracking"])


class StartTrackingRequest(BaseModel):
    type: ActivityType
    title: str = Field(min_length=1, max_length=255)


class TrackLocationRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    altitude: Optional[float] = None
    heart_rate: Optional[int] = Field(default=None, ge=30, le=220)


class FinishTrackingRequest(BaseModel):
    description: Optional[str] = Field(default=None, max_length=5000)
    visibility: Optional[ActivityVisibility] = None


def _require_owned_session(session_id: str, user_id: UUID) -> None:
    """404 si la session n'existe pas ou appartient a un autre athlete."""
    data = tracking_session_store.get_tracking_data(session_id)
    if not data or data.get("user_id") != str(user_id):
        raise NotFoundError("Tracking session not found")


@router.post("/start", status_code=status.HTTP_201_CREATED)
async def start_tracking(
    payload: StartTrackingRequest,
    user_id: UUID = Depends(current_user_id),
):
    """Demarre une session de tracking"""
    session_id = tracking_session_store.start(user_id, payload.type, payload.title)
    return {"message": "Activite demarree", "activity_id": session_id}


@router.post("/{session_id}/track")
@limiter.limit("120/minute")
async def track_location(
    request: Request,
    response: Response,
    session_id: str,
    payload: TrackLocationRequest,
    user_id: UUID = Depends(current_user_id),
):
    """Enregistre un point GPS"""
    _require_owned_session(session_id, user_id)
    if not tracking_session_store.track(
        session_id, payload.latitude, payload.longitude, payload.altitude, payload.heart_rate
    ):
        raise StateConflictError("Impossible d'enregistrer la position")
    return {"message": "Position enregistree"}


@router.post("/{session_id}/pause")
async def pause_tracking(session_id: str, user_id: UUID = Depends(current_user_id)):
    _require_owned_session(session_id, user_id)
    if not tracking_session_store.pause(session_id):
        raise StateConflictError("Impossible de mettre l'activite en pause")
    return {"message": "Activite en pause"}


@router.post("/{session_id}/resume")
async def resume_tracking(session_id: str, user_id: UUID = Depends(current_user_id)):
    _require_owned_session(session_id, user_id)
    if not tracking_session_store.resume(session_id):
        raise StateConflictError("Impossible de reprendre l'activite")
    return {"message": "Activite reprise"}


@router.post("/{session_id}/finish")
async def finish_tracking(
    session_id: str,
    payload: Optional[FinishTrackingRequest] = None,
    user_id: UUID = Depends(current_user_id),
    session: Session = Depends(get_session),
):
    """Termine la session, persiste l'activite et planifie le matching des segments"""
    payload = payload or FinishTrackingRequest()
    _require_owned_session(session_id, user_id)
    activity = tracking_session_store.finish(session, session_id, payload.description, payload.visibility)
    if activity is None:
        raise StateConflictError("Impossible de terminer l'activite : points GPS insuffisants")

    segment_effort_worker.enqueue(activity.id)
    return {"message": "Activite terminee", "data": ActivityRead.model_validate(activity)}


@router.get("/{session_id}/status")
async def tracking_status(session_id: str, user_id: UUID = Depends(current_user_id)):
    _require_owned_session(session_id, user_id)
    snapshot = tracking_session_store.status(session_id)
    if snapshot is None:
        raise NotFoundError("Tracking session not found")
    return {"data": snapshot}
