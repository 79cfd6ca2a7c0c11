"""
TrackingSessionStore : sessions GPS en direct stockees dans Redis.

Une session par cle :
  - tracking:session:{session_id}        → payload JSON (TTL rafraichi a chaque ecriture)
  - tracking:session:{session_id}:lock   → verrou redis-py serialisant les read-modify-write

Si la session expire avant finish(), elle est perdue : c'est le compromis
accepte du stockage ephemere.

Contrat des operations chaudes (track/pause/resume) : session absente ou
mauvais etat → False, jamais d'exception. Seules les pannes Redis remontent
(TransientInfraError).
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Union
from uuid import UUID, uuid4

import redis
from redis.exceptions import LockError
from sqlmodel import Session

from app.core.clock import utcnow
from app.core.redis import get_redis_client
from app.core.settings import get_settings
from app.domain.entities import Activity, ActivityType, ActivityVisibility
from app.domain.errors import TransientInfraError, ValidationError
from app.domain.services.geometry_service import GeometryService
from app.domain.value_objects import Coordinate, HeartRate

logger = logging.getLogger(__name__)

KEY_PREFIX = "tracking:session:"

STATUS_ACTIVE = "active"
STATUS_PAUSED = "paused"


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


class TrackingSessionStore:
    """Sessions de tracking ephemeres avec verrou par cle."""

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        clock: Callable[[], datetime] | None = None,
        ttl_seconds: int | None = None,
    ):
        settings = get_settings()
        self._redis: redis.Redis | None = redis_client
        self._clock = clock or utcnow
        self.ttl_seconds = ttl_seconds or settings.TRACKING_SESSION_TTL_SECONDS
        self.lock_timeout = settings.TRACKING_LOCK_TIMEOUT_SECONDS
        self.lock_wait = settings.TRACKING_LOCK_WAIT_SECONDS

    # ------------------------------------------------------------------
    # Helpers Redis
    # ------------------------------------------------------------------

    def _get_redis(self) -> redis.Redis:
        """Retourne le client Redis (lazy init)."""
        if self._redis is None:
            self._redis = get_redis_client()
        return self._redis

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{KEY_PREFIX}{session_id}"

    def _load(self, session_id: str) -> Optional[Dict[str, Any]]:
        raw = self._get_redis().get(self._key(session_id))
        if not raw:
            return None
        return json.loads(raw)

    def _save(self, session_id: str, data: Dict[str, Any]) -> None:
        self._get_redis().setex(self._key(session_id), self.ttl_seconds, json.dumps(data))

    @contextmanager
    def _locked(self, session_id: str) -> Iterator[None]:
        """Section exclusive sur une session (verrou Redis avec expiration)."""
        try:
            lock = self._get_redis().lock(
                f"{self._key(session_id)}:lock",
                timeout=self.lock_timeout,
                blocking_timeout=self.lock_wait,
            )
            acquired = lock.acquire()
        except redis.RedisError as exc:
            raise TransientInfraError(f"Redis indisponible (verrou {session_id}): {exc}") from exc
        if not acquired:
            raise TransientInfraError(f"Session {session_id} verrouillee, reessayer")

        try:
            yield
        except redis.RedisError as exc:
            raise TransientInfraError(f"Redis indisponible (session {session_id}): {exc}") from exc
        finally:
            try:
                lock.release()
            except LockError as exc:
                # Verrou expire pendant l'operation : la prochaine ecriture le reprendra
                logger.warning(f"Liberation du verrou {session_id} impossible: {exc}")

    # ------------------------------------------------------------------
    # Cycle de vie
    # ------------------------------------------------------------------

    def start(self, user_id: Union[UUID, str], activity_type: Union[ActivityType, str], title: str) -> str:
        """Cree une session active et retourne son identifiant."""
        try:
            activity_type = ActivityType(activity_type)
        except ValueError:
            raise ValidationError(f"Invalid activity type: {activity_type!r}")
        if not title or len(title) > 255:
            raise ValidationError("Title must be between 1 and 255 characters")

        session_id = f"act_{uuid4().hex}"
        data = {
            "user_id": str(user_id),
            "type": activity_type.value,
            "title": title,
            "status": STATUS_ACTIVE,
            "started_at": self._clock().isoformat(),
            "paused_at": None,
            "total_pause_time": 0,
            "points": [],
        }
        try:
            self._save(session_id, data)
        except redis.RedisError as exc:
            raise TransientInfraError(f"Redis indisponible (start): {exc}") from exc

        logger.info(f"Session de tracking {session_id} demarree (user={user_id}, type={activity_type.value})")
        return session_id

    def track(
        self,
        session_id: str,
        latitude: float,
        longitude: float,
        altitude: Optional[float] = None,
        heart_rate: Optional[int] = None,
    ) -> bool:
        """Ajoute un point GPS horodate par le serveur. False si session absente ou non active."""
        coord = Coordinate(latitude, longitude, altitude)
        if heart_rate is not None:
            HeartRate(heart_rate)

        with self._locked(session_id):
            data = self._load(session_id)
            if not data or data["status"] != STATUS_ACTIVE:
                return False

            data["points"].append({
                "lat": coord.latitude,
                "lng": coord.longitude,
                "alt": coord.altitude,
                "hr": heart_rate,
                "timestamp": self._clock().isoformat(),
            })
            self._save(session_id, data)
        return True

    def pause(self, session_id: str) -> bool:
        with self._locked(session_id):
            data = self._load(session_id)
            if not data or data["status"] != STATUS_ACTIVE:
                return False

            data["status"] = STATUS_PAUSED
            data["paused_at"] = self._clock().isoformat()
            self._save(session_id, data)
        return True

    def resume(self, session_id: str) -> bool:
        with self._locked(session_id):
            data = self._load(session_id)
            if not data or data["status"] != STATUS_PAUSED:
                return False

            paused_for = int((self._clock() - _parse_ts(data["paused_at"])).total_seconds())
            data["status"] = STATUS_ACTIVE
            data["total_pause_time"] += max(paused_for, 0)
            data["paused_at"] = None
            self._save(session_id, data)
        return True

    def finish(
        self,
        session: Session,
        session_id: str,
        description: Optional[str] = None,
        visibility: Optional[Union[ActivityVisibility, str]] = None,
    ) -> Optional[Activity]:
        """Persiste l'activite terminee et supprime la session.

        Retourne None si la session n'existe pas ou compte moins de 2 points
        (la session est alors conservee). Le matching des segments n'est pas
        declenche ici.
        """
        if visibility is not None:
            try:
                visibility = ActivityVisibility(visibility)
            except ValueError:
                raise ValidationError(f"Invalid visibility: {visibility!r}")

        with self._locked(session_id):
            data = self._load(session_id)
            if not data:
                return None

            points = data["points"]
            if len(points) < 2:
                return None

            now = self._clock()
            pause_seconds = data["total_pause_time"]
            if data["status"] == STATUS_PAUSED and data.get("paused_at"):
                # Pause en cours au moment du finish
                pause_seconds += max(int((now - _parse_ts(data["paused_at"])).total_seconds()), 0)

            stats = self.calculate_stats(points, _parse_ts(data["started_at"]), pause_seconds, now)
            route = self._route_from_points(points)

            activity = Activity(
                user_id=UUID(data["user_id"]),
                activity_type=ActivityType(data["type"]),
                title=data["title"],
                description=description,
                visibility=visibility or ActivityVisibility.PUBLIC,
                started_at=_parse_ts(data["started_at"]),
                completed_at=now,
                route=route,
                raw_data={"points": points},
                **stats,
            )
            activity.apply_footprint(route)

            session.add(activity)
            session.commit()
            session.refresh(activity)

            try:
                self._get_redis().delete(self._key(session_id))
            except redis.RedisError as exc:
                # L'activite est persistee ; la cle expirera via son TTL
                logger.error(f"Suppression de la session {session_id} impossible: {exc}")

        logger.info(
            f"Session {session_id} terminee -> activite {activity.id} "
            f"({stats['distance_meters']} m, {stats['duration_seconds']} s)"
        )
        return activity

    def get_tracking_data(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Payload brut de la session, None si absente ou expiree."""
        try:
            return self._load(session_id)
        except redis.RedisError as exc:
            raise TransientInfraError(f"Redis indisponible (lecture {session_id}): {exc}") from exc

    def status(self, session_id: str) -> Optional[Dict[str, Any]]:
        data = self.get_tracking_data(session_id)
        if not data:
            return None
        return {
            "session_id": session_id,
            "status": data["status"],
            "type": data["type"],
            "title": data["title"],
            "started_at": data["started_at"],
            "paused_at": data["paused_at"],
            "total_pause_time": data["total_pause_time"],
            "points_count": len(data["points"]),
        }

    # ------------------------------------------------------------------
    # Statistiques de fin de session
    # ------------------------------------------------------------------

    @staticmethod
    def _route_from_points(points: List[Dict[str, Any]]) -> List[List[float]]:
        """Positions [lng, lat(, alt)] ; l'altitude n'est gardee que si tous les points en ont une."""
        with_altitude = all(p.get("alt") is not None for p in points)
        if with_altitude:
            return [[p["lng"], p["lat"], p["alt"]] for p in points]
        return [[p["lng"], p["lat"]] for p in points]

    @staticmethod
    def calculate_stats(
        points: List[Dict[str, Any]],
        started_at: datetime,
        total_pause_seconds: int,
        now: datetime,
    ) -> Dict[str, Any]:
        """Distance, denivele, vitesses, durees et frequence cardiaque d'une serie de points."""
        total_distance = 0.0
        elevation_gain = 0.0
        elevation_loss = 0.0
        max_speed = 0.0

        for prev, curr in zip(points, points[1:]):
            distance = GeometryService.haversine_distance(prev["lat"], prev["lng"], curr["lat"], curr["lng"])
            total_distance += distance

            if prev.get("alt") is not None and curr.get("alt") is not None:
                diff = curr["alt"] - prev["alt"]
                if diff > 0:
                    elevation_gain += diff
                else:
                    elevation_loss += abs(diff)

            time_diff = (_parse_ts(curr["timestamp"]) - _parse_ts(prev["timestamp"])).total_seconds()
            if time_diff > 0:
                max_speed = max(max_speed, (distance / 1000) / (time_diff / 3600))

        heart_rates = [p["hr"] for p in points if p.get("hr") is not None]

        duration_seconds = max(int((now - started_at).total_seconds()), 0)
        moving_time_seconds = min(max(duration_seconds - total_pause_seconds, 0), duration_seconds)
        avg_speed = (
            (total_distance / 1000) / (moving_time_seconds / 3600) if moving_time_seconds > 0 else 0.0
        )

        return {
            "distance_meters": round(total_distance, 2),
            "duration_seconds": duration_seconds,
            "moving_time_seconds": moving_time_seconds,
            "elevation_gain": round(elevation_gain, 2),
            "elevation_loss": round(elevation_loss, 2),
            "avg_speed_kmh": round(avg_speed, 2),
            "max_speed_kmh": round(max_speed, 2),
            "avg_heart_rate": int(round(sum(heart_rates) / len(heart_rates))) if heart_rates else None,
            "max_heart_rate": max(heart_rates) if heart_rates else None,
        }


# Instance globale
tracking_session_store = TrackingSessionStore()
