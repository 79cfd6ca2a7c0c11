"""
Service de matching des segments - Domain Layer

Transforme une activite terminee en efforts classes sur les segments qu'elle
recouvre, puis recalcule PR / KOM / rang global sur l'ensemble du segment.

Le recalcul complet (plutot qu'incremental) est serialise par segment :
verrou en memoire + SELECT ... FOR UPDATE sur la ligne du segment.
Egalite de duree : le plus ancien achieved_at passe devant, puis created_at.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional
from uuid import UUID

from shapely.errors import GEOSException
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from app.core.clock import utcnow
from app.core.settings import get_settings
from app.domain.entities import Activity, Gender, Segment, SegmentEffort, User
from app.domain.errors import ValidationError
from app.domain.services.geo_query_service import GeoQueryService, geo_query_service

logger = logging.getLogger(__name__)

# Verrous repartis par segment (taille fixe)
SEGMENT_LOCK_STRIPES = 64
_segment_locks = [threading.Lock() for _ in range(SEGMENT_LOCK_STRIPES)]


def segment_lock_for(segment_id: UUID) -> threading.Lock:
    return _segment_locks[segment_id.int % SEGMENT_LOCK_STRIPES]


def _ranking_order():
    return (
        SegmentEffort.duration_seconds.asc(),
        SegmentEffort.achieved_at.asc(),
        SegmentEffort.created_at.asc(),
        SegmentEffort.id.asc(),
    )


class SegmentMatcherService:

    def __init__(self, geo_query: Optional[GeoQueryService] = None):
        self.geo_query = geo_query or geo_query_service

    @contextmanager
    def _segment_lock(self, segment_id: UUID) -> Iterator[None]:
        with segment_lock_for(segment_id):
            yield

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def process_activity(
        self,
        session: Session,
        activity: Activity,
        min_overlap_percentage: Optional[float] = None,
    ) -> List[SegmentEffort]:
        """Detecte les segments recouverts par l'activite et cree les efforts.

        Retourne la liste des efforts crees (ou deja existants pour cette
        activite). Aucun match n'est un resultat normal : liste vide.
        """
        if min_overlap_percentage is None:
            min_overlap_percentage = get_settings().SEGMENT_MIN_OVERLAP_PERCENTAGE

        if not activity.route or activity.completed_at is None:
            return []

        activity_id = activity.id
        try:
            matches = self.geo_query.find_intersecting_segments(session, activity, min_overlap_percentage)
        except (ValidationError, GEOSException) as e:
            logger.warning(f"Route invalide pour l'activite {activity_id}, matching ignore: {e}")
            return []

        segment_ids = [match.segment.id for match in matches]
        overlaps = [match.overlap_percentage for match in matches]
        efforts: List[SegmentEffort] = []

        for segment_id, overlap in zip(segment_ids, overlaps):
            try:
                effort = self._record_effort(session, activity, segment_id, overlap)
            except (ValidationError, ValueError, IntegrityError) as e:
                session.rollback()
                logger.warning(f"Segment {segment_id} ignore pour l'activite {activity_id}: {e}")
                continue

            if effort is not None:
                efforts.append(effort)

        logger.info(f"Activite {activity_id}: {len(efforts)} effort(s) sur {len(matches)} segment(s) recouvert(s)")
        return efforts

    def estimate_segment_duration(
        self, activity: Activity, segment: Segment, overlap_percentage: float
    ) -> Optional[int]:
        """Temps estime sur le segment, au prorata de la distance couverte (minimum 1 s)."""
        if not activity.duration_seconds or activity.duration_seconds <= 0:
            return None
        if not activity.distance_meters or activity.distance_meters <= 0:
            return None

        segment_ratio = (segment.distance_meters * (overlap_percentage / 100)) / activity.distance_meters
        return max(1, int(round(activity.duration_seconds * segment_ratio)))

    def _record_effort(
        self, session: Session, activity: Activity, segment_id: UUID, overlap_percentage: float
    ) -> Optional[SegmentEffort]:
        with self._segment_lock(segment_id):
            segment = session.exec(
                select(Segment)
                .where(Segment.id == segment_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).one()

            existing = session.exec(
                select(SegmentEffort).where(
                    SegmentEffort.segment_id == segment_id,
                    SegmentEffort.activity_id == activity.id,
                )
            ).first()
            if existing:
                # Activite deja traitee : pas de doublon, compteurs inchanges
                session.commit()
                session.refresh(existing)
                logger.info(f"Effort deja present pour activite {activity.id} / segment {segment_id}")
                return existing

            duration = self.estimate_segment_duration(activity, segment, overlap_percentage)
            if duration is None:
                session.rollback()
                return None

            effort = SegmentEffort(
                segment_id=segment_id,
                activity_id=activity.id,
                user_id=activity.user_id,
                duration_seconds=duration,
                avg_speed_kmh=(segment.distance_meters / 1000) / (duration / 3600),
                avg_heart_rate=activity.avg_heart_rate,
                achieved_at=activity.completed_at,
                is_pr=False,
                is_kom=False,
            )
            session.add(effort)
            session.flush()

            self._update_personal_record(session, effort)
            self._update_rankings_and_kom(session, segment_id)

            # Compteurs recomptes sous verrou, jamais incrementes
            segment.total_attempts = session.exec(
                select(func.count(SegmentEffort.id)).where(SegmentEffort.segment_id == segment_id)
            ).one()
            segment.unique_athletes = session.exec(
                select(func.count(func.distinct(SegmentEffort.user_id))).where(
                    SegmentEffort.segment_id == segment_id
                )
            ).one()
            segment.updated_at = utcnow()
            session.add(segment)

            session.commit()
            session.refresh(effort)

        logger.info(
            f"Effort {effort.id} cree: segment={segment_id} user={effort.user_id} "
            f"duree={effort.duration_seconds}s pr={effort.is_pr} kom={effort.is_kom}"
        )
        return effort

    def _update_personal_record(self, session: Session, effort: SegmentEffort) -> None:
        """Le nouvel effort devient PR s'il est strictement plus rapide que le meilleur precedent."""
        others = session.exec(
            select(SegmentEffort).where(
                SegmentEffort.segment_id == effort.segment_id,
                SegmentEffort.user_id == effort.user_id,
                SegmentEffort.id != effort.id,
            ).order_by(*_ranking_order())
        ).all()

        previous_best = others[0] if others else None
        if previous_best is None or effort.duration_seconds < previous_best.duration_seconds:
            for other in others:
                if other.is_pr:
                    other.is_pr = False
                    other.updated_at = utcnow()
                    session.add(other)
            effort.is_pr = True
            session.add(effort)

    def _update_rankings_and_kom(self, session: Session, segment_id: UUID) -> None:
        """Rang 1..N sur le meilleur effort de chaque athlete ; KOM sur l'effort le plus rapide."""
        ordered = session.exec(
            select(SegmentEffort)
            .where(SegmentEffort.segment_id == segment_id)
            .order_by(*_ranking_order())
        ).all()

        seen_users = set()
        for index, effort in enumerate(ordered):
            if effort.user_id in seen_users:
                rank = None
            else:
                seen_users.add(effort.user_id)
                rank = len(seen_users)
            is_kom = index == 0

            if effort.rank_overall != rank or effort.is_kom != is_kom:
                effort.rank_overall = rank
                effort.is_kom = is_kom
                effort.updated_at = utcnow()
                session.add(effort)

    # ------------------------------------------------------------------
    # Lecture des classements
    # ------------------------------------------------------------------

    def get_leaderboard(self, session: Session, segment: Segment, limit: int = 10) -> List[SegmentEffort]:
        """Meilleur effort de chaque athlete, du plus rapide au plus lent."""
        ordered = session.exec(
            select(SegmentEffort)
            .where(SegmentEffort.segment_id == segment.id)
            .order_by(*_ranking_order())
        ).all()

        leaderboard = []
        seen_users = set()
        for effort in ordered:
            if effort.user_id in seen_users:
                continue
            seen_users.add(effort.user_id)
            leaderboard.append(effort)
            if len(leaderboard) >= limit:
                break
        return leaderboard

    def get_user_personal_records(self, session: Session, user_id: UUID, limit: int = 20) -> List[SegmentEffort]:
        return list(session.exec(
            select(SegmentEffort)
            .where(SegmentEffort.user_id == user_id, SegmentEffort.is_pr == True)  # noqa: E712
            .order_by(SegmentEffort.achieved_at.desc())
            .limit(limit)
        ).all())

    def get_user_kom_qom_achievements(self, session: Session, user_id: UUID) -> List[SegmentEffort]:
        return list(session.exec(
            select(SegmentEffort)
            .where(SegmentEffort.user_id == user_id, SegmentEffort.is_kom == True)  # noqa: E712
            .order_by(SegmentEffort.achieved_at.desc())
        ).all())

    def get_kom_holder(self, session: Session, segment: Segment, gender: Gender) -> Optional[SegmentEffort]:
        """Effort KOM du segment si son auteur a le genre demande (KOM = male, QOM = female)."""
        return session.exec(
            select(SegmentEffort)
            .join(User, User.id == SegmentEffort.user_id)
            .where(
                SegmentEffort.segment_id == segment.id,
                SegmentEffort.is_kom == True,  # noqa: E712
                User.gender == gender,
            )
            .order_by(SegmentEffort.duration_seconds)
        ).first()

    def count_user_attempts(self, session: Session, user_id: UUID, segment_id: UUID) -> int:
        return session.exec(
            select(func.count(SegmentEffort.id)).where(
                SegmentEffort.user_id == user_id,
                SegmentEffort.segment_id == segment_id,
            )
        ).one()


# Instance globale
segment_matcher_service = SegmentMatcherService()
