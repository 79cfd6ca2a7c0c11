"""
Service de statistiques : splits au kilometre, zones d'allure, bilan utilisateur.
Consomme les points bruts produits par le tracking (raw_data["points"]).
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List
from uuid import UUID

from sqlmodel import Session, select

from app.core.clock import utcnow
from app.domain.entities import Activity
from app.domain.services.geometry_service import GeometryService
from app.domain.value_objects import Distance, Duration, Pace

logger = logging.getLogger(__name__)

SPLIT_DISTANCE_M = 1000
MIN_TRAILING_SPLIT_M = 100

# (nom, borne rapide, borne lente) en multiple de l'allure moyenne
PACE_ZONES = [
    ("recovery", 1.3, 1.5, "Recuperation"),
    ("easy", 1.1, 1.3, "Endurance fondamentale"),
    ("moderate", 0.95, 1.1, "Allure moderee"),
    ("tempo", 0.85, 0.95, "Tempo"),
    ("threshold", 0.75, 0.85, "Seuil"),
    ("interval", 0.65, 0.75, "Fractionne"),
]


def _pace_label(distance_meters: float, duration_seconds: int) -> str:
    if distance_meters <= 0 or duration_seconds <= 0:
        return "0:00"
    pace = Pace.from_distance_and_duration(Distance(distance_meters), Duration(duration_seconds))
    return pace.format()


def _split(number: int, distance_meters: float, start: Dict[str, Any], end: Dict[str, Any]) -> Dict[str, Any]:
    duration = int(
        (datetime.fromisoformat(end["timestamp"]) - datetime.fromisoformat(start["timestamp"])).total_seconds()
    )
    return {
        "split": number,
        "distance_meters": round(distance_meters, 2),
        "duration_seconds": duration,
        "pace_min_km": _pace_label(distance_meters, duration),
        "speed_kmh": round((distance_meters / 1000) / (duration / 3600), 2) if duration > 0 else 0.0,
    }


class StatisticsService:

    def calculate_splits(self, activity: Activity) -> List[Dict[str, Any]]:
        """Decoupe la trace brute en splits de 1 km ; le reliquat final est garde s'il depasse 100 m."""
        points = (activity.raw_data or {}).get("points") or []
        if len(points) < 2:
            return []

        splits = []
        current_distance = 0.0
        split_start = 0

        for i in range(1, len(points)):
            prev, curr = points[i - 1], points[i]
            current_distance += GeometryService.haversine_distance(
                prev["lat"], prev["lng"], curr["lat"], curr["lng"]
            )

            if current_distance >= SPLIT_DISTANCE_M:
                splits.append(_split(len(splits) + 1, SPLIT_DISTANCE_M, points[split_start], curr))
                current_distance -= SPLIT_DISTANCE_M
                split_start = i

        if current_distance > MIN_TRAILING_SPLIT_M and split_start < len(points) - 1:
            splits.append(_split(len(splits) + 1, current_distance, points[split_start], points[-1]))

        return splits

    def calculate_pace_zones(self, activity: Activity) -> Dict[str, Dict[str, Any]]:
        """Six zones d'allure (min/km) relatives a l'allure moyenne de l'activite."""
        if not activity.avg_speed_kmh or activity.avg_speed_kmh <= 0:
            return {}

        avg_pace_min_km = 60 / activity.avg_speed_kmh
        zones = {}
        for name, fast, slow, description in PACE_ZONES:
            min_pace = avg_pace_min_km * fast
            max_pace = avg_pace_min_km * slow
            zones[name] = {
                "min_pace": round(min_pace, 2),
                "max_pace": round(max_pace, 2),
                "min_pace_formatted": Pace.from_seconds_per_km(round(min_pace * 60)).format(),
                "max_pace_formatted": Pace.from_seconds_per_km(round(max_pace * 60)).format(),
                "description": description,
            }
        return zones

    def get_user_stats(self, session: Session, user_id: UUID) -> Dict[str, Any]:
        """Totaux, repartition par type et fenetres glissantes 7/30 jours."""
        activities = session.exec(
            select(Activity).where(
                Activity.user_id == user_id,
                Activity.completed_at.is_not(None),
                Activity.deleted_at.is_(None),
            )
        ).all()

        now = utcnow()
        last_7 = [a for a in activities if a.completed_at >= now - timedelta(days=7)]
        last_30 = [a for a in activities if a.completed_at >= now - timedelta(days=30)]

        total_distance = sum(a.distance_meters for a in activities)
        total_duration = sum(a.duration_seconds for a in activities)
        count = len(activities)

        by_type: Dict[str, List[Activity]] = defaultdict(list)
        for activity in activities:
            by_type[activity.activity_type.value].append(activity)

        return {
            "total_activities": count,
            "total_distance_meters": round(total_distance, 2),
            "total_distance_km": round(total_distance / 1000, 2),
            "total_duration_seconds": total_duration,
            "total_duration_hours": round(total_duration / 3600, 2),
            "total_elevation_gain": round(sum(a.elevation_gain for a in activities), 2),
            "avg_distance_per_activity": round(total_distance / count, 2) if count else 0,
            "avg_duration_per_activity": round(total_duration / count, 2) if count else 0,
            "by_type": {
                activity_type: {
                    "count": len(items),
                    "total_distance": round(sum(a.distance_meters for a in items), 2),
                    "total_duration": sum(a.duration_seconds for a in items),
                    "avg_distance": round(sum(a.distance_meters for a in items) / len(items), 2),
                }
                for activity_type, items in by_type.items()
            },
            "last_7_days": self._window(last_7),
            "last_30_days": self._window(last_30),
        }

    @staticmethod
    def _window(activities: List[Activity]) -> Dict[str, Any]:
        return {
            "count": len(activities),
            "distance": round(sum(a.distance_meters for a in activities) / 1000, 2),
            "duration": sum(a.duration_seconds for a in activities),
        }


# Instance globale
statistics_service = StatisticsService()
