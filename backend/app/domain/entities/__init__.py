"""
Initialisation des entités du domaine
Résout les imports circulaires entre les modèles
"""

# Import des modèles dans l'ordre correct pour éviter les imports circulaires
from .user import User, UserRead, Gender
from .activity import Activity, ActivityCreate, ActivityRead, ActivityType, ActivityVisibility
from .segment import Segment, SegmentCreate, SegmentRead, SegmentType
from .segment_effort import SegmentEffort, SegmentEffortRead

__all__ = [
    "User", "UserRead", "Gender",
    "Activity", "ActivityCreate", "ActivityRead", "ActivityType", "ActivityVisibility",
    "Segment", "SegmentCreate", "SegmentRead", "SegmentType",
    "SegmentEffort", "SegmentEffortRead",
]
