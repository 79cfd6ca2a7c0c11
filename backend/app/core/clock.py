"""
Horodatage UTC naif, homogene avec les colonnes DateTime sans timezone.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Retourne l'instant courant en UTC, sans tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
