"""
Erreurs du domaine PaceLine.

Les routes traduisent ces erreurs en codes HTTP (voir app.main) :
  - ValidationError     -> 422 (jamais retente)
  - NotFoundError       -> 404
  - StateConflictError  -> 400 (contrat historique des endpoints de tracking)
  - TransientInfraError -> 503 (retentable par le worker de matching)
"""


class DomainError(Exception):
    """Erreur de base du domaine."""


class ValidationError(DomainError, ValueError):
    """Entree invalide (coordonnees hors bornes, route vide, type inconnu...)."""


class NotFoundError(DomainError):
    """Ressource referencee introuvable (session, segment, activite)."""


class TransientInfraError(DomainError):
    """Panne temporaire (Redis, base, moteur geometrique, timeout)."""


class StateConflictError(DomainError):
    """Operation appelee dans un etat incompatible (ex: pause d'une session deja en pause)."""


__all__ = [
    "DomainError",
    "ValidationError",
    "NotFoundError",
    "TransientInfraError",
    "StateConflictError",
]
