"""
Configuration centralisée pour l'application PaceLine
Utilise pydantic-settings pour la gestion des variables d'environnement
"""
from pydantic_settings import BaseSettings
from pydantic import Field, model_validator
from typing import List


class Settings(BaseSettings):
    """Configuration de l'application"""

    # Database
    DATABASE_URL: str = Field(
        description="URL de la base de données (PostgreSQL en production)"
    )

    # JWT (verification uniquement, l'emission est externe)
    JWT_SECRET_KEY: str = Field(
        description="Clé secrète pour vérifier les JWT (obligatoire, pas de valeur par défaut)"
    )
    JWT_ALGORITHM: str = Field(default="HS256")

    # CORS
    ALLOWED_ORIGINS: List[str] = Field(
        default=[],
        description="Origines autorisées pour CORS (configuré automatiquement selon ENVIRONMENT si vide)"
    )
    FRONTEND_URL: str = Field(
        default="http://localhost:3000",
        description="URL du frontend (toujours ajoutee aux origines CORS)"
    )

    # Monitoring (Sentry)
    SENTRY_DSN: str = Field(
        default="",
        description="DSN Sentry pour le error tracking (vide = Sentry desactive)"
    )

    # Redis
    REDIS_URL: str = Field(
        default="redis://localhost:6379",
        description="URL de connexion Redis (sessions de tracking GPS)"
    )

    # Tracking GPS en direct
    TRACKING_SESSION_TTL_SECONDS: int = Field(
        default=7200,
        description="Duree de vie d'une session de tracking, rafraichie a chaque ecriture"
    )
    TRACKING_LOCK_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        description="Duree max de detention du verrou par session (expiration auto)"
    )
    TRACKING_LOCK_WAIT_SECONDS: float = Field(
        default=2.0,
        description="Attente max pour obtenir le verrou d'une session"
    )

    # Matching de segments
    SEGMENT_MIN_OVERLAP_PERCENTAGE: float = Field(default=90.0, ge=0, le=100)
    SEGMENT_MATCH_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        description="Timeout d'un passage de matching (au-dela : echec retryable)"
    )
    SEGMENT_MATCH_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    SEGMENT_MATCH_RETRY_DELAY_SECONDS: float = Field(default=30.0)

    # Application
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="development")
    LOG_LEVEL: str = Field(
        default="",
        description="Niveau de logging (auto-configuré selon ENVIRONMENT si vide)"
    )

    @model_validator(mode="after")
    def _configure_environment(self) -> "Settings":
        """Configure DEBUG et LOG_LEVEL selon ENVIRONMENT."""
        is_prod = self.ENVIRONMENT == "production"
        # En production, forcer DEBUG=False
        if is_prod:
            self.DEBUG = False
        if not self.LOG_LEVEL:
            self.LOG_LEVEL = "WARNING" if is_prod else "INFO"
        return self

    @model_validator(mode="after")
    def _set_default_origins(self) -> "Settings":
        """Définit les origines CORS par défaut selon ENVIRONMENT si non configurées."""
        if not self.ALLOWED_ORIGINS:
            if self.ENVIRONMENT == "production":
                self.ALLOWED_ORIGINS = ["https://paceline.app"]
            else:
                self.ALLOWED_ORIGINS = [
                    "http://localhost:3000",
                    "http://127.0.0.1:3000",
                ]
        frontend = self.FRONTEND_URL.rstrip("/")
        if frontend and frontend not in self.ALLOWED_ORIGINS:
            self.ALLOWED_ORIGINS.append(frontend)
        return self

    class Config:
        env_file = ".env"
        case_sensitive = True


def get_settings() -> Settings:
    """Récupère la configuration"""
    return Settings()
