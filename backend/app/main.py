"""
Application FastAPI principale pour PaceLine
Point d'entrée de l'API backend (tracking GPS, segments, classements)
"""
import logging
from logging.handlers import RotatingFileHandler
import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.requests import Request
from slowapi.errors import RateLimitExceeded
import sentry_sdk

from app.core.settings import get_settings
from app.api.routers import router, limiter
from app.core.database import create_db_and_tables
from app.core.redis import check_redis_health
from app.domain.errors import NotFoundError, StateConflictError, TransientInfraError, ValidationError
from app.domain.services.segment_effort_worker import segment_effort_worker

settings = get_settings()

API_VERSION = "1.0.0"

# Initialiser Sentry (uniquement si SENTRY_DSN est configure)
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=0.2 if settings.ENVIRONMENT == "production" else 1.0,
        send_default_pii=False,
    )

# Configuration du logging conditionnée par ENVIRONMENT
_log_level = getattr(logging, settings.LOG_LEVEL, logging.INFO)

_handler = logging.StreamHandler(sys.stdout)

if settings.ENVIRONMENT == "production":
    from pythonjsonlogger import jsonlogger
    _handler.setFormatter(jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
    ))
else:
    _handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))

_handlers: list[logging.Handler] = [_handler]
if settings.ENVIRONMENT not in ("production", "test"):
    _handlers.append(RotatingFileHandler(
        'app.log', maxBytes=5_000_000, backupCount=3,
    ))

logging.basicConfig(
    level=_log_level,
    handlers=_handlers,
)

# En production, réduire le bruit des modules tiers
if settings.ENVIRONMENT == "production":
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gestionnaire de cycle de vie de l'application"""
    # Startup
    logger.info(f"Démarrage de PaceLine API v{API_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    create_db_and_tables()
    logger.info("Base de données initialisée")

    if check_redis_health():
        logger.info("Redis connecté")
    else:
        logger.warning("Redis non disponible, le tracking GPS en direct sera indisponible")

    segment_effort_worker.start_worker()

    yield

    # Shutdown
    segment_effort_worker.stop_worker()


app = FastAPI(
    title="PaceLine API",
    description="API de tracking GPS, segments et classements",
    version=API_VERSION,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
    lifespan=lifespan
)

# Rate limiting
app.state.limiter = limiter


async def _custom_rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Retourne un 429 propre avec headers Retry-After et X-RateLimit-*."""
    response = JSONResponse(
        status_code=429,
        content={
            "detail": "Trop de requetes",
            "message": f"Rate limit exceeded: {exc.detail}",
        },
    )
    response = request.app.state.limiter._inject_headers(
        response, request.state.view_rate_limit
    )
    return response


app.add_exception_handler(RateLimitExceeded, _custom_rate_limit_handler)


# Erreurs du domaine -> codes HTTP
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StateConflictError)
async def state_conflict_handler(request: Request, exc: StateConflictError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(TransientInfraError)
async def transient_error_handler(request: Request, exc: TransientInfraError):
    logger.warning(f"Panne transitoire sur {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporairement indisponible, reessayer"},
        headers={"Retry-After": "1"},
    )


# Configuration CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Inclure les routes
app.include_router(router, prefix="/api/v1")


@app.get("/health")
@limiter.exempt
async def health_check():
    """Point de santé de l'API"""
    redis_ok = check_redis_health()
    status = "healthy" if redis_ok else "degraded"
    return JSONResponse(
        content={
            "status": status,
            "version": API_VERSION,
            "environment": settings.ENVIRONMENT,
            "services": {
                "redis": "connected" if redis_ok else "disconnected",
            },
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc):
    """Gestionnaire global des exceptions"""
    logger.error(f"Erreur non gérée: {type(exc).__name__}: {str(exc)}", exc_info=True)
    if settings.DEBUG:
        content = {
            "detail": "Erreur interne du serveur",
            "type": type(exc).__name__,
            "message": str(exc),
        }
    else:
        content = {
            "detail": "Erreur interne du serveur",
            "message": "Une erreur s'est produite",
        }
    return JSONResponse(status_code=500, content=content)


if __name__ == "__main__":
    import uvicorn
    logger.info("Lancement de l'application sur le port 8000")
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
