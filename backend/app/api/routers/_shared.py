"""
Utilitaires partages entre les routers API.
"""
import logging
from uuid import UUID

from fastapi import Depends, Request, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from slowapi import Limiter
from slowapi.util import get_remote_address
from jose import JWTError, jwt as jose_jwt

from app.auth.jwt import get_current_user_id
from app.core.settings import get_settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


async def security(request: Request) -> HTTPAuthorizationCredentials:
    """Extrait le JWT depuis le header Bearer."""
    creds = await _bearer_scheme(request)
    if creds:
        return creds

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def current_user_id(token: HTTPAuthorizationCredentials = Depends(security)) -> UUID:
    """Dependance : identifiant de l'utilisateur authentifie."""
    return get_current_user_id(token.credentials)


def _get_user_or_ip(request: Request) -> str:
    """Key function pour le rate limiter : retourne le user_id JWT si present, sinon l'IP."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        settings = get_settings()
        try:
            payload = jose_jwt.decode(
                auth_header[7:], settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
            )
        except JWTError:
            payload = {}
        user_id = payload.get("sub")
        if user_id:
            return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=_get_user_or_ip, default_limits=["100/minute"], headers_enabled=True)
