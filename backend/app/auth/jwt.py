"""
Verification des tokens JWT.
L'emission des tokens est assuree par le service d'authentification externe ;
seul le claim "sub" (identifiant utilisateur) est exploite ici.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from uuid import UUID

from fastapi import HTTPException, status
from jose import JWTError, jwt
from pydantic import BaseModel

from app.core.settings import get_settings

settings = get_settings()


class TokenData(BaseModel):
    """Données contenues dans un token"""
    user_id: UUID
    exp: datetime


class JWTManager:
    """Gestionnaire des tokens JWT"""

    def __init__(self):
        self.secret_key = settings.JWT_SECRET_KEY
        self.algorithm = settings.JWT_ALGORITHM

    def create_access_token(self, user_id: UUID, expires_minutes: int = 30, **claims: Any) -> str:
        """Crée un access token JWT (outillage local et tests)"""
        to_encode: Dict[str, Any] = {"sub": str(user_id), **claims}
        expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
        to_encode.update({"exp": expire, "type": "access"})
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> TokenData:
        """Vérifie et décode un token JWT"""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials"
            )

        if payload.get("type", "access") != "access":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token type. Expected access"
            )

        try:
            user_id = UUID(str(payload.get("sub")))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token payload"
            )

        exp = payload.get("exp")
        return TokenData(
            user_id=user_id,
            exp=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else datetime.max.replace(tzinfo=timezone.utc),
        )


# Instance globale
jwt_manager = JWTManager()


def get_current_user_id(token: str) -> UUID:
    """Extrait l'ID utilisateur du token (pour dependency injection)"""
    return jwt_manager.verify_token(token).user_id
