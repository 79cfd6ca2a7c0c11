"""
Entité User - Domain Layer
Reference vers un athlete. L'authentification et le graphe social sont geres
ailleurs ; on ne garde ici que les champs d'affichage des classements.
"""
from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID, uuid4
from enum import Enum

from app.core.clock import utcnow


class Gender(str, Enum):
    """Genre declare, utilise pour separer les vues KOM (male) / QOM (female)"""
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class UserBase(SQLModel):
    """Modèle de base pour User"""
    name: str
    username: str = Field(unique=True, index=True, max_length=64)
    avatar: Optional[str] = None
    gender: Optional[Gender] = None


class User(UserBase, table=True):
    """Entité User pour la base de données"""
    id: Optional[UUID] = Field(default_factory=uuid4, primary_key=True)

    # Localisation declaree (recherche d'athletes a proximite)
    location_lat: Optional[float] = Field(default=None, index=True)
    location_lng: Optional[float] = Field(default=None, index=True)

    created_at: datetime = Field(default_factory=utcnow)


class UserRead(UserBase):
    """Schéma pour lire un utilisateur (réponse API)"""
    id: UUID
