"""
Value objects du domaine : distance, duree, vitesse, allure, frequence cardiaque,
denivele et coordonnees GPS.

Objets immuables, sans effet de bord. Les constructions invalides levent
ValidationError.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.domain.errors import ValidationError

METERS_PER_MILE = 1609.34
KM_PER_MILE = 1.60934
METERS_PER_FOOT = 0.3048

SPEED_EPSILON_KMH = 0.01
COORDINATE_EPSILON_DEG = 1e-4


def _format_minutes_seconds(total_seconds: int) -> str:
    minutes, seconds = divmod(int(total_seconds), 60)
    return f"{minutes}:{seconds:02d}"


@dataclass(frozen=True, order=True)
class Distance:
    """Distance stockee en metres."""
    meters: float

    def __post_init__(self):
        if self.meters < 0:
            raise ValidationError("Distance cannot be negative")

    @classmethod
    def from_meters(cls, meters: float) -> "Distance":
        return cls(float(meters))

    @classmethod
    def from_kilometers(cls, kilometers: float) -> "Distance":
        return cls(kilometers * 1000)

    @classmethod
    def from_miles(cls, miles: float) -> "Distance":
        return cls(miles * METERS_PER_MILE)

    def to_kilometers(self) -> float:
        return self.meters / 1000

    def to_miles(self) -> float:
        return self.meters / METERS_PER_MILE

    def add(self, other: "Distance") -> "Distance":
        return Distance(self.meters + other.meters)

    def subtract(self, other: "Distance") -> "Distance":
        """Soustraction bornee a zero."""
        return Distance(max(0.0, self.meters - other.meters))

    def __str__(self) -> str:
        if self.meters >= 1000:
            return f"{self.to_kilometers():,.2f} km"
        return f"{self.meters:,.0f} m"


@dataclass(frozen=True, order=True)
class Duration:
    """Duree stockee en secondes entieres."""
    seconds: int

    def __post_init__(self):
        if self.seconds < 0:
            raise ValidationError("Duration cannot be negative")

    @classmethod
    def from_seconds(cls, seconds: int) -> "Duration":
        return cls(int(seconds))

    @classmethod
    def from_minutes(cls, minutes: int) -> "Duration":
        return cls(int(minutes) * 60)

    @classmethod
    def from_hours(cls, hours: float) -> "Duration":
        return cls(int(round(hours * 3600)))

    def to_minutes(self) -> float:
        return self.seconds / 60

    def to_hours(self) -> float:
        return self.seconds / 3600

    def add(self, other: "Duration") -> "Duration":
        return Duration(self.seconds + other.seconds)

    def subtract(self, other: "Duration") -> "Duration":
        return Duration(max(0, self.seconds - other.seconds))

    def format(self) -> str:
        """Rend H:MM:SS au-dela d'une heure, M:SS sinon."""
        hours, remainder = divmod(self.seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours > 0:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        return f"{minutes}:{seconds:02d}"

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True, eq=False)
class Speed:
    """Vitesse stockee en km/h. Egalite a 0.01 km/h pres."""
    kmh: float

    def __post_init__(self):
        if self.kmh < 0:
            raise ValidationError("Speed cannot be negative")

    @classmethod
    def from_kmh(cls, kmh: float) -> "Speed":
        return cls(float(kmh))

    @classmethod
    def from_ms(cls, ms: float) -> "Speed":
        return cls(ms * 3.6)

    @classmethod
    def from_mph(cls, mph: float) -> "Speed":
        return cls(mph * KM_PER_MILE)

    def to_ms(self) -> float:
        return self.kmh / 3.6

    def to_mph(self) -> float:
        return self.kmh / KM_PER_MILE

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Speed):
            return NotImplemented
        return abs(self.kmh - other.kmh) < SPEED_EPSILON_KMH

    __hash__ = None

    def __lt__(self, other: "Speed") -> bool:
        return self.kmh < other.kmh

    def __gt__(self, other: "Speed") -> bool:
        return self.kmh > other.kmh

    def __str__(self) -> str:
        return f"{self.kmh:,.2f} km/h"


@dataclass(frozen=True, order=True)
class Pace:
    """Allure stockee en secondes par km (entier)."""
    seconds_per_km: int

    def __post_init__(self):
        if self.seconds_per_km < 0:
            raise ValidationError("Pace cannot be negative")

    @classmethod
    def from_seconds_per_km(cls, seconds_per_km: int) -> "Pace":
        return cls(int(seconds_per_km))

    @classmethod
    def from_distance_and_duration(cls, distance: Distance, duration: Duration) -> "Pace":
        if distance.to_kilometers() <= 0:
            raise ValidationError("Distance must be greater than zero")
        return cls(int(round(duration.seconds / distance.to_kilometers())))

    @classmethod
    def from_speed(cls, speed: Speed) -> "Pace":
        if speed.kmh <= 0:
            raise ValidationError("Speed must be greater than zero")
        return cls(int(round(3600 / speed.kmh)))

    def to_seconds_per_mile(self) -> int:
        return int(round(self.seconds_per_km * KM_PER_MILE))

    def to_speed(self) -> Speed:
        if self.seconds_per_km == 0:
            return Speed(0.0)
        return Speed(3600 / self.seconds_per_km)

    def format(self) -> str:
        return _format_minutes_seconds(self.seconds_per_km)

    def format_per_mile(self) -> str:
        return _format_minutes_seconds(self.to_seconds_per_mile())

    def __str__(self) -> str:
        return f"{self.format()} /km"


@dataclass(frozen=True, order=True)
class HeartRate:
    """Frequence cardiaque en bpm, bornee a [30, 220] (hors bornes : erreur, pas de clamp)."""
    bpm: int

    MIN_BPM = 30
    MAX_BPM = 220

    def __post_init__(self):
        if self.bpm < self.MIN_BPM or self.bpm > self.MAX_BPM:
            raise ValidationError(
                f"Heart rate must be between {self.MIN_BPM} and {self.MAX_BPM} bpm"
            )

    @classmethod
    def from_bpm(cls, bpm: int) -> "HeartRate":
        return cls(int(bpm))

    def zone(self, max_heart_rate: int) -> int:
        """Zone 1..5 selon le pourcentage de la FC max fournie."""
        if max_heart_rate <= 0:
            raise ValidationError("Max heart rate must be greater than zero")
        percentage = (self.bpm / max_heart_rate) * 100
        if percentage >= 90:
            return 5
        if percentage >= 80:
            return 4
        if percentage >= 70:
            return 3
        if percentage >= 60:
            return 2
        return 1

    def __str__(self) -> str:
        return f"{self.bpm} bpm"


@dataclass(frozen=True, order=True)
class Elevation:
    """Denivele en metres (peut etre negatif)."""
    meters: float

    @classmethod
    def from_meters(cls, meters: float) -> "Elevation":
        return cls(float(meters))

    @classmethod
    def from_feet(cls, feet: float) -> "Elevation":
        return cls(feet * METERS_PER_FOOT)

    def to_feet(self) -> float:
        return self.meters / METERS_PER_FOOT

    def add(self, other: "Elevation") -> "Elevation":
        return Elevation(self.meters + other.meters)

    def subtract(self, other: "Elevation") -> "Elevation":
        return Elevation(self.meters - other.meters)

    def abs(self) -> "Elevation":
        return Elevation(abs(self.meters))

    def __str__(self) -> str:
        return f"{self.meters:,.1f} m"


@dataclass(frozen=True, eq=False)
class Coordinate:
    """Point WGS-84. Egalite a 1e-4 degre pres."""
    latitude: float
    longitude: float
    altitude: Optional[float] = None

    def __post_init__(self):
        for value in (self.latitude, self.longitude):
            if value is None or not math.isfinite(value):
                raise ValidationError("Latitude and longitude must be finite numbers")
        if self.latitude < -90 or self.latitude > 90:
            raise ValidationError("Latitude must be between -90 and 90")
        if self.longitude < -180 or self.longitude > 180:
            raise ValidationError("Longitude must be between -180 and 180")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Coordinate":
        """Accepte les cles latitude/longitude/altitude ou lat/lng/alt."""
        lat = data.get("latitude", data.get("lat"))
        lng = data.get("longitude", data.get("lng"))
        if lat is None or lng is None:
            raise ValidationError("Each point must have latitude and longitude")
        return cls(float(lat), float(lng), data.get("altitude", data.get("alt")))

    def to_position(self) -> list:
        """Position GeoJSON [lng, lat] ou [lng, lat, alt]."""
        if self.altitude is not None:
            return [self.longitude, self.latitude, self.altitude]
        return [self.longitude, self.latitude]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Coordinate):
            return NotImplemented
        return (
            abs(self.latitude - other.latitude) < COORDINATE_EPSILON_DEG
            and abs(self.longitude - other.longitude) < COORDINATE_EPSILON_DEG
        )

    __hash__ = None

    def __str__(self) -> str:
        return f"{self.latitude:.6f}, {self.longitude:.6f}"
