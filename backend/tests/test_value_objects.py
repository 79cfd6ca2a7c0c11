"""
Tests des value objects : distance, duree, vitesse, allure, FC, coordonnees.
"""
import pytest

from app.domain.errors import ValidationError
from app.domain.value_objects import Coordinate, Distance, Duration, HeartRate, Pace, Speed


class TestDistance:
    def test_conversions(self):
        d = Distance.from_kilometers(5)
        assert d.meters == 5000
        assert d.to_kilometers() == 5
        assert d.to_miles() == pytest.approx(3.1069, rel=1e-3)

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            Distance(-1)

    def test_subtract_clamps_to_zero(self):
        assert Distance(100).subtract(Distance(250)).meters == 0
        assert Distance(300).add(Distance(200)).meters == 500

    def test_ordering(self):
        assert Distance(100) < Distance(200)


class TestDuration:
    def test_format_with_hours(self):
        assert Duration(3725).format() == "1:02:05"

    def test_format_without_hours(self):
        assert Duration(305).format() == "5:05"

    def test_conversions(self):
        assert Duration.from_minutes(3).seconds == 180
        assert Duration(5400).to_hours() == 1.5

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            Duration(-5)


class TestSpeedAndPace:
    def test_speed_equality_uses_epsilon(self):
        assert Speed(10.0) == Speed(10.005)
        assert Speed(10.0) != Speed(10.05)

    def test_speed_conversions(self):
        assert Speed.from_ms(10).kmh == pytest.approx(36.0)
        assert Speed(36).to_ms() == pytest.approx(10.0)

    def test_pace_from_distance_and_duration(self):
        pace = Pace.from_distance_and_duration(Distance(5000), Duration(1500))
        assert pace.seconds_per_km == 300
        assert pace.format() == "5:00"

    def test_pace_zero_distance_fails(self):
        with pytest.raises(ValidationError):
            Pace.from_distance_and_duration(Distance(0), Duration(600))

    def test_pace_from_speed(self):
        assert Pace.from_speed(Speed(12)).seconds_per_km == 300

    @pytest.mark.parametrize("kmh", [3.3, 8.0, 12.5, 17.9, 42.0])
    def test_pace_speed_roundtrip_within_one_percent(self, kmh):
        recovered = Pace.from_speed(Speed(kmh)).to_speed()
        assert recovered.kmh == pytest.approx(kmh, rel=0.01)


class TestHeartRate:
    @pytest.mark.parametrize("bpm", [29, 221])
    def test_out_of_range_fails(self, bpm):
        with pytest.raises(ValidationError):
            HeartRate(bpm)

    def test_bounds_accepted(self):
        assert HeartRate(30).bpm == 30
        assert HeartRate(220).bpm == 220

    @pytest.mark.parametrize("bpm,zone", [(180, 5), (160, 4), (140, 3), (120, 2), (100, 1)])
    def test_zones(self, bpm, zone):
        assert HeartRate(bpm).zone(200) == zone


class TestCoordinate:
    def test_bounds(self):
        with pytest.raises(ValidationError):
            Coordinate(91, 0)
        with pytest.raises(ValidationError):
            Coordinate(0, -181)

    def test_equality_tolerance(self):
        assert Coordinate(45.0, 5.0) == Coordinate(45.00005, 5.00005)
        assert Coordinate(45.0, 5.0) != Coordinate(45.001, 5.0)

    def test_from_dict_accepts_short_keys(self):
        coord = Coordinate.from_dict({"lat": 45.1, "lng": 5.2, "alt": 300})
        assert (coord.latitude, coord.longitude, coord.altitude) == (45.1, 5.2, 300)

    def test_from_dict_missing_longitude(self):
        with pytest.raises(ValidationError):
            Coordinate.from_dict({"latitude": 45.1})
