from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.derived_values import (  # noqa: E402
    YARDS_PER_METER,
    calculate_density_altitude,
    calculate_hit_percentage,
    convert_to_meters,
    convert_to_yards,
    dope_entry,
    dope_summary,
    environment_summary,
    muzzle_energy,
    rifle_summary,
    wind_bearing,
)


def test_convert_to_yards_passes_yards_through_and_scales_meters():
    assert convert_to_yards(300, "yards") == 300
    assert convert_to_yards(100, "meters") == pytest.approx(109.361)
    assert convert_to_yards(50, "meters") == pytest.approx(54.6805)


def test_yard_meter_round_trip_is_close_but_not_required_exact():
    meters = convert_to_meters(1000, "yards")
    assert meters == pytest.approx(1000 / YARDS_PER_METER)
    assert convert_to_yards(meters, "meters") == pytest.approx(1000, rel=1e-9)
    assert convert_to_meters(600, "meters") == 600


def test_density_altitude_standard_day_temperature_offset():
    # 70°F at sea level on a standard-pressure day: 120 * (70 - 59)
    assert calculate_density_altitude(70, 29.92, 0) == 1320


def test_density_altitude_matches_closed_form():
    for temperature, pressure, altitude in [(59, 29.92, 5000), (95, 25.0, 6500), (-10, 30.5, 200), (32, 29.92, 0)]:
        pressure_altitude = altitude + 1000 * (29.92 - pressure)
        standard_temp = 59 - 0.00356 * altitude
        expected = pressure_altitude + 120 * (temperature - standard_temp)
        result = calculate_density_altitude(temperature, pressure, altitude)
        assert isinstance(result, int)
        assert abs(result - expected) <= 0.5


def test_density_altitude_high_pressure_goes_negative():
    assert calculate_density_altitude(59, 30.42, 0) == -500


def test_hit_percentage_rules():
    assert calculate_hit_percentage(3, 4) == 75.0
    assert calculate_hit_percentage(0, 5) == 0.0
    assert calculate_hit_percentage(2, 3) == pytest.approx(66.6666667)
    assert calculate_hit_percentage(None, 5) is None
    assert calculate_hit_percentage(5, None) is None
    assert calculate_hit_percentage(0, 0) is None


@pytest.mark.parametrize(
    "direction,bearing",
    [
        (0, "N"),
        (11.25, "NNE"),
        (22.5, "NNE"),
        (45, "NE"),
        (90, "E"),
        (180, "S"),
        (247.5, "WSW"),
        (270, "W"),
        (350, "N"),
        (359.9, "N"),
    ],
)
def test_wind_bearing_sixteen_point_rose(direction, bearing):
    assert wind_bearing(direction) == bearing


def test_muzzle_energy():
    assert muzzle_energy(175, 2600) == pytest.approx(175 * 2600 ** 2 / 450240)
    assert muzzle_energy(175, 2600) == pytest.approx(2627.49, abs=0.01)


def test_dope_entry_and_summaries():
    assert dope_entry(100, "yards", 1.2, -0.3, "MIL") == "100yd: ↑1.20 →-0.30 MIL"
    assert dope_entry(550.5, "meters", 14, 2.25, "MOA") == "550.5m: ↑14.00 →2.25 MOA"

    rifle = SimpleNamespace(name="Tikka T3x", caliber=".308 Win", barrel_length=24.0, twist_rate="1:10")
    assert rifle_summary(rifle) == 'Tikka T3x - .308 Win (24" barrel, 1:10 twist)'

    snapshot = SimpleNamespace(
        temperature=70.0, humidity=40.0, pressure=29.92, density_altitude=1320.0,
        wind_speed=5.0, wind_direction=90.0,
    )
    assert environment_summary(snapshot).endswith("Wind: 5mph @ E")

    log = SimpleNamespace(distance=300.0, distance_unit="yards", target_type="steel", hit_percentage=80.0)
    assert dope_summary(log) == "300yd - steel (80% hits)"
    log.hit_percentage = None
    assert dope_summary(log) == "300yd - steel"
