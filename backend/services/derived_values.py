"""Pure unit conversions and derived fields for logbook records.

Nothing here touches the database. Range checking happens in
``services.validation`` before any of these are called.
"""

from __future__ import annotations

import math
from typing import Optional

YARDS_PER_METER = 1.09361
STANDARD_PRESSURE_INHG = 29.92
ENERGY_CONSTANT = 450240

WIND_BEARINGS = (
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
)

UNIT_ABBREVIATIONS = {"yards": "yd", "meters": "m"}


def convert_to_yards(distance: float, unit: str) -> float:
    if unit == "yards":
        return distance
    return distance * YARDS_PER_METER


def convert_to_meters(distance: float, unit: str) -> float:
    if unit == "meters":
        return distance
    return distance / YARDS_PER_METER


def calculate_density_altitude(temperature: float, pressure: float, altitude: float) -> int:
    """Density altitude in feet: pressure altitude corrected for non-standard temperature.

    DA = PA + 120 * (OAT - ISA), PA = altitude + 1000 * (29.92 - pressure),
    ISA = 59 - 0.00356 * altitude. Rounded half away from zero.
    """
    pressure_altitude = altitude + 1000 * (STANDARD_PRESSURE_INHG - pressure)
    standard_temp = 59 - 0.00356 * altitude
    density_altitude = pressure_altitude + 120 * (temperature - standard_temp)
    return _round_half_up(density_altitude)


def calculate_hit_percentage(hit_count: Optional[int], shot_count: Optional[int]) -> Optional[float]:
    if hit_count is None or shot_count is None or shot_count == 0:
        return None
    return (hit_count / shot_count) * 100


def wind_bearing(wind_direction: float) -> str:
    index = _round_half_up(wind_direction / 22.5) % 16
    return WIND_BEARINGS[index]


def muzzle_energy(bullet_weight_grains: float, muzzle_velocity_fps: float) -> float:
    """Muzzle energy in foot-pounds."""
    return (bullet_weight_grains * muzzle_velocity_fps ** 2) / ENERGY_CONSTANT


def _round_half_up(value: float) -> int:
    # .5 rounds toward positive infinity, unlike round().
    return math.floor(value + 0.5)


def _fmt_number(value) -> str:
    if value is None:
        return "?"
    as_float = float(value)
    if as_float.is_integer():
        return str(int(as_float))
    return f"{as_float:g}"


def distance_label(distance: float, unit: str) -> str:
    return f"{_fmt_number(distance)}{UNIT_ABBREVIATIONS.get(unit, unit)}"


def dope_entry(
    distance: float,
    distance_unit: str,
    elevation_correction: float,
    windage_correction: float,
    correction_unit: str,
) -> str:
    """One line of a DOPE card, e.g. ``100yd: ↑1.20 →0.30 MIL``."""
    return (
        f"{distance_label(distance, distance_unit)}: "
        f"↑{elevation_correction:.2f} →{windage_correction:.2f} {correction_unit}"
    )


def rifle_summary(rifle) -> str:
    return (
        f"{rifle.name} - {rifle.caliber} "
        f'({_fmt_number(rifle.barrel_length)}" barrel, {rifle.twist_rate} twist)'
    )


def ammo_summary(ammo) -> str:
    return f"{ammo.manufacturer} {ammo.name} - {_fmt_number(ammo.bullet_weight)}gr {ammo.bullet_type}"


def environment_summary(snapshot) -> str:
    return (
        f"{_fmt_number(snapshot.temperature)}°F, {_fmt_number(snapshot.humidity)}% RH, "
        f'{_fmt_number(snapshot.pressure)}" Hg, DA: {_fmt_number(snapshot.density_altitude)}ft, '
        f"Wind: {_fmt_number(snapshot.wind_speed)}mph @ {wind_bearing(snapshot.wind_direction)}"
    )


def dope_summary(log) -> str:
    accuracy = ""
    if log.hit_percentage is not None:
        accuracy = f" ({log.hit_percentage:.0f}% hits)"
    return f"{distance_label(log.distance, log.distance_unit)} - {log.target_type}{accuracy}"
