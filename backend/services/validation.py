from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable

from services.errors import ValidationError

CLICK_VALUE_TYPES = {"MIL", "MOA"}
CORRECTION_UNITS = {"MIL", "MOA"}
DISTANCE_UNITS = {"yards", "meters"}
TARGET_TYPES = {"steel", "paper", "vital_zone", "other"}
TWIST_RATE_RE = re.compile(r"^1:\d+$")


@dataclass(frozen=True)
class FieldRule:
    name: str
    kind: str = "number"  # number | integer | text | choice
    required: bool = True
    minimum: float | None = None
    maximum: float | None = None
    exclusive_min: bool = False
    exclusive_max: bool = False
    max_length: int | None = None
    choices: frozenset[str] | None = None
    pattern: re.Pattern | None = None
    label: str | None = None
    unit: str = ""

    @property
    def display(self) -> str:
        return self.label or self.name.replace("_", " ").capitalize()


def _range_text(rule: FieldRule) -> str:
    low = "" if rule.minimum is None else f"{'>' if rule.exclusive_min else '>='} {rule.minimum:g}"
    high = "" if rule.maximum is None else f"{'<' if rule.exclusive_max else '<='} {rule.maximum:g}"
    parts = [p for p in (low, high) if p]
    suffix = f" {rule.unit}" if rule.unit else ""
    return " and ".join(parts) + suffix


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def check_field(rule: FieldRule, value: Any) -> str | None:
    """Return an error message for ``value`` under ``rule``, or None when it is acceptable."""
    if value is None or (isinstance(value, str) and not value.strip() and rule.kind != "choice"):
        return f"{rule.display} is required" if rule.required else None

    if rule.kind in {"number", "integer"}:
        if not _is_number(value):
            return f"{rule.display} must be a number"
        if not math.isfinite(value):
            return f"{rule.display} must be a finite number"
        if rule.kind == "integer" and int(value) != value:
            return f"{rule.display} must be a whole number"
        too_low = rule.minimum is not None and (
            value <= rule.minimum if rule.exclusive_min else value < rule.minimum
        )
        too_high = rule.maximum is not None and (
            value >= rule.maximum if rule.exclusive_max else value > rule.maximum
        )
        if too_low or too_high:
            return f"{rule.display} must be {_range_text(rule)}"
        return None

    if not isinstance(value, str):
        return f"{rule.display} must be a string"
    if rule.kind == "choice" and rule.choices is not None and value not in rule.choices:
        return f"{rule.display} must be one of {sorted(rule.choices)}"
    if rule.max_length is not None and len(value) > rule.max_length:
        return f"{rule.display} must not exceed {rule.max_length} characters"
    if rule.pattern is not None and not rule.pattern.match(value):
        return f"{rule.display} has an invalid format"
    return None


def _reportable(value: Any) -> Any:
    # Error bodies are strict JSON, which has no NaN or Infinity.
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    return value


def validate_record(rules: Iterable[FieldRule], record: dict[str, Any]) -> None:
    errors = []
    for rule in rules:
        value = record.get(rule.name)
        message = check_field(rule, value)
        if message:
            errors.append({"field": rule.name, "message": message, "value": _reportable(value)})
    if errors:
        raise ValidationError("Validation failed", errors)


def merge_patch(current: dict[str, Any], patch: dict[str, Any], allowed: Iterable[str]) -> dict[str, Any]:
    allowed_set = set(allowed)
    unknown = sorted(k for k in patch if k not in allowed_set)
    if unknown:
        raise ValidationError(
            "Validation failed",
            [{"field": k, "message": f"{k} cannot be set", "value": patch[k]} for k in unknown],
        )
    merged = dict(current)
    merged.update(patch)
    return merged


def strip_text(record: dict[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    out = dict(record)
    for name in fields:
        value = out.get(name)
        if isinstance(value, str):
            out[name] = value.strip()
    return out


RIFLE_RULES = (
    FieldRule("name", kind="text", max_length=255, label="Rifle name"),
    FieldRule("caliber", kind="text", max_length=100),
    FieldRule("barrel_length", minimum=0, maximum=50, exclusive_min=True, unit="inches"),
    FieldRule("twist_rate", kind="text", max_length=20, pattern=TWIST_RATE_RE, label="Twist rate (1:X)"),
    FieldRule("zero_distance", minimum=0, maximum=1000, exclusive_min=True, unit="yards"),
    FieldRule("optic_manufacturer", kind="text", max_length=255),
    FieldRule("optic_model", kind="text", max_length=255),
    FieldRule("reticle_type", kind="text", max_length=100),
    FieldRule("click_value_type", kind="choice", choices=frozenset(CLICK_VALUE_TYPES)),
    FieldRule("click_value", minimum=0, maximum=1, exclusive_min=True),
    FieldRule("scope_height", minimum=0, maximum=10, exclusive_min=True, unit="inches"),
    FieldRule("notes", kind="text", required=False, max_length=5000),
)

AMMO_RULES = (
    FieldRule("name", kind="text", max_length=255, label="Ammo name"),
    FieldRule("manufacturer", kind="text", max_length=255),
    FieldRule("bullet_weight", minimum=0, maximum=1000, exclusive_min=True, unit="grains"),
    FieldRule("bullet_type", kind="text", max_length=100),
    FieldRule("ballistic_coefficient_g1", minimum=0, maximum=1, label="G1 BC"),
    FieldRule("ballistic_coefficient_g7", minimum=0, maximum=1, label="G7 BC"),
    FieldRule("muzzle_velocity", minimum=0, maximum=5000, exclusive_min=True, unit="fps"),
    FieldRule("powder_type", kind="text", required=False, max_length=100),
    FieldRule("powder_weight", required=False, minimum=0, unit="grains"),
    FieldRule("lot_number", kind="text", required=False, max_length=100),
    FieldRule("notes", kind="text", required=False, max_length=5000),
)

ENVIRONMENT_RULES = (
    FieldRule("temperature", minimum=-50, maximum=150, unit="°F"),
    FieldRule("humidity", minimum=0, maximum=100, unit="%"),
    FieldRule("pressure", minimum=20, maximum=35, unit="inHg"),
    FieldRule("altitude", minimum=-1000, maximum=30000, unit="feet"),
    FieldRule("density_altitude", required=False),
    FieldRule("wind_speed", minimum=0, maximum=100, unit="mph"),
    FieldRule("wind_direction", minimum=0, maximum=360, exclusive_max=True, unit="degrees"),
    FieldRule("latitude", required=False, minimum=-90, maximum=90),
    FieldRule("longitude", required=False, minimum=-180, maximum=180),
)

DOPE_LOG_RULES = (
    FieldRule("distance", minimum=0, maximum=3000, exclusive_min=True),
    FieldRule("distance_unit", kind="choice", choices=frozenset(DISTANCE_UNITS)),
    FieldRule("elevation_correction"),
    FieldRule("windage_correction"),
    FieldRule("correction_unit", kind="choice", choices=frozenset(CORRECTION_UNITS)),
    FieldRule("target_type", kind="choice", choices=frozenset(TARGET_TYPES)),
    FieldRule("group_size", required=False, minimum=0, unit="inches"),
    FieldRule("hit_count", kind="integer", required=False, minimum=0),
    FieldRule("shot_count", kind="integer", required=False, minimum=0),
    FieldRule("notes", kind="text", required=False, max_length=5000),
)


def validate_hit_counts(record: dict[str, Any]) -> None:
    hit_count = record.get("hit_count")
    shot_count = record.get("shot_count")
    if hit_count is not None and shot_count is not None and hit_count > shot_count:
        raise ValidationError.for_field("hit_count", "Hit count cannot exceed shot count", hit_count)
