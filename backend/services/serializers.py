from datetime import datetime

from db.models import AmmoProfile, DOPELog, EnvironmentSnapshot, RifleProfile
from services.derived_values import (
    ammo_summary,
    dope_summary,
    environment_summary,
    muzzle_energy,
    rifle_summary,
    wind_bearing,
)

RIFLE_FIELDS = (
    "user_id", "name", "caliber", "barrel_length", "twist_rate", "zero_distance",
    "optic_manufacturer", "optic_model", "reticle_type", "click_value_type",
    "click_value", "scope_height", "notes", "created_at", "updated_at",
)
AMMO_FIELDS = (
    "user_id", "rifle_id", "name", "manufacturer", "bullet_weight", "bullet_type",
    "ballistic_coefficient_g1", "ballistic_coefficient_g7", "muzzle_velocity",
    "powder_type", "powder_weight", "lot_number", "notes", "created_at", "updated_at",
)
ENVIRONMENT_FIELDS = (
    "user_id", "temperature", "humidity", "pressure", "altitude", "density_altitude",
    "wind_speed", "wind_direction", "latitude", "longitude", "timestamp",
)
DOPE_FIELDS = (
    "user_id", "rifle_id", "ammo_id", "environment_id", "distance", "distance_unit",
    "distance_yards", "elevation_correction", "windage_correction", "correction_unit",
    "target_type", "group_size", "hit_count", "shot_count", "hit_percentage", "notes",
    "timestamp",
)


def serialize_row(row, fields) -> dict:
    result = {"id": row.id}
    for f in fields:
        val = getattr(row, f, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[f] = val
    return result


def rifle_to_dict(rifle: RifleProfile) -> dict:
    data = serialize_row(rifle, RIFLE_FIELDS)
    data["summary"] = rifle_summary(rifle)
    return data


def rifle_brief(rifle: RifleProfile) -> dict:
    return {"id": rifle.id, "name": rifle.name, "caliber": rifle.caliber}


def ammo_to_dict(ammo: AmmoProfile, include_rifle: bool = True) -> dict:
    data = serialize_row(ammo, AMMO_FIELDS)
    data["muzzle_energy"] = round(muzzle_energy(ammo.bullet_weight, ammo.muzzle_velocity), 1)
    data["summary"] = ammo_summary(ammo)
    if include_rifle and ammo.rifle is not None:
        data["rifle"] = rifle_brief(ammo.rifle)
    return data


def environment_to_dict(snapshot: EnvironmentSnapshot) -> dict:
    data = serialize_row(snapshot, ENVIRONMENT_FIELDS)
    data["wind_bearing"] = wind_bearing(snapshot.wind_direction)
    data["summary"] = environment_summary(snapshot)
    return data


def dope_log_to_dict(log: DOPELog) -> dict:
    data = serialize_row(log, DOPE_FIELDS)
    data["summary"] = dope_summary(log)
    data["rifle"] = rifle_brief(log.rifle) if log.rifle is not None else None
    data["ammo"] = (
        {
            "id": log.ammo.id,
            "name": log.ammo.name,
            "manufacturer": log.ammo.manufacturer,
            "bullet_weight": log.ammo.bullet_weight,
        }
        if log.ammo is not None
        else None
    )
    data["environment"] = (
        {
            "id": log.environment.id,
            "temperature": log.environment.temperature,
            "humidity": log.environment.humidity,
            "pressure": log.environment.pressure,
            "wind_speed": log.environment.wind_speed,
            "wind_direction": log.environment.wind_direction,
        }
        if log.environment is not None
        else None
    )
    return data
