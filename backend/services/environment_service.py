import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from db.models import DOPELog, EnvironmentSnapshot
from services.derived_values import calculate_density_altitude
from services.errors import ConflictError, NotFoundError, ValidationError
from services.query import Page, Pagination, as_float, get_owned, paginate, parse_bound, row_values
from services.validation import ENVIRONMENT_RULES, merge_patch, validate_record

logger = logging.getLogger(__name__)

ENVIRONMENT_WRITABLE_FIELDS = tuple(rule.name for rule in ENVIRONMENT_RULES)
_DENSITY_INPUTS = ("temperature", "pressure", "altitude")


def get_environment(db: Session, user_id: int, environment_id: int) -> EnvironmentSnapshot:
    snapshot = get_owned(db, EnvironmentSnapshot, user_id, environment_id)
    if not snapshot:
        raise NotFoundError("Environment snapshot")
    return snapshot


def create_environment(
    db: Session,
    user_id: int,
    fields: dict[str, Any],
    timestamp: Optional[datetime] = None,
) -> EnvironmentSnapshot:
    record = merge_patch(
        {name: None for name in ENVIRONMENT_WRITABLE_FIELDS}, fields, ENVIRONMENT_WRITABLE_FIELDS
    )
    validate_record(ENVIRONMENT_RULES, record)
    if record["density_altitude"] is None:
        record["density_altitude"] = calculate_density_altitude(
            record["temperature"], record["pressure"], record["altitude"]
        )

    snapshot = EnvironmentSnapshot(user_id=user_id, **record)
    if timestamp is not None:
        snapshot.timestamp = parse_bound("timestamp", timestamp)
    db.add(snapshot)
    db.flush()
    logger.info("Created environment snapshot %s for user %s", snapshot.id, user_id)
    return snapshot


def update_environment(
    db: Session,
    user_id: int,
    environment_id: int,
    patch: dict[str, Any],
    timestamp: Optional[datetime] = None,
) -> EnvironmentSnapshot:
    snapshot = get_environment(db, user_id, environment_id)
    if not patch and timestamp is None:
        return snapshot
    record = merge_patch(row_values(snapshot, ENVIRONMENT_WRITABLE_FIELDS), patch, ENVIRONMENT_WRITABLE_FIELDS)
    validate_record(ENVIRONMENT_RULES, record)

    explicit_density = patch.get("density_altitude")
    inputs_changed = any(name in patch for name in _DENSITY_INPUTS)
    if explicit_density is None and (inputs_changed or record["density_altitude"] is None):
        record["density_altitude"] = calculate_density_altitude(
            record["temperature"], record["pressure"], record["altitude"]
        )

    for name in ENVIRONMENT_WRITABLE_FIELDS:
        if name in patch or name == "density_altitude":
            setattr(snapshot, name, record[name])
    if timestamp is not None:
        snapshot.timestamp = parse_bound("timestamp", timestamp)
    db.flush()
    return snapshot


def count_environment_references(db: Session, environment_id: int) -> int:
    return (
        db.query(func.count(DOPELog.id))
        .filter(DOPELog.environment_id == environment_id)
        .scalar()
    ) or 0


def delete_environment(db: Session, user_id: int, environment_id: int) -> None:
    snapshot = get_environment(db, user_id, environment_id)
    usage = count_environment_references(db, environment_id)
    if usage > 0:
        raise ConflictError(
            f"Cannot delete environment snapshot: it is used by {usage} DOPE log(s)",
            count=usage,
        )
    db.delete(snapshot)
    db.flush()
    logger.info("Deleted environment snapshot %s for user %s", environment_id, user_id)


def list_environments(
    db: Session,
    user_id: int,
    pagination: Pagination,
    temp_min: Optional[float] = None,
    temp_max: Optional[float] = None,
    date_from=None,
    date_to=None,
) -> Page:
    query = db.query(EnvironmentSnapshot).filter(EnvironmentSnapshot.user_id == user_id)
    if temp_min is not None:
        query = query.filter(EnvironmentSnapshot.temperature >= temp_min)
    if temp_max is not None:
        query = query.filter(EnvironmentSnapshot.temperature <= temp_max)
    start = parse_bound("date_from", date_from)
    end = parse_bound("date_to", date_to, end_of_day=True)
    if start is not None:
        query = query.filter(EnvironmentSnapshot.timestamp >= start)
    if end is not None:
        query = query.filter(EnvironmentSnapshot.timestamp <= end)
    return paginate(query, pagination, EnvironmentSnapshot.timestamp.desc(), EnvironmentSnapshot.id.desc())


def current_environment(db: Session, user_id: int) -> EnvironmentSnapshot:
    snapshot = (
        db.query(EnvironmentSnapshot)
        .filter(EnvironmentSnapshot.user_id == user_id)
        .order_by(EnvironmentSnapshot.timestamp.desc(), EnvironmentSnapshot.id.desc())
        .first()
    )
    if not snapshot:
        raise NotFoundError("Environment snapshot")
    return snapshot


def environment_averages(db: Session, user_id: int, date_from, date_to) -> dict[str, Any]:
    """Aggregate a user's snapshots taken within ``[date_from, date_to]``."""
    start = parse_bound("date_from", date_from)
    end = parse_bound("date_to", date_to, end_of_day=True)
    missing = [
        {"field": name, "message": f"{name} is required", "value": None}
        for name, value in (("date_from", start), ("date_to", end))
        if value is None
    ]
    if missing:
        raise ValidationError("date_from and date_to are required", missing)
    if start > end:
        raise ValidationError.for_field("date_from", "date_from must not be after date_to", date_from)

    row = (
        db.query(
            func.count(EnvironmentSnapshot.id),
            func.avg(EnvironmentSnapshot.temperature),
            func.min(EnvironmentSnapshot.temperature),
            func.max(EnvironmentSnapshot.temperature),
            func.avg(EnvironmentSnapshot.humidity),
            func.avg(EnvironmentSnapshot.pressure),
            func.avg(EnvironmentSnapshot.altitude),
            func.avg(EnvironmentSnapshot.density_altitude),
            func.avg(EnvironmentSnapshot.wind_speed),
        )
        .filter(
            EnvironmentSnapshot.user_id == user_id,
            EnvironmentSnapshot.timestamp >= start,
            EnvironmentSnapshot.timestamp <= end,
        )
        .one()
    )
    keys = (
        "avg_temperature", "min_temperature", "max_temperature", "avg_humidity",
        "avg_pressure", "avg_altitude", "avg_density_altitude", "avg_wind_speed",
    )
    averages = {"snapshot_count": int(row[0] or 0)}
    averages.update({key: as_float(value) for key, value in zip(keys, row[1:])})
    return {
        "date_range": {"from": start.isoformat(), "to": end.isoformat()},
        "averages": averages,
    }
