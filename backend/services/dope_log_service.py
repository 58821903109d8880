import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from db.models import AmmoProfile, DOPELog, EnvironmentSnapshot, RifleProfile
from services.derived_values import calculate_hit_percentage, convert_to_yards
from services.errors import InvalidReferenceError, NotFoundError
from services.query import Page, Pagination, get_owned, paginate, parse_bound, require_choice, row_values
from services.validation import DOPE_LOG_RULES, TARGET_TYPES, merge_patch, validate_hit_counts, validate_record

logger = logging.getLogger(__name__)

_REFERENCES = (
    ("rifle_id", RifleProfile, "Rifle"),
    ("ammo_id", AmmoProfile, "Ammo"),
    ("environment_id", EnvironmentSnapshot, "Environment"),
)
DOPE_WRITABLE_FIELDS = tuple(name for name, _, _ in _REFERENCES) + tuple(rule.name for rule in DOPE_LOG_RULES)

SORT_ORDERS = {
    "date": lambda: (DOPELog.timestamp.desc(), DOPELog.id.desc()),
    "distance_asc": lambda: (DOPELog.distance_yards.asc(), DOPELog.id.asc()),
    "distance_desc": lambda: (DOPELog.distance_yards.desc(), DOPELog.id.desc()),
    "accuracy": lambda: (
        DOPELog.hit_percentage.is_(None),
        DOPELog.hit_percentage.desc(),
        DOPELog.id.desc(),
    ),
}


def _check_references(db: Session, user_id: int, record: dict[str, Any], fields) -> None:
    for name, model, label in _REFERENCES:
        if name not in fields:
            continue
        if not get_owned(db, model, user_id, record.get(name)):
            raise InvalidReferenceError(name, record.get(name), label)


def _apply_derived(record: dict[str, Any]) -> dict[str, Any]:
    record["distance_yards"] = convert_to_yards(record["distance"], record["distance_unit"])
    record["hit_percentage"] = calculate_hit_percentage(record.get("hit_count"), record.get("shot_count"))
    return record


def get_dope_log(db: Session, user_id: int, log_id: int) -> DOPELog:
    log = get_owned(db, DOPELog, user_id, log_id)
    if not log:
        raise NotFoundError("DOPE log")
    return log


def create_dope_log(
    db: Session,
    user_id: int,
    fields: dict[str, Any],
    timestamp: Optional[datetime] = None,
) -> DOPELog:
    record = merge_patch({name: None for name in DOPE_WRITABLE_FIELDS}, fields, DOPE_WRITABLE_FIELDS)
    validate_record(DOPE_LOG_RULES, record)
    validate_hit_counts(record)
    _check_references(db, user_id, record, DOPE_WRITABLE_FIELDS)

    log = DOPELog(user_id=user_id, **_apply_derived(record))
    if timestamp is not None:
        log.timestamp = parse_bound("timestamp", timestamp)
    db.add(log)
    db.flush()
    logger.info(
        "Created DOPE log %s (rifle %s, ammo %s, %.2f yd) for user %s",
        log.id, log.rifle_id, log.ammo_id, log.distance_yards, user_id,
    )
    return log


def update_dope_log(
    db: Session,
    user_id: int,
    log_id: int,
    patch: dict[str, Any],
    timestamp: Optional[datetime] = None,
) -> DOPELog:
    log = get_dope_log(db, user_id, log_id)
    if not patch and timestamp is None:
        return log
    record = merge_patch(row_values(log, DOPE_WRITABLE_FIELDS), patch, DOPE_WRITABLE_FIELDS)
    validate_record(DOPE_LOG_RULES, record)
    validate_hit_counts(record)
    changed_refs = [name for name, _, _ in _REFERENCES if name in patch and patch[name] != getattr(log, name)]
    _check_references(db, user_id, record, changed_refs)

    record = _apply_derived(record)
    for name in DOPE_WRITABLE_FIELDS + ("distance_yards", "hit_percentage"):
        setattr(log, name, record[name])
    if timestamp is not None:
        log.timestamp = parse_bound("timestamp", timestamp)
    db.flush()
    return log


def delete_dope_log(db: Session, user_id: int, log_id: int) -> None:
    log = get_dope_log(db, user_id, log_id)
    db.delete(log)
    db.flush()
    logger.info("Deleted DOPE log %s for user %s", log_id, user_id)


def list_dope_logs(
    db: Session,
    user_id: int,
    pagination: Pagination,
    rifle_id: Optional[int] = None,
    ammo_id: Optional[int] = None,
    distance_min: Optional[float] = None,
    distance_max: Optional[float] = None,
    target_type: Optional[str] = None,
    sort: Optional[str] = None,
) -> Page:
    target_type = require_choice("target_type", target_type, TARGET_TYPES)
    sort = require_choice("sort", sort, SORT_ORDERS) or "date"

    query = db.query(DOPELog).filter(DOPELog.user_id == user_id)
    if rifle_id is not None:
        query = query.filter(DOPELog.rifle_id == rifle_id)
    if ammo_id is not None:
        query = query.filter(DOPELog.ammo_id == ammo_id)
    if distance_min is not None:
        query = query.filter(DOPELog.distance_yards >= distance_min)
    if distance_max is not None:
        query = query.filter(DOPELog.distance_yards <= distance_max)
    if target_type:
        query = query.filter(DOPELog.target_type == target_type)
    return paginate(query, pagination, *SORT_ORDERS[sort]())
