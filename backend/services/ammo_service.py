import logging
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from db.models import AmmoProfile, DOPELog, RifleProfile
from services.errors import InvalidReferenceError, NotFoundError
from services.query import Page, Pagination, as_float, get_owned, like_pattern, paginate, row_values
from services.validation import AMMO_RULES, merge_patch, strip_text, validate_record

logger = logging.getLogger(__name__)

AMMO_WRITABLE_FIELDS = ("rifle_id",) + tuple(rule.name for rule in AMMO_RULES)
_TEXT_FIELDS = ("name", "manufacturer", "bullet_type", "powder_type", "lot_number")


def _require_rifle(db: Session, user_id: int, rifle_id) -> RifleProfile:
    rifle = get_owned(db, RifleProfile, user_id, rifle_id)
    if not rifle:
        raise InvalidReferenceError("rifle_id", rifle_id, "Rifle")
    return rifle


def get_ammo(db: Session, user_id: int, ammo_id: int) -> AmmoProfile:
    ammo = get_owned(db, AmmoProfile, user_id, ammo_id)
    if not ammo:
        raise NotFoundError("Ammo profile")
    return ammo


def create_ammo(db: Session, user_id: int, fields: dict[str, Any]) -> AmmoProfile:
    record = merge_patch({name: None for name in AMMO_WRITABLE_FIELDS}, fields, AMMO_WRITABLE_FIELDS)
    record = strip_text(record, _TEXT_FIELDS)
    validate_record(AMMO_RULES, record)
    _require_rifle(db, user_id, record["rifle_id"])

    ammo = AmmoProfile(user_id=user_id, **record)
    db.add(ammo)
    db.flush()
    logger.info("Created ammo profile %s (rifle %s) for user %s", ammo.id, ammo.rifle_id, user_id)
    return ammo


def update_ammo(db: Session, user_id: int, ammo_id: int, patch: dict[str, Any]) -> AmmoProfile:
    ammo = get_ammo(db, user_id, ammo_id)
    if not patch:
        return ammo
    record = merge_patch(row_values(ammo, AMMO_WRITABLE_FIELDS), patch, AMMO_WRITABLE_FIELDS)
    record = strip_text(record, _TEXT_FIELDS)
    validate_record(AMMO_RULES, record)
    if "rifle_id" in patch and patch["rifle_id"] != ammo.rifle_id:
        _require_rifle(db, user_id, patch["rifle_id"])

    for name in patch:
        setattr(ammo, name, record[name])
    db.flush()
    return ammo


def delete_ammo(db: Session, user_id: int, ammo_id: int) -> None:
    ammo = get_ammo(db, user_id, ammo_id)
    db.delete(ammo)
    db.flush()
    logger.info("Deleted ammo profile %s for user %s", ammo_id, user_id)


def list_ammo(
    db: Session,
    user_id: int,
    pagination: Pagination,
    rifle_id: Optional[int] = None,
    manufacturer: Optional[str] = None,
    search: Optional[str] = None,
) -> Page:
    query = db.query(AmmoProfile).filter(AmmoProfile.user_id == user_id)
    if rifle_id is not None:
        query = query.filter(AmmoProfile.rifle_id == rifle_id)
    if manufacturer:
        query = query.filter(AmmoProfile.manufacturer == manufacturer)
    if search and search.strip():
        pattern = like_pattern(search)
        query = query.filter(
            or_(
                AmmoProfile.name.ilike(pattern, escape="\\"),
                AmmoProfile.manufacturer.ilike(pattern, escape="\\"),
                AmmoProfile.bullet_type.ilike(pattern, escape="\\"),
            )
        )
    return paginate(query, pagination, AmmoProfile.created_at.desc(), AmmoProfile.id.desc())


def ammo_stats(db: Session, user_id: int, ammo_id: int) -> dict[str, Any]:
    get_ammo(db, user_id, ammo_id)

    dope_count, min_distance, max_distance, avg_accuracy, avg_group_size = (
        db.query(
            func.count(DOPELog.id),
            func.min(DOPELog.distance_yards),
            func.max(DOPELog.distance_yards),
            func.avg(DOPELog.hit_percentage),
            func.avg(DOPELog.group_size),
        )
        .filter(DOPELog.user_id == user_id, DOPELog.ammo_id == ammo_id)
        .one()
    )
    return {
        "dope_count": int(dope_count or 0),
        "min_distance": as_float(min_distance),
        "max_distance": as_float(max_distance),
        "avg_accuracy": as_float(avg_accuracy),
        "avg_group_size": as_float(avg_group_size),
    }
