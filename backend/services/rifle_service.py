import logging
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from db.models import AmmoProfile, DOPELog, RifleProfile
from services.errors import NotFoundError
from services.query import Page, Pagination, as_float, get_owned, like_pattern, paginate, row_values
from services.validation import RIFLE_RULES, merge_patch, strip_text, validate_record

logger = logging.getLogger(__name__)

RIFLE_WRITABLE_FIELDS = tuple(rule.name for rule in RIFLE_RULES)
_TEXT_FIELDS = ("name", "caliber", "twist_rate", "optic_manufacturer", "optic_model", "reticle_type")


def get_rifle(db: Session, user_id: int, rifle_id: int) -> RifleProfile:
    rifle = get_owned(db, RifleProfile, user_id, rifle_id)
    if not rifle:
        raise NotFoundError("Rifle profile")
    return rifle


def create_rifle(db: Session, user_id: int, fields: dict[str, Any]) -> RifleProfile:
    record = merge_patch({name: None for name in RIFLE_WRITABLE_FIELDS}, fields, RIFLE_WRITABLE_FIELDS)
    record = strip_text(record, _TEXT_FIELDS)
    validate_record(RIFLE_RULES, record)

    rifle = RifleProfile(user_id=user_id, **record)
    db.add(rifle)
    db.flush()
    logger.info("Created rifle profile %s for user %s", rifle.id, user_id)
    return rifle


def update_rifle(db: Session, user_id: int, rifle_id: int, patch: dict[str, Any]) -> RifleProfile:
    rifle = get_rifle(db, user_id, rifle_id)
    if not patch:
        return rifle
    record = merge_patch(row_values(rifle, RIFLE_WRITABLE_FIELDS), patch, RIFLE_WRITABLE_FIELDS)
    record = strip_text(record, _TEXT_FIELDS)
    validate_record(RIFLE_RULES, record)

    for name in patch:
        setattr(rifle, name, record[name])
    db.flush()
    return rifle


def delete_rifle(db: Session, user_id: int, rifle_id: int) -> None:
    rifle = get_rifle(db, user_id, rifle_id)
    # ORM cascade removes the rifle's ammo profiles and their DOPE logs.
    db.delete(rifle)
    db.flush()
    logger.info("Deleted rifle profile %s for user %s", rifle_id, user_id)


def list_rifles(
    db: Session,
    user_id: int,
    pagination: Pagination,
    caliber: Optional[str] = None,
    search: Optional[str] = None,
) -> Page:
    query = db.query(RifleProfile).filter(RifleProfile.user_id == user_id)
    if caliber:
        query = query.filter(RifleProfile.caliber == caliber)
    if search and search.strip():
        pattern = like_pattern(search)
        query = query.filter(
            or_(
                RifleProfile.name.ilike(pattern, escape="\\"),
                RifleProfile.caliber.ilike(pattern, escape="\\"),
            )
        )
    return paginate(query, pagination, RifleProfile.created_at.desc(), RifleProfile.id.desc())


def rifle_stats(db: Session, user_id: int, rifle_id: int) -> dict[str, Any]:
    get_rifle(db, user_id, rifle_id)

    ammo_count = (
        db.query(func.count(AmmoProfile.id))
        .filter(AmmoProfile.user_id == user_id, AmmoProfile.rifle_id == rifle_id)
        .scalar()
    ) or 0
    dope_count, min_distance, max_distance = (
        db.query(
            func.count(DOPELog.id),
            func.min(DOPELog.distance_yards),
            func.max(DOPELog.distance_yards),
        )
        .filter(DOPELog.user_id == user_id, DOPELog.rifle_id == rifle_id)
        .one()
    )
    avg_accuracy = (
        db.query(func.avg(DOPELog.hit_percentage))
        .filter(
            DOPELog.user_id == user_id,
            DOPELog.rifle_id == rifle_id,
            DOPELog.hit_percentage.isnot(None),
        )
        .scalar()
    )
    return {
        "ammo_count": int(ammo_count),
        "dope_count": int(dope_count or 0),
        "min_distance": as_float(min_distance),
        "max_distance": as_float(max_distance),
        "avg_accuracy": as_float(avg_accuracy),
    }
