"""DOPE card assembly: the distance-ordered correction table for one rifle/ammo pair."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from db.models import AmmoProfile, DOPELog, RifleProfile
from services.derived_values import dope_entry
from services.errors import NotFoundError
from services.query import get_owned
from services.serializers import ammo_to_dict, rifle_to_dict

CARD_FIELDS = (
    "distance",
    "distance_unit",
    "distance_yards",
    "elevation_correction",
    "windage_correction",
    "correction_unit",
    "hit_percentage",
    "group_size",
)


def _card_row(log: DOPELog) -> dict[str, Any]:
    row = {name: getattr(log, name) for name in CARD_FIELDS}
    row["entry"] = dope_entry(
        log.distance,
        log.distance_unit,
        log.elevation_correction,
        log.windage_correction,
        log.correction_unit,
    )
    return row


def get_dope_card(db: Session, user_id: int, rifle_id: int, ammo_id: int) -> dict[str, Any]:
    rifle = get_owned(db, RifleProfile, user_id, rifle_id)
    ammo = get_owned(db, AmmoProfile, user_id, ammo_id)
    missing = [label for label, row in (("Rifle", rifle), ("Ammo", ammo)) if row is None]
    if missing:
        raise NotFoundError(" and ".join(missing))

    logs = (
        db.query(DOPELog)
        .filter(
            DOPELog.user_id == user_id,
            DOPELog.rifle_id == rifle_id,
            DOPELog.ammo_id == ammo_id,
        )
        .order_by(DOPELog.distance_yards.asc(), DOPELog.id.asc())
        .all()
    )
    return {
        "rifle": rifle_to_dict(rifle),
        "ammo": ammo_to_dict(ammo, include_rifle=False),
        "dope_data": [_card_row(log) for log in logs],
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
