from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.responses import page_response
from auth.utils import get_current_user_id
from db.database import get_db
from services.dope_card_service import get_dope_card
from services.dope_log_service import (
    create_dope_log,
    delete_dope_log,
    get_dope_log,
    list_dope_logs,
    update_dope_log,
)
from services.query import Pagination
from services.serializers import dope_log_to_dict

router = APIRouter(prefix="/dope", tags=["dope"])


class DopeLogCreate(BaseModel):
    rifle_id: int
    ammo_id: int
    environment_id: int
    distance: float
    distance_unit: str  # yards | meters
    elevation_correction: float
    windage_correction: float
    correction_unit: str  # MIL | MOA
    target_type: str  # steel | paper | vital_zone | other
    group_size: Optional[float] = None
    hit_count: Optional[int] = None
    shot_count: Optional[int] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


class DopeLogUpdate(BaseModel):
    rifle_id: Optional[int] = None
    ammo_id: Optional[int] = None
    environment_id: Optional[int] = None
    distance: Optional[float] = None
    distance_unit: Optional[str] = None
    elevation_correction: Optional[float] = None
    windage_correction: Optional[float] = None
    correction_unit: Optional[str] = None
    target_type: Optional[str] = None
    group_size: Optional[float] = None
    hit_count: Optional[int] = None
    shot_count: Optional[int] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@router.get("")
def list_dope(
    page: int = 1,
    limit: Optional[int] = None,
    rifle_id: Optional[int] = None,
    ammo_id: Optional[int] = None,
    distance_min: Optional[float] = None,
    distance_max: Optional[float] = None,
    target_type: Optional[str] = None,
    sort: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = list_dope_logs(
        db,
        user_id,
        Pagination.from_params(page, limit),
        rifle_id=rifle_id,
        ammo_id=ammo_id,
        distance_min=distance_min,
        distance_max=distance_max,
        target_type=target_type,
        sort=sort,
    )
    return page_response(result, dope_log_to_dict)


@router.get("/card")
def get_card(
    rifle_id: int,
    ammo_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return get_dope_card(db, user_id, rifle_id, ammo_id)


@router.post("", status_code=201)
def create_dope(
    req: DopeLogCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    log = create_dope_log(db, user_id, req.model_dump(exclude={"timestamp"}), timestamp=req.timestamp)
    db.commit()
    db.refresh(log)
    return dope_log_to_dict(log)


@router.get("/{log_id}")
def get_dope(
    log_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return dope_log_to_dict(get_dope_log(db, user_id, log_id))


@router.put("/{log_id}")
def update_dope(
    log_id: int,
    req: DopeLogUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    patch = req.model_dump(exclude_unset=True)
    timestamp = patch.pop("timestamp", None)
    log = update_dope_log(db, user_id, log_id, patch, timestamp=timestamp)
    db.commit()
    db.refresh(log)
    return dope_log_to_dict(log)


@router.delete("/{log_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_dope(
    log_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delete_dope_log(db, user_id, log_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
