from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.responses import page_response
from auth.utils import get_current_user_id
from db.database import get_db
from services.ammo_service import ammo_stats, create_ammo, delete_ammo, get_ammo, list_ammo, update_ammo
from services.query import Pagination
from services.serializers import ammo_to_dict

router = APIRouter(prefix="/ammo", tags=["ammo"])


class AmmoCreate(BaseModel):
    rifle_id: int
    name: str
    manufacturer: str
    bullet_weight: float
    bullet_type: str
    ballistic_coefficient_g1: float
    ballistic_coefficient_g7: float
    muzzle_velocity: float
    powder_type: Optional[str] = None
    powder_weight: Optional[float] = None
    lot_number: Optional[str] = None
    notes: Optional[str] = None


class AmmoUpdate(BaseModel):
    rifle_id: Optional[int] = None
    name: Optional[str] = None
    manufacturer: Optional[str] = None
    bullet_weight: Optional[float] = None
    bullet_type: Optional[str] = None
    ballistic_coefficient_g1: Optional[float] = None
    ballistic_coefficient_g7: Optional[float] = None
    muzzle_velocity: Optional[float] = None
    powder_type: Optional[str] = None
    powder_weight: Optional[float] = None
    lot_number: Optional[str] = None
    notes: Optional[str] = None


@router.get("")
def list_ammo_profiles(
    page: int = 1,
    limit: Optional[int] = None,
    rifle_id: Optional[int] = None,
    manufacturer: Optional[str] = None,
    search: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = list_ammo(
        db,
        user_id,
        Pagination.from_params(page, limit),
        rifle_id=rifle_id,
        manufacturer=manufacturer,
        search=search,
    )
    return page_response(result, ammo_to_dict)


@router.post("", status_code=201)
def create_ammo_profile(
    req: AmmoCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    ammo = create_ammo(db, user_id, req.model_dump())
    db.commit()
    db.refresh(ammo)
    return ammo_to_dict(ammo)


@router.get("/{ammo_id}")
def get_ammo_profile(
    ammo_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ammo_to_dict(get_ammo(db, user_id, ammo_id))


@router.get("/{ammo_id}/stats")
def get_ammo_stats(
    ammo_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    ammo = get_ammo(db, user_id, ammo_id)
    return {"ammo": ammo_to_dict(ammo), "statistics": ammo_stats(db, user_id, ammo_id)}


@router.put("/{ammo_id}")
def update_ammo_profile(
    ammo_id: int,
    req: AmmoUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    ammo = update_ammo(db, user_id, ammo_id, req.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(ammo)
    return ammo_to_dict(ammo)


@router.delete("/{ammo_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_ammo_profile(
    ammo_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delete_ammo(db, user_id, ammo_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
