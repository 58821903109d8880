from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.responses import page_response
from auth.utils import get_current_user_id
from db.database import get_db
from services.query import Pagination
from services.rifle_service import (
    create_rifle,
    delete_rifle,
    get_rifle,
    list_rifles,
    rifle_stats,
    update_rifle,
)
from services.serializers import rifle_to_dict

router = APIRouter(prefix="/rifles", tags=["rifles"])


class RifleCreate(BaseModel):
    name: str
    caliber: str
    barrel_length: float
    twist_rate: str
    zero_distance: float
    optic_manufacturer: str
    optic_model: str
    reticle_type: str
    click_value_type: str  # MIL | MOA
    click_value: float
    scope_height: float
    notes: Optional[str] = None


class RifleUpdate(BaseModel):
    name: Optional[str] = None
    caliber: Optional[str] = None
    barrel_length: Optional[float] = None
    twist_rate: Optional[str] = None
    zero_distance: Optional[float] = None
    optic_manufacturer: Optional[str] = None
    optic_model: Optional[str] = None
    reticle_type: Optional[str] = None
    click_value_type: Optional[str] = None
    click_value: Optional[float] = None
    scope_height: Optional[float] = None
    notes: Optional[str] = None


@router.get("")
def list_rifle_profiles(
    page: int = 1,
    limit: Optional[int] = None,
    caliber: Optional[str] = None,
    search: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = list_rifles(db, user_id, Pagination.from_params(page, limit), caliber=caliber, search=search)
    return page_response(result, rifle_to_dict)


@router.post("", status_code=201)
def create_rifle_profile(
    req: RifleCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    rifle = create_rifle(db, user_id, req.model_dump())
    db.commit()
    db.refresh(rifle)
    return rifle_to_dict(rifle)


@router.get("/{rifle_id}")
def get_rifle_profile(
    rifle_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return rifle_to_dict(get_rifle(db, user_id, rifle_id))


@router.get("/{rifle_id}/stats")
def get_rifle_stats(
    rifle_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    rifle = get_rifle(db, user_id, rifle_id)
    return {"rifle": rifle_to_dict(rifle), "statistics": rifle_stats(db, user_id, rifle_id)}


@router.put("/{rifle_id}")
def update_rifle_profile(
    rifle_id: int,
    req: RifleUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    rifle = update_rifle(db, user_id, rifle_id, req.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(rifle)
    return rifle_to_dict(rifle)


@router.delete("/{rifle_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rifle_profile(
    rifle_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delete_rifle(db, user_id, rifle_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
