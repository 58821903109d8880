from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.responses import page_response
from auth.utils import get_current_user_id
from db.database import get_db
from services.environment_service import (
    create_environment,
    current_environment,
    delete_environment,
    environment_averages,
    get_environment,
    list_environments,
    update_environment,
)
from services.query import Pagination
from services.serializers import environment_to_dict

router = APIRouter(prefix="/environment", tags=["environment"])


class EnvironmentCreate(BaseModel):
    temperature: float
    humidity: float
    pressure: float
    altitude: float
    wind_speed: float
    wind_direction: float
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    density_altitude: Optional[float] = None
    timestamp: Optional[datetime] = None


class EnvironmentUpdate(BaseModel):
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pressure: Optional[float] = None
    altitude: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    density_altitude: Optional[float] = None
    timestamp: Optional[datetime] = None


@router.get("")
def list_environment_snapshots(
    page: int = 1,
    limit: Optional[int] = None,
    temp_min: Optional[float] = None,
    temp_max: Optional[float] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = list_environments(
        db,
        user_id,
        Pagination.from_params(page, limit),
        temp_min=temp_min,
        temp_max=temp_max,
        date_from=date_from,
        date_to=date_to,
    )
    return page_response(result, environment_to_dict)


@router.get("/current")
def get_current_conditions(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return environment_to_dict(current_environment(db, user_id))


@router.get("/averages")
def get_average_conditions(
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return environment_averages(db, user_id, date_from, date_to)


@router.post("", status_code=201)
def create_environment_snapshot(
    req: EnvironmentCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    fields = req.model_dump(exclude={"timestamp"})
    snapshot = create_environment(db, user_id, fields, timestamp=req.timestamp)
    db.commit()
    db.refresh(snapshot)
    return environment_to_dict(snapshot)


@router.get("/{environment_id}")
def get_environment_snapshot(
    environment_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return environment_to_dict(get_environment(db, user_id, environment_id))


@router.put("/{environment_id}")
def update_environment_snapshot(
    environment_id: int,
    req: EnvironmentUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    patch = req.model_dump(exclude_unset=True)
    timestamp = patch.pop("timestamp", None)
    snapshot = update_environment(db, user_id, environment_id, patch, timestamp=timestamp)
    db.commit()
    db.refresh(snapshot)
    return environment_to_dict(snapshot)


@router.delete("/{environment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_environment_snapshot(
    environment_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delete_environment(db, user_id, environment_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
