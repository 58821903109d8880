from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from sqlalchemy.orm import Query

from config import settings
from services.errors import ValidationError


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    limit: int = 10

    @classmethod
    def from_params(cls, page: Optional[int] = None, limit: Optional[int] = None) -> "Pagination":
        page = 1 if page is None else int(page)
        limit = settings.PAGINATION_DEFAULT_LIMIT if limit is None else int(limit)
        if page < 1:
            raise ValidationError.for_field("page", "Page must be greater than 0", page)
        if limit < 1 or limit > settings.PAGINATION_MAX_LIMIT:
            raise ValidationError.for_field(
                "limit", f"Limit must be between 1 and {settings.PAGINATION_MAX_LIMIT}", limit
            )
        return cls(page=page, limit=limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page:
    items: list[Any]
    page: int
    limit: int
    total: int
    total_pages: int = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = math.ceil(self.total / self.limit) if self.limit else 0

    def pagination_dict(self) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
        }


def paginate(query: Query, pagination: Pagination, *order_by) -> Page:
    total = query.order_by(None).count()
    rows = query.order_by(*order_by).offset(pagination.offset).limit(pagination.limit).all()
    return Page(items=rows, page=pagination.page, limit=pagination.limit, total=total)


def like_pattern(text: str) -> str:
    escaped = text.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def require_choice(field_name: str, value: Optional[str], choices) -> Optional[str]:
    if value is None or value == "":
        return None
    if value not in choices:
        raise ValidationError.for_field(field_name, f"{field_name} must be one of {sorted(choices)}", value)
    return value


def parse_bound(field_name: str, value, *, end_of_day: bool = False) -> Optional[datetime]:
    """Accept datetimes, dates or ISO-8601 strings for timestamp filters."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min)
    if isinstance(value, str):
        raw = value.strip()
        try:
            if len(raw) == 10:
                day = date.fromisoformat(raw)
                return datetime.combine(day, time.max if end_of_day else time.min)
            return _naive_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))
        except ValueError:
            pass
    raise ValidationError.for_field(field_name, f"{field_name} must be an ISO 8601 date", value)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def get_owned(db, model, user_id: int, record_id):
    """Fetch ``model`` by id only when it belongs to ``user_id``."""
    if record_id is None:
        return None
    return db.query(model).filter(model.id == record_id, model.user_id == user_id).first()


def row_values(row, fields) -> dict[str, Any]:
    return {name: getattr(row, name) for name in fields}
