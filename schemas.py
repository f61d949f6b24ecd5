from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from fields import (
    EMAIL_LEN, ID_MAX, ORDER_NAME_LEN, PERSON_NAME_LEN, DATE_FORMAT, TIME_RE,
    PRICE_PRECISION, PRICE_SCALE, OrderStatus, PaymentStatus,
)

RowId = Annotated[int, Field(ge=1, le=ID_MAX)]

def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v

class OrderFields(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., min_length=1, max_length=ORDER_NAME_LEN)
    cleaning_date: str
    start_time: Optional[str] = None
    status: OrderStatus = Field(OrderStatus.PENDING, validate_default=True)
    payment_status: PaymentStatus = Field(PaymentStatus.UNPAID, validate_default=True)
    notes: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=PRICE_PRECISION, decimal_places=PRICE_SCALE)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("cleaning_date")
    @classmethod
    def _check_date(cls, v: str) -> str:
        v = v.strip()
        try:
            parsed = datetime.strptime(v, DATE_FORMAT).date()
        except ValueError:
            raise ValueError("expected a calendar date YYYY-MM-DD")
        # strptime принимает '2024-6-1', храним только каноническую форму
        if parsed.isoformat() != v:
            raise ValueError("expected a calendar date YYYY-MM-DD")
        return v

    @field_validator("start_time", mode="before")
    @classmethod
    def _check_time(cls, v):
        v = _blank_to_none(v)
        if v is not None and not TIME_RE.match(str(v)):
            raise ValueError("expected a time HH:MM")
        return v

    @field_validator("notes", "price", mode="before")
    @classmethod
    def _optional(cls, v):
        return _blank_to_none(v)

class OrderIn(OrderFields):
    staff_ids: List[RowId] = Field(default_factory=list)

    def order_fields(self) -> dict:
        return self.model_dump(exclude={"staff_ids"}, mode="python")

class StaffIn(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=PERSON_NAME_LEN)
    last_name: str = Field(..., min_length=1, max_length=PERSON_NAME_LEN)

    @field_validator("first_name", "last_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

class Credentials(BaseModel):
    email: str = Field(..., min_length=3, max_length=EMAIL_LEN)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("invalid email")
        return v

def describe_errors(errors) -> str:
    """Собирает диагностику pydantic в одну строку ``field: msg; ...``."""
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Некорректные данные"
