from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, ValidationError, ValidationInfo, field_validator
from datetime import date as date_type, datetime
from decimal import Decimal
from uuid import UUID
from typing import List, Optional, Literal

from shared.models import EventStatus, UserRole

_http_url = TypeAdapter(HttpUrl)


def _label(info: ValidationInfo) -> str:
    return info.field_name.replace("_", " ")


def _required_text(value: Optional[str], info: ValidationInfo) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError(f"The {_label(info)} field is required.")
    return value


def _checked_url(value: Optional[str], info: ValidationInfo) -> Optional[str]:
    # Stored as submitted; HttpUrl would normalize it (trailing slash, punycode).
    if value is None:
        return value
    value = value.strip()
    if not value:
        return None
    try:
        _http_url.validate_python(value)
    except ValidationError:
        raise ValueError(f"The {_label(info)} field must be a valid URL.") from None
    return value


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    password_confirmation: str
    role: Literal["organizer", "public"] = "public"

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str, info: ValidationInfo) -> str:
        return _required_text(value, info)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("The email field must be a valid email address.")
        return value


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        return _required_text(value, info)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip().lower()
        if "@" not in value:
            raise ValueError("The email field must be a valid email address.")
        return value


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    created_at: datetime

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    message: str
    user: UserOut
    token: str
    expires_at: datetime


class TokenResponse(BaseModel):
    token: str
    expires_at: datetime


class UserResponse(BaseModel):
    user: UserOut
    message: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class VenueCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    capacity: Optional[int] = Field(None, ge=1)

    @field_validator("name", "address")
    @classmethod
    def text_not_blank(cls, value: str, info: ValidationInfo) -> str:
        return _required_text(value, info)


class VenueUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    address: Optional[str] = Field(None, min_length=1)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    capacity: Optional[int] = Field(None, ge=1)

    @field_validator("name", "address")
    @classmethod
    def text_not_blank(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        return _required_text(value, info)


class VenueOut(BaseModel):
    id: int
    name: str
    address: str
    latitude: float
    longitude: float
    capacity: Optional[int] = None
    maps_url: str

    class Config:
        from_attributes = True


def _with_hash(value: Optional[str]) -> Optional[str]:
    if value and not value.startswith("#"):
        value = "#" + value
    if value and len(value) > 7:
        raise ValueError("The color field must not be greater than 7 characters.")
    return value


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    color: str = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str, info: ValidationInfo) -> str:
        return _required_text(value, info)

    @field_validator("color")
    @classmethod
    def normalize_color(cls, value: str) -> str:
        return _with_hash(value)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    color: Optional[str] = Field(None, min_length=1)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        return _required_text(value, info)

    @field_validator("color")
    @classmethod
    def normalize_color(cls, value: Optional[str]) -> Optional[str]:
        return _with_hash(value)


class CategoryOut(BaseModel):
    id: int
    name: str
    color: str

    class Config:
        from_attributes = True


class OrganizerOut(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class EventCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    start_date_time: datetime
    end_date_time: datetime
    venue_id: int
    category_ids: List[int] = Field(..., min_length=1)
    ticket_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    is_free: Optional[bool] = None
    website: Optional[str] = Field(None, max_length=255)
    ticketing_link: Optional[str] = Field(None, max_length=255)
    image_url: Optional[str] = Field(None, max_length=255)

    @field_validator("name", "description")
    @classmethod
    def text_not_blank(cls, value: str, info: ValidationInfo) -> str:
        return _required_text(value, info)

    @field_validator("website", "ticketing_link", "image_url")
    @classmethod
    def valid_url(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        return _checked_url(value, info)


class EventUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    start_date_time: Optional[datetime] = None
    end_date_time: Optional[datetime] = None
    venue_id: Optional[int] = None
    category_ids: Optional[List[int]] = None
    ticket_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    is_free: Optional[bool] = None
    website: Optional[str] = Field(None, max_length=255)
    ticketing_link: Optional[str] = Field(None, max_length=255)
    image_url: Optional[str] = Field(None, max_length=255)
    status: Optional[EventStatus] = None

    @field_validator("name", "description")
    @classmethod
    def text_not_blank(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        return _required_text(value, info)

    @field_validator("website", "ticketing_link", "image_url")
    @classmethod
    def valid_url(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        return _checked_url(value, info)


class ApproveRequest(BaseModel):
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("The reason field is required.")
        return value


class EventOut(BaseModel):
    id: int
    name: str
    description: str
    start_date_time: datetime
    end_date_time: datetime
    venue_id: int
    organizer_id: int
    venue: VenueOut
    organizer: OrganizerOut
    categories: List[CategoryOut]
    ticket_price: Optional[Decimal] = None
    is_free: bool
    website: Optional[str] = None
    ticketing_link: Optional[str] = None
    image_url: Optional[str] = None
    status: EventStatus
    admin_notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class EventEnvelope(BaseModel):
    message: str
    event: EventOut


class PaginatedEvents(BaseModel):
    data: List[EventOut]
    current_page: int
    per_page: int
    last_page: int
    total: int
    from_: Optional[int] = Field(None, serialization_alias="from")
    to: Optional[int] = None


class EventFilters(BaseModel):
    search: Optional[str] = None
    categories: List[int] = Field(default_factory=list)
    venue: Optional[int] = None
    organizer: Optional[int] = None
    date: Optional[date_type] = None
    price_filter: Optional[Literal["free", "paid"]] = None
    status: Optional[EventStatus] = None
    sort_by: Literal["start_date_time", "name", "created_at"] = "start_date_time"
    sort_direction: Literal["asc", "desc"] = "asc"
    page: int = Field(1, ge=1)
    per_page: int = Field(12, ge=1)


class StatusChangeOut(BaseModel):
    message_id: UUID
    event_id: int
    from_status: Optional[str] = None
    to_status: str
    actor_id: Optional[int] = None
    notes: Optional[str] = None
    occurred_at: datetime

    class Config:
        from_attributes = True
