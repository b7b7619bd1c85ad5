from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EventStatus = Literal["draft", "pending", "approved", "cancelled", "rejected"]
Role = Literal["admin", "organizer", "public"]
ViewMode = Literal["list", "calendar", "map"]


class ClientModel(BaseModel):
    """Snake_case attributes, camelCase when dumped with `by_alias=True`."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ClientVenue(ClientModel):
    id: str
    name: str
    address: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    capacity: Optional[int] = None


class ClientCategory(ClientModel):
    id: str
    name: str
    color: str = ""


class ClientOrganizer(ClientModel):
    id: str
    name: str
    contact_email: str = ""


class ClientEvent(ClientModel):
    id: str
    name: str
    description: str = ""
    start_date_time: str = ""
    end_date_time: str = ""
    venue: Optional[ClientVenue] = None
    organizer: Optional[ClientOrganizer] = None
    categories: List[ClientCategory] = Field(default_factory=list)
    ticket_price: Optional[float] = None
    is_free: bool = False
    website: Optional[str] = None
    ticketing_link: Optional[str] = None
    image_url: Optional[str] = None
    status: EventStatus = "pending"
    admin_notes: Optional[str] = None
    approved_at: Optional[str] = None
    rejected_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    raw_event: Optional[Dict[str, Any]] = Field(None, exclude=True)


class ClientUser(ClientModel):
    id: str
    name: str
    email: str
    role: Role = "public"
    verified: bool = True
    created_at: str = ""


class EventPage(ClientModel):
    data: List[ClientEvent] = Field(default_factory=list)
    total: int = 0
    current_page: int = 1
    per_page: int = 12
    last_page: int = 1
    from_: Optional[int] = Field(None, alias="from")
    to: Optional[int] = None
