"""Translation from the API wire format to the client's canonical models.

Upstream event payloads are not always consistent: ids arrive as numbers or
strings, `ticket_price` as a decimal string, a number or null, and `is_free`
as a bool, an int or a string. Everything here is a pure function so the
resolution rules can be tested without a server.
"""
import copy
import math
from typing import Any, Optional

from client.app.models import (
    ClientCategory, ClientEvent, ClientOrganizer, ClientUser, ClientVenue, EventPage,
)

_STRING_FLAGS = {"1": True, "true": True, "0": False, "false": False}


def _as_id(value: Any) -> str:
    return str(value) if value is not None else ""


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def coerce_flag(value: Any) -> Optional[bool]:
    """Read an explicit boolean flag, or None when the payload does not carry one."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return {1: True, 0: False}.get(value)
    if isinstance(value, str):
        return _STRING_FLAGS.get(value.strip().lower())
    return None


def resolve_ticket_price(raw_price: Any) -> Optional[float]:
    return _as_float(raw_price)


def resolve_is_free(is_free: Any, ticket_price: Any, name: Optional[str]) -> bool:
    """Decide whether an event is free.

    Priority: the explicit flag, then the price (free when it equals zero),
    then "free" appearing in the event name, then not free.
    """
    flag = coerce_flag(is_free)
    if flag is not None:
        return flag

    price = resolve_ticket_price(ticket_price)
    if price is not None:
        return price == 0

    if name and "free" in name.lower():
        return True

    return False


def price_label(event: ClientEvent) -> str:
    if event.ticket_price is not None and event.ticket_price > 0:
        return f"${event.ticket_price:.2f}"
    if event.is_free or event.ticket_price == 0:
        return "Free"
    if event.name and "free" in event.name.lower():
        return "Free"
    return "Contact for price"


def normalize_venue(data: Optional[dict]) -> Optional[ClientVenue]:
    if not data:
        return None
    return ClientVenue(
        id=_as_id(data.get("id")),
        name=data.get("name") or "",
        address=data.get("address") or "",
        latitude=_as_float(data.get("latitude")) or 0.0,
        longitude=_as_float(data.get("longitude")) or 0.0,
        capacity=data.get("capacity"),
    )


def normalize_category(data: dict) -> ClientCategory:
    return ClientCategory(
        id=_as_id(data.get("id")),
        name=data.get("name") or "",
        color=data.get("color") or "",
    )


def normalize_organizer(data: Optional[dict]) -> Optional[ClientOrganizer]:
    if not data:
        return None
    return ClientOrganizer(
        id=_as_id(data.get("id")),
        name=data.get("name") or "",
        contact_email=data.get("email") or data.get("contactEmail") or "",
    )


def normalize_event(data: dict) -> ClientEvent:
    ticket_price = data.get("ticket_price", data.get("ticketPrice"))
    is_free = data.get("is_free", data.get("isFree"))

    return ClientEvent(
        id=_as_id(data.get("id")),
        name=data.get("name") or "",
        description=data.get("description") or "",
        start_date_time=data.get("start_date_time") or data.get("startDateTime") or "",
        end_date_time=data.get("end_date_time") or data.get("endDateTime") or "",
        venue=normalize_venue(data.get("venue")),
        organizer=normalize_organizer(data.get("organizer")),
        categories=[normalize_category(category) for category in data.get("categories") or []],
        ticket_price=resolve_ticket_price(ticket_price),
        is_free=resolve_is_free(is_free, ticket_price, data.get("name")),
        website=data.get("website"),
        ticketing_link=data.get("ticketing_link"),
        image_url=data.get("image_url"),
        status=data.get("status") or "pending",
        admin_notes=data.get("admin_notes"),
        approved_at=data.get("approved_at"),
        rejected_at=data.get("rejected_at"),
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
        raw_event=copy.deepcopy(data),
    )


def normalize_page(data: dict) -> EventPage:
    return EventPage(
        data=[normalize_event(event) for event in data.get("data") or []],
        total=data.get("total", 0),
        current_page=data.get("current_page", 1),
        per_page=data.get("per_page", 12),
        last_page=data.get("last_page", 1),
        from_=data.get("from"),
        to=data.get("to"),
    )


def normalize_user(data: dict) -> ClientUser:
    return ClientUser(
        id=_as_id(data.get("id")),
        name=data.get("name") or "",
        email=data.get("email") or "",
        role=data.get("role") or "public",
        created_at=data.get("created_at") or "",
    )
