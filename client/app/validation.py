import re
from datetime import datetime, timezone
from typing import Optional

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
HEX_COLOR_RE = re.compile(r"^#?(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def parse_datetime(value) -> Optional[datetime]:
    """Parse an ISO timestamp into an aware datetime; naive values are taken as UTC."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def validate_event_data(event_data: dict, now: Optional[datetime] = None) -> Optional[str]:
    """Check an event payload before it is sent.

    Returns the first failure message, or None when the payload is valid.
    Normalizes the pricing fields in place: a missing `is_free` is derived
    from the price, and free events get a price of 0.
    """
    name = event_data.get("name") or ""
    if len(name.strip()) < 3:
        return "Event name must be at least 3 characters long"

    if event_data.get("is_free") is None:
        price = event_data.get("ticket_price")
        event_data["is_free"] = not price or price <= 0

    if not event_data["is_free"]:
        price = event_data.get("ticket_price")
        if price is None:
            return "Please specify a ticket price for paid events."
        if price <= 0:
            return "Ticket price must be greater than 0 for paid events."
    else:
        event_data["ticket_price"] = 0

    description = event_data.get("description") or ""
    if len(description.strip()) < 10:
        return "Event description must be at least 10 characters long"

    start = parse_datetime(event_data.get("start_date_time"))
    end = parse_datetime(event_data.get("end_date_time"))
    if start is None or end is None:
        return "Event start and end dates are required"

    if start <= (now or datetime.now(timezone.utc)):
        return "Event start date must be in the future"

    if end <= start:
        return "Event end date must be after start date"

    if not event_data.get("venue_id"):
        return "Venue is required"

    if not event_data.get("category_ids"):
        return "At least one category is required"

    return None


def validate_category_data(category_data: dict) -> Optional[str]:
    name = category_data.get("name") or ""
    if len(name.strip()) < 2:
        return "Category name must be at least 2 characters long"

    if not HEX_COLOR_RE.match(category_data.get("color") or ""):
        return "A valid hex color is required (e.g. #8B5CF6)"

    return None


def validate_venue_data(venue_data: dict) -> Optional[str]:
    name = venue_data.get("name") or ""
    if len(name.strip()) < 2:
        return "Venue name must be at least 2 characters long"

    address = venue_data.get("address") or ""
    if len(address.strip()) < 5:
        return "Venue address must be at least 5 characters long"

    latitude = venue_data.get("latitude")
    if latitude is None or not -90 <= latitude <= 90:
        return "Valid latitude is required (-90 to 90)"

    longitude = venue_data.get("longitude")
    if longitude is None or not -180 <= longitude <= 180:
        return "Valid longitude is required (-180 to 180)"

    capacity = venue_data.get("capacity")
    if capacity is not None and capacity < 1:
        return "Venue capacity must be a positive number"

    return None


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def is_strong_password(password: str) -> bool:
    return (
        any(char.isupper() for char in password)
        and any(char.islower() for char in password)
        and any(char.isdigit() for char in password)
    )


def validate_login(credentials: dict) -> Optional[str]:
    if not is_valid_email(credentials.get("email")):
        return "Valid email address is required"
    if not credentials.get("password"):
        return "Password is required"
    return None


def validate_registration(user_data: dict) -> Optional[str]:
    name = user_data.get("name") or ""
    if len(name.strip()) < 2:
        return "Name must be at least 2 characters long"

    if not is_valid_email(user_data.get("email")):
        return "Valid email address is required"

    password = user_data.get("password") or ""
    if len(password) < 8:
        return "Password must be at least 8 characters long"
    if len(password) > 128:
        return "Password must be less than 128 characters"

    confirmation = user_data.get("password_confirmation")
    if not confirmation:
        return "Password confirmation is required"
    if password != confirmation:
        return "Password confirmation does not match"

    if not is_strong_password(password):
        return "Password must contain at least one uppercase letter, one lowercase letter, and one number"

    return None


def validate_profile(profile_data: dict) -> Optional[str]:
    name = profile_data.get("name")
    if name is not None and len(name.strip()) < 2:
        return "Name must be at least 2 characters long"

    email = profile_data.get("email")
    if email is not None and not is_valid_email(email):
        return "Valid email address is required"

    return None
