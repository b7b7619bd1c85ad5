import logging
from typing import Any, Dict, List, Optional, Tuple

from client.app.api import ApiClient
from client.app.models import ClientEvent, ClientUser, EventPage
from client.app.normalize import normalize_event, normalize_page, normalize_user

logger = logging.getLogger(__name__)


def build_query(filters: Dict[str, Any]) -> List[Tuple[str, str]]:
    """Encode listing filters; list values become repeated `key[]` parameters."""
    params = []
    for key, value in filters.items():
        if value is None or value == "":
            continue
        if isinstance(value, (list, tuple, set)):
            params.extend((f"{key}[]", str(item)) for item in value)
        elif isinstance(value, bool):
            params.append((key, "true" if value else "false"))
        else:
            params.append((key, str(value)))
    return params


class EventService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def get_events(self, filters: Optional[Dict[str, Any]] = None) -> EventPage:
        try:
            data = await self.api.get("/events", params=build_query(filters or {}))
        except Exception as e:
            logger.error(f"Failed to fetch events: {e}")
            raise
        return normalize_page(data)

    async def get_event(self, event_id: str) -> ClientEvent:
        try:
            data = await self.api.get(f"/events/{event_id}")
        except Exception as e:
            logger.error(f"Failed to fetch event {event_id}: {e}")
            raise
        return normalize_event(data)

    async def create_event(self, event_data: Dict[str, Any]) -> Tuple[str, ClientEvent]:
        try:
            data = await self.api.post("/events", json=event_data)
        except Exception as e:
            logger.error(f"Failed to create event: {e}")
            raise
        return data["message"], normalize_event(data["event"])

    async def update_event(self, event_id: str, event_data: Dict[str, Any]) -> Tuple[str, ClientEvent]:
        try:
            data = await self.api.put(f"/events/{event_id}", json=event_data)
        except Exception as e:
            logger.error(f"Failed to update event {event_id}: {e}")
            raise
        return data["message"], normalize_event(data["event"])

    async def delete_event(self, event_id: str) -> str:
        try:
            data = await self.api.delete(f"/events/{event_id}")
        except Exception as e:
            logger.error(f"Failed to delete event {event_id}: {e}")
            raise
        return data["message"]

    async def get_calendar_events(self, year: int, month: int) -> List[ClientEvent]:
        try:
            data = await self.api.get(f"/events/calendar/{year}/{month}")
        except Exception as e:
            logger.error(f"Failed to fetch calendar events for {year}-{month}: {e}")
            raise
        return [normalize_event(event) for event in data]

    async def get_my_events(self, status: Optional[str] = None, page: int = 1) -> EventPage:
        try:
            data = await self.api.get("/my-events", params=build_query({"status": status, "page": page}))
        except Exception as e:
            logger.error(f"Failed to fetch my events: {e}")
            raise
        return normalize_page(data)

    async def approve_event(self, event_id: str, notes: Optional[str] = None) -> Tuple[str, ClientEvent]:
        try:
            data = await self.api.post(f"/events/{event_id}/approve", json={"notes": notes} if notes else None)
        except Exception as e:
            logger.error(f"Failed to approve event {event_id}: {e}")
            raise
        return data["message"], normalize_event(data["event"])

    async def reject_event(self, event_id: str, reason: str) -> Tuple[str, ClientEvent]:
        try:
            data = await self.api.post(f"/events/{event_id}/reject", json={"reason": reason})
        except Exception as e:
            logger.error(f"Failed to reject event {event_id}: {e}")
            raise
        return data["message"], normalize_event(data["event"])

    async def get_event_history(self, event_id: str) -> List[dict]:
        try:
            return await self.api.get(f"/events/{event_id}/history")
        except Exception as e:
            logger.error(f"Failed to fetch history of event {event_id}: {e}")
            raise


class CategoryService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def get_categories(self) -> List[dict]:
        return await self.api.get("/categories")

    async def get_category(self, category_id: str) -> dict:
        return await self.api.get(f"/categories/{category_id}")

    async def create_category(self, category_data: Dict[str, Any]) -> dict:
        return await self.api.post("/categories", json=category_data)

    async def update_category(self, category_id: str, category_data: Dict[str, Any]) -> dict:
        return await self.api.put(f"/categories/{category_id}", json=category_data)

    async def delete_category(self, category_id: str) -> str:
        data = await self.api.delete(f"/categories/{category_id}")
        return data["message"]


class VenueService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def get_venues(self) -> List[dict]:
        return await self.api.get("/venues")

    async def get_venue(self, venue_id: str) -> dict:
        return await self.api.get(f"/venues/{venue_id}")

    async def create_venue(self, venue_data: Dict[str, Any]) -> dict:
        return await self.api.post("/venues", json=venue_data)

    async def update_venue(self, venue_id: str, venue_data: Dict[str, Any]) -> dict:
        return await self.api.put(f"/venues/{venue_id}", json=venue_data)

    async def delete_venue(self, venue_id: str) -> str:
        data = await self.api.delete(f"/venues/{venue_id}")
        return data["message"]


class AuthService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def login(self, credentials: Dict[str, str]) -> Tuple[ClientUser, str, str]:
        data = await self.api.post("/login", json=credentials)
        return normalize_user(data["user"]), data["token"], data["expires_at"]

    async def register(self, user_data: Dict[str, str]) -> Tuple[ClientUser, str, str]:
        data = await self.api.post("/register", json=user_data)
        return normalize_user(data["user"]), data["token"], data["expires_at"]

    async def logout(self) -> str:
        data = await self.api.post("/logout")
        return data["message"]

    async def get_current_user(self) -> ClientUser:
        data = await self.api.get("/user")
        return normalize_user(data["user"])

    async def update_profile(self, profile_data: Dict[str, str]) -> ClientUser:
        data = await self.api.put("/profile", json=profile_data)
        return normalize_user(data["user"])

    async def refresh_token(self) -> Tuple[str, str]:
        data = await self.api.post("/refresh")
        return data["token"], data["expires_at"]
