import asyncio
import copy
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import BaseModel

from client.app.api import ApiClient
from client.app.config import ClientSettings
from client.app.credentials import CredentialProvider, InMemoryCredentialProvider
from client.app.models import ClientEvent, EventPage, ViewMode
from client.app.services import AuthService, CategoryService, EventService, VenueService
from client.app.validation import (
    parse_datetime, validate_category_data, validate_event_data, validate_login, validate_profile,
    validate_registration, validate_venue_data,
)

EVENT_STATUSES = ("draft", "pending", "approved", "cancelled", "rejected")


class ControllerResult(BaseModel):
    success: bool
    data: Any = None
    message: str


def ok(data: Any, message: str) -> ControllerResult:
    return ControllerResult(success=True, data=data, message=message)


def fail(message: str, data: Any = None) -> ControllerResult:
    return ControllerResult(success=False, data=data, message=message)


def error_message(error: Exception, fallback: str) -> str:
    return str(error) or fallback


class EventController:
    def __init__(self, event_service: EventService):
        self.event_service = event_service

    async def handle_event_listing(self, filters: Optional[Dict[str, Any]] = None, page: int = 1, per_page: int = 12):
        query = dict(filters or {}, page=page, per_page=per_page)
        try:
            response = await self.event_service.get_events(query)
            return ok(response, f"Found {response.total} events")
        except Exception as e:
            return fail(error_message(e, "Unknown error occurred"), EventPage(per_page=per_page))

    async def handle_event_detail(self, event_id: str):
        try:
            event = await self.event_service.get_event(event_id)
            return ok(event, "Event retrieved successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to load event"))

    async def handle_event_creation(self, event_data: Dict[str, Any], now: Optional[datetime] = None):
        payload = copy.deepcopy(event_data)
        try:
            problem = validate_event_data(payload, now=now)
            if problem:
                return fail(problem)

            message, event = await self.event_service.create_event(payload)
            return ok(event, message or "Event created successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to create event"))

    async def handle_event_update(self, event_id: str, event_data: Dict[str, Any]):
        try:
            message, event = await self.event_service.update_event(event_id, event_data)
            return ok(event, message or "Event updated successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to update event"))

    async def handle_event_deletion(self, event_id: str):
        try:
            message = await self.event_service.delete_event(event_id)
            return ok(None, message or "Event deleted successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to delete event"))

    async def handle_calendar_events(self, year: int, month: int):
        try:
            events = await self.event_service.get_calendar_events(year, month)
            return ok(events, "Calendar events retrieved successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to load calendar events"), [])

    async def handle_my_events(self, status: Optional[str] = None, page: int = 1):
        try:
            response = await self.event_service.get_my_events(status, page)
            return ok(response, f"Found {response.total} events")
        except Exception as e:
            return fail(error_message(e, "Failed to load your events"), EventPage())

    def format_events_for_view(self, events: List[ClientEvent], view: ViewMode):
        if view == "calendar":
            return group_events_by_date(events)
        if view == "map":
            return group_events_by_venue(events)
        return events


def group_events_by_date(events: Iterable[ClientEvent]) -> Dict[str, List[ClientEvent]]:
    grouped: Dict[str, List[ClientEvent]] = {}
    for event in events:
        start = parse_datetime(event.start_date_time)
        if start is None:
            continue
        day = start.astimezone(timezone.utc).date().isoformat()
        grouped.setdefault(day, []).append(event)
    return grouped


def group_events_by_venue(events: Iterable[ClientEvent]) -> Dict[str, List[ClientEvent]]:
    grouped: Dict[str, List[ClientEvent]] = {}
    for event in events:
        if event.venue is None:
            continue
        grouped.setdefault(event.venue.id, []).append(event)
    return grouped


class AdminController:
    def __init__(
            self,
            event_service: EventService,
            category_service: CategoryService,
            venue_service: VenueService,
    ):
        self.event_service = event_service
        self.category_service = category_service
        self.venue_service = venue_service

    async def handle_event_approval(self, event_id: str, approved: bool, notes: Optional[str] = None):
        try:
            if approved:
                message, event = await self.event_service.approve_event(event_id, notes)
            else:
                if not notes or not notes.strip():
                    return fail("A reason is required to reject an event")
                message, event = await self.event_service.reject_event(event_id, notes)
            return ok(event, message)
        except Exception as e:
            return fail(error_message(e, "Failed to update event status"))

    async def handle_batch_event_approval(self, event_ids: List[str], approved: bool, notes: Optional[str] = None):
        """Approve or reject every id independently.

        All calls run concurrently and are awaited to completion. Failures are
        counted, never rolled back.
        """
        results = await asyncio.gather(
            *(self.handle_event_approval(event_id, approved, notes) for event_id in event_ids),
            return_exceptions=True,
        )

        successful = sum(1 for result in results if isinstance(result, ControllerResult) and result.success)
        failed = len(results) - successful

        message = f"{successful} events processed successfully"
        if failed > 0:
            message += f", {failed} failed"

        return ControllerResult(
            success=failed == 0,
            data={"successful": successful, "failed": failed, "total": len(results)},
            message=message,
        )

    async def handle_pending_events(self):
        try:
            pending = await self._all_events({"status": "pending"})
            return ok(pending, f"Found {len(pending)} pending events")
        except Exception as e:
            return fail(error_message(e, "Failed to load pending events"), [])

    async def handle_event_analytics(self, now: Optional[datetime] = None):
        try:
            pages = await asyncio.gather(*(self._all_events({"status": status}) for status in EVENT_STATUSES))
            events = [event for page in pages for event in page]
            return ok(build_analytics(events, now), "Analytics generated successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to generate analytics"))

    async def _all_events(self, filters: Dict[str, Any]) -> List[ClientEvent]:
        events: List[ClientEvent] = []
        page = 1
        while True:
            response = await self.event_service.get_events(dict(filters, page=page, per_page=100))
            events.extend(response.data)
            if page >= response.last_page:
                return events
            page += 1

    async def handle_category_creation(self, category_data: Dict[str, Any]):
        try:
            problem = validate_category_data(category_data)
            if problem:
                return fail(problem)

            category = await self.category_service.create_category(category_data)
            return ok(category, "Category created successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to create category"))

    async def handle_category_update(self, category_id: str, category_data: Dict[str, Any]):
        try:
            category = await self.category_service.update_category(category_id, category_data)
            return ok(category, "Category updated successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to update category"))

    async def handle_category_deletion(self, category_id: str):
        try:
            message = await self.category_service.delete_category(category_id)
            return ok(None, message or "Category deleted successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to delete category"))

    async def handle_venue_creation(self, venue_data: Dict[str, Any]):
        try:
            problem = validate_venue_data(venue_data)
            if problem:
                return fail(problem)

            venue = await self.venue_service.create_venue(venue_data)
            return ok(venue, "Venue created successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to create venue"))

    async def handle_venue_update(self, venue_id: str, venue_data: Dict[str, Any]):
        try:
            venue = await self.venue_service.update_venue(venue_id, venue_data)
            return ok(venue, "Venue updated successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to update venue"))

    async def handle_venue_deletion(self, venue_id: str):
        try:
            message = await self.venue_service.delete_venue(venue_id)
            return ok(None, message or "Venue deleted successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to delete venue"))


def build_analytics(events: List[ClientEvent], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    statuses = Counter(event.status for event in events)

    def starts_after_now(event):
        start = parse_datetime(event.start_date_time)
        return start is not None and start > now

    def ended_before_now(event):
        end = parse_datetime(event.end_date_time)
        return end is not None and end < now

    return {
        "total_events": len(events),
        "upcoming_events": sum(1 for event in events if starts_after_now(event)),
        "past_events": sum(1 for event in events if ended_before_now(event)),
        "pending_events": statuses["pending"],
        "approved_events": statuses["approved"],
        "rejected_events": statuses["rejected"],
        "free_events": sum(1 for event in events if event.is_free),
        "paid_events": sum(1 for event in events if not event.is_free),
        "categories_stats": dict(Counter(category.name for event in events for category in event.categories)),
        "venue_stats": dict(Counter(event.venue.name for event in events if event.venue)),
    }


class AuthController:
    def __init__(self, auth_service: AuthService, credentials: CredentialProvider):
        self.auth_service = auth_service
        self.credentials = credentials

    def _remember(self, user, token: str):
        self.credentials.set_token(token)
        self.credentials.set_user(user.model_dump())

    async def handle_login(self, credentials: Dict[str, str]):
        try:
            problem = validate_login(credentials)
            if problem:
                return fail(problem)

            user, token, expires_at = await self.auth_service.login(credentials)
            self._remember(user, token)
            return ok({"user": user, "token": token, "expires_at": expires_at}, "Login successful")
        except Exception as e:
            return fail(error_message(e, "Login failed"))

    async def handle_registration(self, user_data: Dict[str, str]):
        try:
            problem = validate_registration(user_data)
            if problem:
                return fail(problem)

            user, token, expires_at = await self.auth_service.register(user_data)
            self._remember(user, token)
            return ok({"user": user, "token": token, "expires_at": expires_at}, "Registration successful")
        except Exception as e:
            return fail(error_message(e, "Registration failed"))

    async def handle_logout(self):
        try:
            message = await self.auth_service.logout()
            return ok(True, message or "Logged out successfully")
        except Exception as e:
            return fail(error_message(e, "Logout failed"))
        finally:
            self.credentials.clear()

    async def handle_get_current_user(self):
        try:
            user = await self.auth_service.get_current_user()
            self.credentials.set_user(user.model_dump())
            return ok(user, "User retrieved successfully")
        except Exception as e:
            return fail(error_message(e, "Failed to get current user"))

    async def handle_profile_update(self, profile_data: Dict[str, str]):
        try:
            problem = validate_profile(profile_data)
            if problem:
                return fail(problem)

            user = await self.auth_service.update_profile(profile_data)
            self.credentials.set_user(user.model_dump())
            return ok(user, "Profile updated successfully")
        except Exception as e:
            return fail(error_message(e, "Profile update failed"))

    async def handle_token_refresh(self):
        try:
            token, expires_at = await self.auth_service.refresh_token()
            self.credentials.set_token(token)
            return ok({"token": token, "expires_at": expires_at}, "Token refreshed successfully")
        except Exception as e:
            return fail(error_message(e, "Token refresh failed"))

    def is_authenticated(self) -> bool:
        return bool(self.credentials.get_token())

    def has_role(self, role: str) -> bool:
        user = self.credentials.get_user()
        return bool(user) and user.get("role") == role

    def can_perform_admin_actions(self) -> bool:
        return self.has_role("admin")

    def can_create_events(self) -> bool:
        return self.has_role("admin") or self.has_role("organizer")


@dataclass
class Controllers:
    api: ApiClient
    events: EventController
    admin: AdminController
    auth: AuthController


def build_controllers(
        settings: Optional[ClientSettings] = None,
        credentials: Optional[CredentialProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Controllers:
    """Wire the client once at startup: one API client shared by every service."""
    settings = settings or ClientSettings()
    credentials = credentials or InMemoryCredentialProvider()
    api = ApiClient(settings.API_URL, credentials, timeout=settings.TIMEOUT, transport=transport)

    event_service = EventService(api)
    return Controllers(
        api=api,
        events=EventController(event_service),
        admin=AdminController(event_service, CategoryService(api), VenueService(api)),
        auth=AuthController(AuthService(api), credentials),
    )
