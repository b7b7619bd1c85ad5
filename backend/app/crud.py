import logging
import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, selectinload
from fastapi import HTTPException, status

from shared.config import settings
from shared.models import (
    Category, Event, EventStatus, EventStatusChange, User, UserRole, Venue, utcnow,
)
from backend.app import schemas
from backend.app.auth import hash_password, issue_token, verify_password

logger = logging.getLogger(__name__)

# Status changes an owning organizer may make through the generic update endpoint.
# Admins may set any status.
ORGANIZER_TRANSITIONS = {
    (EventStatus.DRAFT, EventStatus.PENDING),
    (EventStatus.APPROVED, EventStatus.CANCELLED),
}

REQUIRED_EVENT_FIELDS = ("name", "description", "start_date_time", "end_date_time", "venue_id")

SORT_COLUMNS = {
    "start_date_time": Event.start_date_time,
    "name": Event.name,
    "created_at": Event.created_at,
}


def validation_error(field: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"message": message, "errors": {field: [message]}},
    )


def not_found(resource: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource} not found")


def forbidden(message: str = "Unauthorized") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise


# ─── users ─────────────────────────────────────────────────────────────

def register_user(db: Session, request: schemas.RegisterRequest) -> Tuple[User, str, datetime]:
    if request.password != request.password_confirmation:
        raise validation_error("password", "The password field confirmation does not match.")

    if db.query(User).filter(User.email == request.email).first():
        raise validation_error("email", "The email has already been taken.")

    user = User(
        name=request.name,
        email=request.email,
        password_hash=hash_password(request.password),
        role=UserRole(request.role),
    )
    db.add(user)
    _commit(db)
    db.refresh(user)

    token, expires_at = issue_token(db, user)
    return user, token, expires_at


def authenticate(db: Session, request: schemas.LoginRequest) -> Tuple[User, str, datetime]:
    user = db.query(User).filter(User.email == request.email).first()
    if user is None or not verify_password(request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    token, expires_at = issue_token(db, user)
    return user, token, expires_at


def update_profile(db: Session, user: User, request: schemas.ProfileUpdate) -> User:
    if request.email and request.email != user.email:
        taken = db.query(User).filter(User.email == request.email, User.id != user.id).first()
        if taken:
            raise validation_error("email", "The email has already been taken.")
        user.email = request.email

    if request.name:
        user.name = request.name

    _commit(db)
    db.refresh(user)
    return user


# ─── venues & categories ───────────────────────────────────────────────

def list_venues(db: Session) -> List[Venue]:
    return db.query(Venue).order_by(Venue.id).all()


def get_venue(db: Session, venue_id: int) -> Venue:
    venue = db.get(Venue, venue_id)
    if venue is None:
        raise not_found("Venue")
    return venue


def create_venue(db: Session, request: schemas.VenueCreate) -> Venue:
    venue = Venue(**request.model_dump())
    db.add(venue)
    _commit(db)
    db.refresh(venue)
    return venue


def update_venue(db: Session, venue: Venue, request: schemas.VenueUpdate) -> Venue:
    _apply_partial(venue, request.model_dump(exclude_unset=True), required=("name", "address", "latitude", "longitude"))
    _commit(db)
    db.refresh(venue)
    return venue


def list_categories(db: Session) -> List[Category]:
    return db.query(Category).order_by(Category.name).all()


def get_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if category is None:
        raise not_found("Category")
    return category


def create_category(db: Session, request: schemas.CategoryCreate) -> Category:
    category = Category(**request.model_dump())
    db.add(category)
    _commit(db)
    db.refresh(category)
    return category


def update_category(db: Session, category: Category, request: schemas.CategoryUpdate) -> Category:
    _apply_partial(category, request.model_dump(exclude_unset=True), required=("name", "color"))
    _commit(db)
    db.refresh(category)
    return category


def delete_record(db: Session, record) -> None:
    db.delete(record)
    _commit(db)


def _apply_partial(record, changes: dict, required: Iterable[str]) -> None:
    for field in required:
        if field in changes and changes[field] is None:
            raise validation_error(field, f"The {field} field is required.")
    for field, value in changes.items():
        setattr(record, field, value)


# ─── events: helpers ───────────────────────────────────────────────────

def _event_query(db: Session) -> Query:
    return db.query(Event).options(
        selectinload(Event.venue),
        selectinload(Event.organizer),
        selectinload(Event.categories),
    )


def get_event(db: Session, event_id: int) -> Event:
    event = _event_query(db).filter(Event.id == event_id).first()
    if event is None:
        raise not_found("Event")
    return event


def can_view(event: Event, viewer: Optional[User]) -> bool:
    if event.status == EventStatus.APPROVED:
        return True
    if viewer is None:
        return False
    return viewer.can_create_events or event.organizer_id == viewer.id


def can_modify(event: Event, user: User) -> bool:
    return user.is_admin or event.organizer_id == user.id


def get_visible_event(db: Session, event_id: int, viewer: Optional[User]) -> Event:
    event = get_event(db, event_id)
    if not can_view(event, viewer):
        raise not_found("Event")
    return event


def _ensure_venue(db: Session, venue_id: int) -> None:
    if db.get(Venue, venue_id) is None:
        raise validation_error("venue_id", "The selected venue id is invalid.")


def _load_categories(db: Session, category_ids: List[int]) -> List[Category]:
    unique_ids = set(category_ids)
    if not unique_ids:
        raise validation_error("category_ids", "At least one category is required.")
    categories = db.query(Category).filter(Category.id.in_(unique_ids)).all()
    if len(categories) != len(unique_ids):
        raise validation_error("category_ids", "The selected category ids are invalid.")
    return categories


def _check_schedule(start: datetime, end: datetime) -> None:
    if end <= start:
        raise validation_error(
            "end_date_time",
            "The end date time field must be a date after start date time.",
        )


def resolve_pricing(is_free: Optional[bool], ticket_price: Optional[Decimal]) -> Tuple[bool, Optional[Decimal]]:
    """Return the (is_free, ticket_price) pair to persist.

    When the flag is omitted the event is free if it has no price or a zero
    price. Free events never store a price; paid events need a positive one.
    """
    if is_free is None:
        is_free = not ticket_price
    if is_free:
        return True, None
    if ticket_price is None:
        raise validation_error("ticket_price", "Please specify a ticket price for paid events.")
    if ticket_price <= 0:
        raise validation_error("ticket_price", "Ticket price must be greater than 0 for paid events.")
    return False, ticket_price


def _paginate(query: Query, page: int, per_page: int) -> dict:
    total = query.order_by(None).count()
    last_page = max(1, math.ceil(total / per_page))
    offset = (page - 1) * per_page
    items = query.offset(offset).limit(per_page).all()

    return {
        "data": items,
        "current_page": page,
        "per_page": per_page,
        "last_page": last_page,
        "total": total,
        "from_": offset + 1 if items else None,
        "to": offset + len(items) if items else None,
    }


# ─── events: listing ───────────────────────────────────────────────────

def list_events(db: Session, filters: schemas.EventFilters, viewer: Optional[User] = None) -> dict:
    query = _event_query(db)

    if viewer is not None and viewer.is_admin and filters.status is not None:
        query = query.filter(Event.status == filters.status)
    else:
        query = query.filter(Event.status == EventStatus.APPROVED)

    if filters.search:
        pattern = f"%{filters.search}%"
        query = query.filter(or_(Event.name.ilike(pattern), Event.description.ilike(pattern)))

    if filters.categories:
        query = query.filter(Event.categories.any(Category.id.in_(filters.categories)))

    if filters.venue is not None:
        query = query.filter(Event.venue_id == filters.venue)

    if filters.organizer is not None:
        query = query.filter(Event.organizer_id == filters.organizer)

    if filters.date is not None:
        day_start = datetime.combine(filters.date, datetime.min.time())
        query = query.filter(
            Event.start_date_time >= day_start,
            Event.start_date_time < day_start + timedelta(days=1),
        )

    if filters.price_filter == "free":
        query = query.filter(Event.is_free.is_(True))
    elif filters.price_filter == "paid":
        query = query.filter(Event.is_free.is_(False))

    column = SORT_COLUMNS[filters.sort_by]
    ordering = column.desc() if filters.sort_direction == "desc" else column.asc()
    query = query.order_by(ordering, Event.id.asc())

    per_page = min(filters.per_page, settings.MAX_PER_PAGE)
    return _paginate(query, filters.page, per_page)


def calendar_events(db: Session, year: int, month: int) -> List[Event]:
    month_start = datetime(year, month, 1)
    if month == 12:
        next_month = datetime(year + 1, 1, 1)
    else:
        next_month = datetime(year, month + 1, 1)

    return _event_query(db).filter(
        Event.status == EventStatus.APPROVED,
        Event.start_date_time >= month_start,
        Event.start_date_time < next_month,
    ).order_by(
        Event.start_date_time, Event.id
    ).all()


def my_events(db: Session, user: User, event_status: Optional[EventStatus], page: int) -> dict:
    query = _event_query(db).filter(Event.organizer_id == user.id)
    if event_status is not None:
        query = query.filter(Event.status == event_status)
    query = query.order_by(Event.created_at.desc(), Event.id.desc())
    return _paginate(query, page, settings.DEFAULT_PER_PAGE)


# ─── events: writes ────────────────────────────────────────────────────

def create_event(db: Session, request: schemas.EventCreate, organizer: User) -> Event:
    start = _naive_utc(request.start_date_time)
    end = _naive_utc(request.end_date_time)
    _check_schedule(start, end)
    _ensure_venue(db, request.venue_id)
    categories = _load_categories(db, request.category_ids)
    is_free, ticket_price = resolve_pricing(request.is_free, request.ticket_price)

    event = Event(
        name=request.name,
        description=request.description,
        start_date_time=start,
        end_date_time=end,
        venue_id=request.venue_id,
        organizer_id=organizer.id,
        ticket_price=ticket_price,
        is_free=is_free,
        website=request.website,
        ticketing_link=request.ticketing_link,
        image_url=request.image_url,
        status=EventStatus.PENDING,
    )
    event.categories = categories
    db.add(event)
    _commit(db)

    logger.info(f"Event {event.id} submitted for approval by user {organizer.id}")
    return get_event(db, event.id)


def _check_status_change(event: Event, new_status: EventStatus, user: User) -> None:
    if user.is_admin or new_status == event.status:
        return
    if (event.status, new_status) not in ORGANIZER_TRANSITIONS:
        raise validation_error(
            "status",
            f"Cannot change event status from {event.status.value} to {new_status.value}.",
        )


def _stamp_status(event: Event, new_status: EventStatus) -> None:
    event.status = new_status
    if new_status == EventStatus.APPROVED:
        event.approved_at = utcnow()
        event.rejected_at = None
    elif new_status == EventStatus.REJECTED:
        event.rejected_at = utcnow()
        event.approved_at = None


def update_event(
        db: Session,
        event: Event,
        request: schemas.EventUpdate,
        user: User,
) -> Tuple[Event, EventStatus]:
    """Apply a partial update. Returns the event and its status before the update."""
    if not can_modify(event, user):
        raise forbidden("Unauthorized to update this event")

    previous_status = event.status
    changes = request.model_dump(exclude_unset=True)

    for field in REQUIRED_EVENT_FIELDS:
        if field in changes and changes[field] is None:
            raise validation_error(field, f"The {field.replace('_', ' ')} field is required.")

    start = _naive_utc(request.start_date_time) if "start_date_time" in changes else event.start_date_time
    end = _naive_utc(request.end_date_time) if "end_date_time" in changes else event.end_date_time
    if "start_date_time" in changes or "end_date_time" in changes:
        _check_schedule(start, end)

    if "venue_id" in changes:
        _ensure_venue(db, request.venue_id)

    categories = None
    if "category_ids" in changes:
        categories = _load_categories(db, request.category_ids or [])

    if "is_free" in changes or "ticket_price" in changes:
        price = request.ticket_price if "ticket_price" in changes else event.ticket_price
        is_free, price = resolve_pricing(changes.get("is_free"), price)
        event.is_free = is_free
        event.ticket_price = price

    new_status = changes.get("status")
    if new_status is not None:
        _check_status_change(event, new_status, user)

    for field in ("name", "description", "venue_id"):
        if field in changes:
            setattr(event, field, changes[field])
    event.start_date_time = start
    event.end_date_time = end
    for field in ("website", "ticketing_link", "image_url"):
        if field in changes:
            setattr(event, field, changes[field])

    if categories is not None:
        event.categories = categories

    if new_status is not None and new_status != event.status:
        _stamp_status(event, new_status)

    _commit(db)
    db.refresh(event)
    return get_event(db, event.id), previous_status


def delete_event(db: Session, event: Event, user: User) -> None:
    if not can_modify(event, user):
        raise forbidden("Unauthorized to delete this event")
    delete_record(db, event)


def approve_event(db: Session, event: Event, notes: Optional[str] = None) -> Event:
    # No precondition on the current status: re-approving refreshes approved_at.
    was_rejected = event.status == EventStatus.REJECTED
    _stamp_status(event, EventStatus.APPROVED)
    if notes:
        event.admin_notes = notes
    elif was_rejected:
        event.admin_notes = None
    _commit(db)

    logger.info(f"Event {event.id} approved")
    return get_event(db, event.id)


def reject_event(db: Session, event: Event, reason: str) -> Event:
    _stamp_status(event, EventStatus.REJECTED)
    event.admin_notes = reason
    _commit(db)

    logger.info(f"Event {event.id} rejected: {reason}")
    return get_event(db, event.id)


def event_history(db: Session, event: Event, user: User) -> List[EventStatusChange]:
    if not can_modify(event, user):
        raise forbidden()
    return db.query(EventStatusChange).filter(
        EventStatusChange.event_id == event.id
    ).order_by(
        EventStatusChange.occurred_at, EventStatusChange.id
    ).all()
