import logging
from datetime import date
from typing import List, Literal, Optional

import nats
from fastapi import APIRouter, Depends, FastAPI, Path, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.app import crud, notifications, schemas
from backend.app.auth import (
    get_current_token, get_current_user, get_optional_user, require_admin, require_event_author,
    issue_token, revoke_token,
)
from backend.app.metrics import MetricsMiddleware, metrics
from shared.config import settings
from shared.database import get_db, engine, Base
from shared.models import EventStatus, User

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="PulseCity API",
    description="City events marketplace: discovery, submission and approval of events",
    version="1.0.0",
)

app.add_middleware(MetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

nats_client = None


@app.on_event("startup")
async def startup_event():
    global nats_client
    Base.metadata.create_all(bind=engine)
    if not settings.NATS_URL:
        logger.warning("NATS_URL not set, status change notifications are disabled")
        return
    try:
        nats_client = await nats.connect(settings.NATS_URL)
    except Exception as e:
        nats_client = None
        logger.warning(f"Could not connect to NATS at {settings.NATS_URL}, status change notifications are disabled: {e}")
    else:
        logger.info(f"Connected to NATS at {settings.NATS_URL}")


@app.on_event("shutdown")
async def shutdown_event():
    if nats_client:
        await nats_client.close()


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    body = exc.detail if isinstance(exc.detail, dict) else {"message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for error in exc.errors():
        location = [str(part) for part in error["loc"] if part not in ("body", "query", "path")]
        field = ".".join(location) or "request"
        message = error["msg"].removeprefix("Value error, ")
        errors.setdefault(field, []).append(message)

    first_message = next(iter(errors.values()))[0] if errors else "The given data was invalid."
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"message": first_message, "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Server error"},
    )


async def _notify(event, from_status: Optional[EventStatus], actor_id: int, notes: Optional[str] = None):
    if from_status == event.status:
        return
    await notifications.publish_status_change(
        nats_client, event.id, from_status, event.status, actor_id, notes
    )


api = APIRouter(prefix=settings.API_PREFIX)


# ─── auth ──────────────────────────────────────────────────────────────

@api.post("/register", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def register(request: schemas.RegisterRequest, db: Session = Depends(get_db)):
    """
    Create an organizer or public account and issue a bearer token.
    """
    user, token, expires_at = crud.register_user(db, request)
    return schemas.AuthResponse(
        message="Registration successful",
        user=schemas.UserOut.model_validate(user),
        token=token,
        expires_at=expires_at,
    )


@api.post("/login", response_model=schemas.AuthResponse)
def login(request: schemas.LoginRequest, db: Session = Depends(get_db)):
    user, token, expires_at = crud.authenticate(db, request)
    return schemas.AuthResponse(
        message="Login successful",
        user=schemas.UserOut.model_validate(user),
        token=token,
        expires_at=expires_at,
    )


@api.post("/logout", response_model=schemas.MessageResponse)
def logout(
        token: str = Depends(get_current_token),
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    revoke_token(db, token)
    return schemas.MessageResponse(message="Logged out successfully")


@api.post("/refresh", response_model=schemas.TokenResponse)
def refresh(
        token: str = Depends(get_current_token),
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    """
    Exchange the presented token for a new one. The old token stops working.
    """
    revoke_token(db, token)
    new_token, expires_at = issue_token(db, user)
    return schemas.TokenResponse(token=new_token, expires_at=expires_at)


@api.get("/user", response_model=schemas.UserResponse)
def current_user(user: User = Depends(get_current_user)):
    return schemas.UserResponse(user=schemas.UserOut.model_validate(user))


@api.put("/profile", response_model=schemas.UserResponse)
def update_profile(
        request: schemas.ProfileUpdate,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    user = crud.update_profile(db, user, request)
    return schemas.UserResponse(
        user=schemas.UserOut.model_validate(user),
        message="Profile updated successfully",
    )


# ─── events ────────────────────────────────────────────────────────────

@api.get("/events", response_model=schemas.PaginatedEvents)
def list_events(
        search: Optional[str] = Query(None, description="Substring of the name or description"),
        categories: Optional[List[int]] = Query(None, alias="categories[]", description="Category ids, any match"),
        venue: Optional[int] = Query(None),
        organizer: Optional[int] = Query(None),
        on_date: Optional[date] = Query(None, alias="date", description="Start date (YYYY-MM-DD)"),
        price_filter: Optional[Literal["free", "paid"]] = Query(None),
        event_status: Optional[EventStatus] = Query(None, alias="status", description="Admin only"),
        sort_by: Literal["start_date_time", "name", "created_at"] = Query("start_date_time"),
        sort_direction: Literal["asc", "desc"] = Query("asc"),
        page: int = Query(1, ge=1),
        per_page: int = Query(settings.DEFAULT_PER_PAGE, ge=1, description="Capped at 100"),
        viewer: Optional[User] = Depends(get_optional_user),
        db: Session = Depends(get_db)
):
    """
    List approved events matching every supplied filter.

    Admins may pass `status` to list events in another workflow state.
    """
    filters = schemas.EventFilters(
        search=search,
        categories=categories or [],
        venue=venue,
        organizer=organizer,
        date=on_date,
        price_filter=price_filter,
        status=event_status,
        sort_by=sort_by,
        sort_direction=sort_direction,
        page=page,
        per_page=per_page,
    )
    return crud.list_events(db, filters, viewer)


@api.post("/events", response_model=schemas.EventEnvelope, status_code=status.HTTP_201_CREATED)
async def create_event(
        request: schemas.EventCreate,
        user: User = Depends(require_event_author),
        db: Session = Depends(get_db)
):
    """
    Submit an event. It is always stored as `pending` until an admin approves it.
    """
    actor_id = user.id
    event = await run_in_threadpool(crud.create_event, db, request, user)
    await _notify(event, None, actor_id)
    return {"message": "Event created successfully and submitted for approval", "event": event}


@api.get("/events/calendar/{year}/{month}", response_model=List[schemas.EventOut])
def calendar(
        year: int = Path(..., ge=2020, le=2030),
        month: int = Path(..., ge=1, le=12),
        db: Session = Depends(get_db)
):
    return crud.calendar_events(db, year, month)


@api.get("/events/{event_id}", response_model=schemas.EventOut)
def get_event(
        event_id: int,
        viewer: Optional[User] = Depends(get_optional_user),
        db: Session = Depends(get_db)
):
    return crud.get_visible_event(db, event_id, viewer)


@api.put("/events/{event_id}", response_model=schemas.EventEnvelope)
async def update_event(
        event_id: int,
        request: schemas.EventUpdate,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    actor_id = user.id
    event = await run_in_threadpool(crud.get_event, db, event_id)
    event, previous_status = await run_in_threadpool(crud.update_event, db, event, request, user)
    await _notify(event, previous_status, actor_id)
    return {"message": "Event updated successfully", "event": event}


@api.delete("/events/{event_id}", response_model=schemas.MessageResponse)
def delete_event(
        event_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    event = crud.get_event(db, event_id)
    crud.delete_event(db, event, user)
    return schemas.MessageResponse(message="Event deleted successfully")


@api.get("/events/{event_id}/history", response_model=List[schemas.StatusChangeOut])
def event_history(
        event_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    """
    Workflow transitions recorded for the event, oldest first.
    """
    event = crud.get_event(db, event_id)
    return crud.event_history(db, event, user)


@api.post("/events/{event_id}/approve", response_model=schemas.EventEnvelope)
async def approve_event(
        event_id: int,
        request: Optional[schemas.ApproveRequest] = None,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db)
):
    actor_id = admin.id
    event = await run_in_threadpool(crud.get_event, db, event_id)
    previous_status = event.status
    notes = request.notes if request else None
    event = await run_in_threadpool(crud.approve_event, db, event, notes)
    await _notify(event, previous_status, actor_id, notes)
    return {"message": "Event approved successfully", "event": event}


@api.post("/events/{event_id}/reject", response_model=schemas.EventEnvelope)
async def reject_event(
        event_id: int,
        request: schemas.RejectRequest,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db)
):
    actor_id = admin.id
    event = await run_in_threadpool(crud.get_event, db, event_id)
    previous_status = event.status
    event = await run_in_threadpool(crud.reject_event, db, event, request.reason)
    await _notify(event, previous_status, actor_id, request.reason)
    return {"message": "Event rejected", "event": event}


@api.get("/my-events", response_model=schemas.PaginatedEvents)
def my_events(
        event_status: Optional[EventStatus] = Query(None, alias="status"),
        page: int = Query(1, ge=1),
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    """
    Events submitted by the caller in any workflow state, newest first.
    """
    return crud.my_events(db, user, event_status, page)


# ─── categories ────────────────────────────────────────────────────────

@api.get("/categories", response_model=List[schemas.CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return crud.list_categories(db)


@api.get("/categories/{category_id}", response_model=schemas.CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return crud.get_category(db, category_id)


@api.post("/categories", response_model=schemas.CategoryOut, status_code=status.HTTP_201_CREATED)
def create_category(
        request: schemas.CategoryCreate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db)
):
    return crud.create_category(db, request)


@api.put("/categories/{category_id}", response_model=schemas.CategoryOut)
def update_category(
        category_id: int,
        request: schemas.CategoryUpdate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db)
):
    category = crud.get_category(db, category_id)
    return crud.update_category(db, category, request)


@api.delete("/categories/{category_id}", response_model=schemas.MessageResponse)
def delete_category(
        category_id: int,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db)
):
    crud.delete_record(db, crud.get_category(db, category_id))
    return schemas.MessageResponse(message="Category deleted successfully")


# ─── venues ────────────────────────────────────────────────────────────

@api.get("/venues", response_model=List[schemas.VenueOut])
def list_venues(db: Session = Depends(get_db)):
    return crud.list_venues(db)


@api.get("/venues/{venue_id}", response_model=schemas.VenueOut)
def get_venue(venue_id: int, db: Session = Depends(get_db)):
    return crud.get_venue(db, venue_id)


@api.post("/venues", response_model=schemas.VenueOut, status_code=status.HTTP_201_CREATED)
def create_venue(
        request: schemas.VenueCreate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db)
):
    return crud.create_venue(db, request)


@api.put("/venues/{venue_id}", response_model=schemas.VenueOut)
def update_venue(
        venue_id: int,
        request: schemas.VenueUpdate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db)
):
    venue = crud.get_venue(db, venue_id)
    return crud.update_venue(db, venue, request)


@api.delete("/venues/{venue_id}", response_model=schemas.MessageResponse)
def delete_venue(
        venue_id: int,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db)
):
    crud.delete_record(db, crud.get_venue(db, venue_id))
    return schemas.MessageResponse(message="Venue deleted successfully")


app.include_router(api)


@app.get("/")
def root():
    return {
        "message": "PulseCity API",
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", **metrics.snapshot()}
