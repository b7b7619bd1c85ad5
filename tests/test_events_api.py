import threading
from datetime import datetime
from unittest.mock import patch

import httpx
import pytest

from backend.app import auth, crud
from backend.app.main import app
from conftest import auth_headers
from shared.models import Event, EventStatus


def _snapshot(db, event_id):
    db.expire_all()
    event = db.get(Event, event_id)
    return (event.name, event.status, event.description, event.ticket_price, event.updated_at)


class TestEventCreation:

    @pytest.mark.parametrize("requested_status", ["approved", "draft", "rejected", None])
    def test_created_event_is_always_pending(self, client, organizer_headers, event_payload, requested_status):
        if requested_status:
            event_payload["status"] = requested_status

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Event created successfully and submitted for approval"
        assert body["event"]["status"] == "pending"
        assert body["event"]["approved_at"] is None

    def test_event_carries_relations(self, client, organizer, organizer_headers, event_payload, art):
        event_payload["category_ids"].append(art.id)

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        event = response.json()["event"]
        assert event["organizer"] == {"id": organizer.id, "name": organizer.name, "email": organizer.email}
        assert event["venue"]["name"] == "Riverside Hall"
        assert event["venue"]["maps_url"].endswith("query=40.7128,-74.006")
        assert sorted(category["name"] for category in event["categories"]) == ["Art", "Music"]

    @pytest.mark.parametrize("end", ["same", "before"])
    def test_end_must_be_after_start(self, client, db_session, organizer_headers, event_payload, end):
        if end == "same":
            event_payload["end_date_time"] = event_payload["start_date_time"]
        else:
            event_payload["end_date_time"] = "2020-01-01T10:00:00"

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        assert response.status_code == 422
        assert "end_date_time" in response.json()["errors"]
        assert db_session.query(Event).count() == 0

    def test_free_event_stores_null_price(self, client, organizer_headers, event_payload):
        event_payload["ticket_price"] = 25

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        event = response.json()["event"]
        assert event["is_free"] is True
        assert event["ticket_price"] is None

    def test_paid_event_without_price(self, client, organizer_headers, event_payload):
        event_payload["is_free"] = False

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        assert response.status_code == 422
        body = response.json()
        assert body["message"] == "Please specify a ticket price for paid events."
        assert body["errors"]["ticket_price"] == ["Please specify a ticket price for paid events."]

    def test_paid_event_with_zero_price(self, client, organizer_headers, event_payload):
        event_payload.update(is_free=False, ticket_price=0)

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        assert response.status_code == 422
        assert response.json()["message"] == "Ticket price must be greater than 0 for paid events."

    def test_paid_event_keeps_price(self, client, organizer_headers, event_payload):
        event_payload.update(is_free=False, ticket_price="45.50")

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        event = response.json()["event"]
        assert event["is_free"] is False
        assert float(event["ticket_price"]) == 45.5

    def test_is_free_derived_from_price(self, client, organizer_headers, event_payload):
        del event_payload["is_free"]
        event_payload["ticket_price"] = 12

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        assert response.json()["event"]["is_free"] is False

    def test_unknown_venue_and_category(self, client, organizer_headers, event_payload):
        event_payload.update(venue_id=999, category_ids=[998])

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        assert response.status_code == 422
        assert response.json()["errors"] == {"venue_id": ["The selected venue id is invalid."]}

    def test_categories_required(self, client, organizer_headers, event_payload):
        event_payload["category_ids"] = []

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        assert response.status_code == 422
        assert "category_ids" in response.json()["errors"]

    def test_public_user_cannot_create(self, client, db_session, public_user, event_payload):
        response = client.post("/api/events", json=event_payload, headers=auth_headers(db_session, public_user))

        assert response.status_code == 403

    def test_anonymous_cannot_create(self, client, event_payload):
        response = client.post("/api/events", json=event_payload)

        assert response.status_code == 401
        assert response.json() == {"message": "Unauthenticated."}

    def test_malformed_url_is_rejected(self, client, organizer_headers, event_payload):
        event_payload["website"] = "not a url"

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        assert response.status_code == 422
        assert "website" in response.json()["errors"]

    @pytest.mark.parametrize("field", ["name", "description"])
    def test_blank_text_is_rejected(self, client, db_session, organizer_headers, event_payload, field):
        event_payload[field] = "   "

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        assert response.status_code == 422
        assert response.json()["errors"][field] == [f"The {field} field is required."]
        assert db_session.query(Event).count() == 0

    def test_urls_are_stored_as_submitted(self, client, organizer_headers, event_payload):
        event_payload["website"] = "https://harbor-lights.example"
        event_payload["ticketing_link"] = "https://tickets.example/harbor?ref=pulse"
        event_payload["image_url"] = ""

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        event = response.json()["event"]
        assert event["website"] == "https://harbor-lights.example"
        assert event["ticketing_link"] == "https://tickets.example/harbor?ref=pulse"
        assert event["image_url"] is None

    def test_url_longer_than_column_is_rejected(self, client, db_session, organizer_headers, event_payload):
        event_payload["image_url"] = "https://cdn.example/" + "a" * 250 + ".png"

        response = client.post("/api/events", json=event_payload, headers=organizer_headers)

        assert response.status_code == 422
        assert "image_url" in response.json()["errors"]
        assert db_session.query(Event).count() == 0


class TestApprovalWorkflow:

    def test_approve_sets_timestamp_and_notes(self, client, admin_headers, event_factory):
        event = event_factory(status=EventStatus.PENDING)

        response = client.post(f"/api/events/{event.id}/approve", json={"notes": "Looks great"}, headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Event approved successfully"
        assert body["event"]["status"] == "approved"
        assert body["event"]["admin_notes"] == "Looks great"
        assert body["event"]["approved_at"] is not None

    def test_approve_without_body(self, client, admin_headers, event_factory):
        event = event_factory(status=EventStatus.PENDING)

        response = client.post(f"/api/events/{event.id}/approve", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["event"]["status"] == "approved"

    def test_reapproval_succeeds_and_refreshes_timestamp(self, client, admin_headers, event_factory):
        event = event_factory(status=EventStatus.PENDING)

        first = client.post(f"/api/events/{event.id}/approve", headers=admin_headers).json()["event"]
        second_response = client.post(f"/api/events/{event.id}/approve", headers=admin_headers)

        assert second_response.status_code == 200
        second = second_response.json()["event"]
        assert second["status"] == "approved"
        assert datetime.fromisoformat(second["approved_at"]) >= datetime.fromisoformat(first["approved_at"])

    def test_only_admin_may_approve(self, client, db_session, organizer_headers, event_factory):
        event = event_factory(status=EventStatus.PENDING)

        response = client.post(f"/api/events/{event.id}/approve", headers=organizer_headers)

        assert response.status_code == 403
        db_session.expire_all()
        assert db_session.get(Event, event.id).status == EventStatus.PENDING

    def test_approve_missing_event(self, client, admin_headers):
        response = client.post("/api/events/4040/approve", headers=admin_headers)

        assert response.status_code == 404
        assert response.json() == {"message": "Event not found"}

    def test_reject_stores_reason(self, client, admin_headers, event_factory):
        event = event_factory(status=EventStatus.PENDING)

        response = client.post(f"/api/events/{event.id}/reject", json={"reason": "Missing details"}, headers=admin_headers)

        body = response.json()
        assert body["message"] == "Event rejected"
        assert body["event"]["status"] == "rejected"
        assert body["event"]["admin_notes"] == "Missing details"
        assert body["event"]["rejected_at"] is not None

    @pytest.mark.parametrize("body", [{"reason": ""}, {"reason": "   "}, {}])
    def test_reject_requires_reason(self, client, db_session, admin_headers, event_factory, body):
        event = event_factory(status=EventStatus.PENDING)

        response = client.post(f"/api/events/{event.id}/reject", json=body, headers=admin_headers)

        assert response.status_code == 422
        assert "reason" in response.json()["errors"]
        db_session.expire_all()
        stored = db_session.get(Event, event.id)
        assert stored.status == EventStatus.PENDING
        assert stored.rejected_at is None

    def test_approving_rejected_event_clears_rejection(self, client, admin_headers, event_factory):
        event = event_factory(status=EventStatus.PENDING)
        client.post(f"/api/events/{event.id}/reject", json={"reason": "Missing details"}, headers=admin_headers)

        response = client.post(f"/api/events/{event.id}/approve", headers=admin_headers)

        body = response.json()["event"]
        assert body["status"] == "approved"
        assert body["approved_at"] is not None
        assert body["rejected_at"] is None
        assert body["admin_notes"] is None

    def test_rejecting_approved_event_clears_approval(self, client, admin_headers, event_factory):
        event = event_factory(status=EventStatus.PENDING)
        client.post(f"/api/events/{event.id}/approve", json={"notes": "Fine"}, headers=admin_headers)

        response = client.post(f"/api/events/{event.id}/reject", json={"reason": "Venue closed"}, headers=admin_headers)

        body = response.json()["event"]
        assert body["status"] == "rejected"
        assert body["rejected_at"] is not None
        assert body["approved_at"] is None
        assert body["admin_notes"] == "Venue closed"


class TestEventOwnership:

    def test_owner_can_update(self, client, organizer_headers, event_factory, art):
        event = event_factory()

        response = client.put(
            f"/api/events/{event.id}",
            json={"name": "Jazz Night Deluxe", "category_ids": [art.id]},
            headers=organizer_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Event updated successfully"
        assert body["event"]["name"] == "Jazz Night Deluxe"
        assert [category["name"] for category in body["event"]["categories"]] == ["Art"]

    def test_non_owner_cannot_update(self, client, db_session, other_organizer, event_factory):
        event = event_factory()
        before = _snapshot(db_session, event.id)

        response = client.put(
            f"/api/events/{event.id}",
            json={"name": "Hijacked", "status": "cancelled"},
            headers=auth_headers(db_session, other_organizer),
        )

        assert response.status_code == 403
        assert _snapshot(db_session, event.id) == before

    def test_non_owner_cannot_delete(self, client, db_session, public_user, event_factory):
        event = event_factory()
        before = _snapshot(db_session, event.id)

        response = client.delete(f"/api/events/{event.id}", headers=auth_headers(db_session, public_user))

        assert response.status_code == 403
        assert _snapshot(db_session, event.id) == before

    def test_admin_can_delete_any_event(self, client, db_session, admin_headers, event_factory):
        event = event_factory()

        response = client.delete(f"/api/events/{event.id}", headers=admin_headers)

        assert response.json() == {"message": "Event deleted successfully"}
        db_session.expire_all()
        assert db_session.get(Event, event.id) is None

    def test_update_merges_schedule_with_stored_values(self, client, organizer_headers, event_factory):
        event = event_factory(start=datetime(2030, 6, 1, 19, 0))

        response = client.put(
            f"/api/events/{event.id}",
            json={"end_date_time": "2030-06-01T18:00:00"},
            headers=organizer_headers,
        )

        assert response.status_code == 422
        assert "end_date_time" in response.json()["errors"]

    def test_switching_to_paid_requires_price(self, client, organizer_headers, event_factory):
        event = event_factory(is_free=True)

        response = client.put(f"/api/events/{event.id}", json={"is_free": False}, headers=organizer_headers)

        assert response.status_code == 422
        assert response.json()["message"] == "Please specify a ticket price for paid events."

    def test_organizer_can_cancel_approved_event(self, client, organizer_headers, event_factory):
        event = event_factory(status=EventStatus.APPROVED)

        response = client.put(f"/api/events/{event.id}", json={"status": "cancelled"}, headers=organizer_headers)

        assert response.status_code == 200
        assert response.json()["event"]["status"] == "cancelled"

    def test_organizer_can_submit_draft(self, client, organizer_headers, event_factory):
        event = event_factory(status=EventStatus.DRAFT)

        response = client.put(f"/api/events/{event.id}", json={"status": "pending"}, headers=organizer_headers)

        assert response.json()["event"]["status"] == "pending"

    @pytest.mark.parametrize("current, target", [
        (EventStatus.PENDING, "approved"),
        (EventStatus.REJECTED, "pending"),
        (EventStatus.CANCELLED, "approved"),
    ])
    def test_organizer_status_changes_are_guarded(self, client, db_session, organizer_headers, event_factory, current, target):
        event = event_factory(status=current)

        response = client.put(f"/api/events/{event.id}", json={"status": target}, headers=organizer_headers)

        assert response.status_code == 422
        assert "status" in response.json()["errors"]
        db_session.expire_all()
        assert db_session.get(Event, event.id).status == current

    def test_admin_may_set_any_status(self, client, admin_headers, event_factory):
        event = event_factory(status=EventStatus.REJECTED)

        response = client.put(f"/api/events/{event.id}", json={"status": "approved"}, headers=admin_headers)

        event_body = response.json()["event"]
        assert event_body["status"] == "approved"
        assert event_body["approved_at"] is not None

    @pytest.mark.parametrize("field", ["name", "description"])
    def test_update_rejects_blank_text(self, client, db_session, organizer_headers, event_factory, field):
        event = event_factory()
        before = _snapshot(db_session, event.id)

        response = client.put(f"/api/events/{event.id}", json={field: "   "}, headers=organizer_headers)

        assert response.status_code == 422
        assert response.json()["errors"][field] == [f"The {field} field is required."]
        assert _snapshot(db_session, event.id) == before

    def test_update_trims_name(self, client, organizer_headers, event_factory):
        event = event_factory()

        response = client.put(f"/api/events/{event.id}", json={"name": "  Jazz Night Deluxe  "}, headers=organizer_headers)

        assert response.status_code == 200
        assert response.json()["event"]["name"] == "Jazz Night Deluxe"

    def test_update_cannot_remove_every_category(self, client, db_session, organizer_headers, event_factory):
        event = event_factory()

        response = client.put(f"/api/events/{event.id}", json={"category_ids": []}, headers=organizer_headers)

        assert response.status_code == 422
        assert response.json()["errors"]["category_ids"] == ["At least one category is required."]
        db_session.expire_all()
        assert [category.name for category in db_session.get(Event, event.id).categories] == ["Music"]

    def test_update_urls_are_stored_as_submitted(self, client, organizer_headers, event_factory):
        event = event_factory()

        response = client.put(
            f"/api/events/{event.id}",
            json={"website": "https://jazz.example"},
            headers=organizer_headers,
        )

        assert response.json()["event"]["website"] == "https://jazz.example"


class TestEventVisibility:

    def test_anonymous_sees_approved_detail(self, client, event_factory):
        event = event_factory(status=EventStatus.APPROVED)

        response = client.get(f"/api/events/{event.id}")

        assert response.status_code == 200
        assert response.json()["id"] == event.id

    def test_anonymous_cannot_see_pending_detail(self, client, event_factory):
        event = event_factory(status=EventStatus.PENDING)

        response = client.get(f"/api/events/{event.id}")

        assert response.status_code == 404

    def test_public_user_cannot_see_pending_detail(self, client, db_session, public_user, event_factory):
        event = event_factory(status=EventStatus.PENDING)

        response = client.get(f"/api/events/{event.id}", headers=auth_headers(db_session, public_user))

        assert response.status_code == 404

    def test_owner_sees_rejected_detail(self, client, organizer_headers, event_factory):
        event = event_factory(status=EventStatus.REJECTED)

        response = client.get(f"/api/events/{event.id}", headers=organizer_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"

    def test_history_requires_ownership(self, client, db_session, public_user, event_factory):
        event = event_factory()

        response = client.get(f"/api/events/{event.id}/history", headers=auth_headers(db_session, public_user))

        assert response.status_code == 403

    def test_history_is_empty_without_worker(self, client, organizer_headers, event_factory):
        event = event_factory()

        response = client.get(f"/api/events/{event.id}/history", headers=organizer_headers)

        assert response.status_code == 200
        assert response.json() == []


class TestBlockingWork:

    @pytest.mark.asyncio
    async def test_approval_queries_run_off_the_event_loop(self, client, admin_headers, event_factory):
        event = event_factory(status=EventStatus.PENDING)
        loop_thread = threading.get_ident()
        calls = []

        def traced(func):
            def wrapper(*args, **kwargs):
                calls.append((func.__name__, threading.get_ident()))
                return func(*args, **kwargs)
            return wrapper

        with patch("backend.app.auth._resolve_user", traced(auth._resolve_user)), \
                patch("backend.app.crud.get_event", traced(crud.get_event)), \
                patch("backend.app.crud.approve_event", traced(crud.approve_event)):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
                response = await http.post(f"/api/events/{event.id}/approve", headers=admin_headers)

        assert response.status_code == 200
        assert {name for name, _ in calls} == {"_resolve_user", "get_event", "approve_event"}
        assert all(thread != loop_thread for _, thread in calls)
