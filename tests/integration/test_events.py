"""
Integration tests for the host dashboard endpoints.
Tests event listing, analytics, guest administration and wish moderation.
"""
import uuid
import pytest
from httpx import AsyncClient

from inviteflow.db.models import Guest
from inviteflow.db.repositories import get_guest


@pytest.mark.integration
@pytest.mark.asyncio
class TestEventEndpoints:
    """Test event API endpoints."""

    async def test_health(self, client: AsyncClient):
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_list_events(self, client: AsyncClient, test_event, test_guest, other_event):
        response = await client.get("/api/v1/events/", params={"host_id": "host-1"})

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["custom_event_id"] == "wedding-2025"
        assert data[0]["guest_count"] == 1

    async def test_stats_by_custom_id(self, client: AsyncClient, db_session, test_event, test_guest):
        db_session.add(Guest(event_id=test_event.id, name="Viewer", viewed=True))
        await db_session.commit()

        response = await client.get("/api/v1/events/wedding-2025/stats")

        assert response.status_code == 200
        assert response.json() == {"total": 2, "pending": 1, "viewed": 1, "accepted": 0, "submitted": 0}

    async def test_stats_unknown_event(self, client: AsyncClient, test_event):
        response = await client.get("/api/v1/events/no-such-event/stats")

        assert response.status_code == 404

    async def test_stats_refresh_after_guest_change(self, client: AsyncClient, test_event, test_guest):
        first = await client.get(f"/api/v1/events/{test_event.id}/stats")
        assert first.json()["pending"] == 1

        await client.post(
            "/api/v1/events/wedding-2025/guests/bulk-status",
            json={"guest_ids": ["guest-ada"], "status": "accepted"},
        )

        second = await client.get(f"/api/v1/events/{test_event.id}/stats")
        assert second.json()["accepted"] == 1

    async def test_invitation_payload(self, client: AsyncClient, test_event, test_guest, rsvp_fields):
        response = await client.get("/api/v1/events/wedding-2025/guests/guest-ada/invitation")

        assert response.status_code == 200
        data = response.json()
        assert data["eventId"] == "wedding-2025"
        assert data["status"] is None
        assert data["showSubmitButton"] is True

    async def test_invitation_for_guest_of_other_event(self, client: AsyncClient, test_guest, other_event):
        response = await client.get("/api/v1/events/birthday-40/guests/guest-ada/invitation")

        assert response.status_code == 404


@pytest.mark.integration
@pytest.mark.asyncio
class TestGuestAdministration:
    """Test reset and bulk status updates."""

    async def test_reset_guests(self, client: AsyncClient, db_session, test_event, test_guest, published_changes):
        test_guest.viewed = True
        test_guest.accepted = True
        test_guest.rsvp_data = {"meal": "veg"}
        await db_session.commit()

        response = await client.post("/api/v1/events/wedding-2025/guests/reset")

        assert response.status_code == 200
        assert response.json() == {"updated": 1}
        guest = await get_guest(db_session, test_guest.id)
        assert (guest.viewed, guest.accepted, guest.rsvp_data, guest.accepted_at) == (False, False, None, None)
        assert published_changes[-1].table == "guests"

    @pytest.mark.parametrize("status,viewed,accepted", [
        ("pending", False, False),
        ("viewed", True, False),
        ("accepted", True, True),
        ("submitted", True, True),
    ])
    async def test_bulk_status(self, client: AsyncClient, db_session, test_event, test_guest, status, viewed, accepted):
        response = await client.post(
            f"/api/v1/events/{test_event.id}/guests/bulk-status",
            json={"guest_ids": [str(test_guest.id)], "status": status},
        )

        assert response.status_code == 200
        guest = await get_guest(db_session, test_guest.id)
        assert (guest.viewed, guest.accepted) == (viewed, accepted)

    async def test_bulk_status_rejects_foreign_guest(self, client: AsyncClient, test_guest, other_event):
        response = await client.post(
            "/api/v1/events/birthday-40/guests/bulk-status",
            json={"guest_ids": ["guest-ada"], "status": "viewed"},
        )

        assert response.status_code == 404

    async def test_bulk_status_validates_body(self, client: AsyncClient, test_event):
        empty = await client.post(
            "/api/v1/events/wedding-2025/guests/bulk-status",
            json={"guest_ids": [], "status": "viewed"},
        )
        bad_status = await client.post(
            "/api/v1/events/wedding-2025/guests/bulk-status",
            json={"guest_ids": ["x"], "status": "maybe"},
        )

        assert empty.status_code == 422
        assert bad_status.status_code == 422

    async def test_toggle_wishes(self, client: AsyncClient, db_session, test_event, published_changes):
        response = await client.patch(
            "/api/v1/events/wedding-2025/wishes-settings", json={"wishes_enabled": False}
        )

        assert response.status_code == 200
        assert response.json() == {"wishes_enabled": False}
        await db_session.refresh(test_event)
        assert test_event.wishes_enabled is False
        assert published_changes[-1].routing_key == f"events.update.{test_event.id}"


@pytest.mark.integration
@pytest.mark.asyncio
class TestWishModerationEndpoints:
    """Test host moderation over HTTP."""

    async def test_list_wishes_includes_pending(self, client: AsyncClient, test_event, test_wishes):
        response = await client.get("/api/v1/events/wedding-2025/wishes")

        assert response.status_code == 200
        assert [w["content"] for w in response.json()] == ["See you there", "Congratulations!"]

    async def test_approve_and_delete(self, client: AsyncClient, db_session, test_event, test_wishes):
        pending = test_wishes[1]

        approved = await client.post(f"/api/v1/wishes/{pending.id}/approve")
        assert approved.status_code == 204
        await db_session.refresh(pending)
        assert pending.is_approved is True

        deleted = await client.delete(f"/api/v1/wishes/{pending.id}")
        assert deleted.status_code == 204

        listing = await client.get("/api/v1/events/wedding-2025/wishes")
        assert [w["content"] for w in listing.json()] == ["Congratulations!"]

    async def test_moderating_missing_wish(self, client: AsyncClient, test_event):
        response = await client.post(f"/api/v1/wishes/{uuid.uuid4()}/approve")

        assert response.status_code == 404
