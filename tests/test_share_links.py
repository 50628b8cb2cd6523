import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from attendly.models.attendance import AttendanceRecord
from attendly.models.links import ExcuseLink, ModerationLink
from attendly.services.events import EventService
from attendly.services.links import LinkReason, ShareLinkService, build_share_url


async def _event(db, clock, **fields):
    events = EventService(db, clock)
    return await events.start(await events.create("Seminar", rotation_enabled=False, **fields))


def test_excuse_link_records_an_excused_attendee(session_factory, cache, clock):
    async def scenario():
        async with session_factory() as db:
            event = await _event(db, clock)
            links = ShareLinkService(db, cache, clock)
            link = await links.create_excuse_link(event, "  Sick leave ")

            assert link.label == "Sick leave"
            assert link.is_active
            assert link.expires_at == clock.now() + timedelta(days=30)
            assert build_share_url(link).endswith(f"/excuse/{event.id}/{link.token}")

            opened = await links.open_excuse(event.id, link.token)
            assert opened.ok
            assert opened.event.name == "Seminar"

            access = await links.submit_excuse(
                event.id, link.token, " Grace Hopper ", " GRACE@navy.mil "
            )
            assert access.ok
            record = access.record
            assert record.status == "excused"
            assert record.attendee_name == "Grace Hopper"
            assert record.attendee_email == "grace@navy.mil"
            assert record.client_id.startswith(f"excuse-{link.id}-")
            assert record.device_client_id is None
            assert not record.location_provided

    asyncio.run(scenario())


def test_excuse_link_rejections(session_factory, cache, clock):
    async def scenario():
        async with session_factory() as db:
            event = await _event(db, clock)
            other = await _event(db, clock)
            links = ShareLinkService(db, cache, clock)
            link = await links.create_excuse_link(event)

            assert (await links.open_excuse(None, link.token)).reason is LinkReason.INVALID_REQUEST
            assert (await links.open_excuse(event.id, "")).reason is LinkReason.INVALID_REQUEST
            assert (await links.open_excuse(event.id, "nope")).reason is LinkReason.LINK_NOT_FOUND
            # Tokens are scoped to their own event.
            assert (
                await links.open_excuse(other.id, link.token)
            ).reason is LinkReason.LINK_NOT_FOUND

            blank = await links.submit_excuse(event.id, link.token, "  ", "eve@x.org")
            assert blank.reason is LinkReason.INVALID_REQUEST

            await links.set_active(link, False)
            inactive = await links.submit_excuse(event.id, link.token, "Eve", "eve@x.org")
            assert inactive.reason is LinkReason.LINK_INACTIVE

            await links.set_active(link, True)
            clock.advance(timedelta(days=30).total_seconds())
            expired = await links.submit_excuse(event.id, link.token, "Eve", "eve@x.org")
            assert expired.reason is LinkReason.LINK_EXPIRED

            result = await db.execute(
                select(AttendanceRecord).where(AttendanceRecord.event_id == event.id)
            )
            assert result.scalars().all() == []

    asyncio.run(scenario())


def test_excuse_link_expiry_must_be_in_the_future(session_factory, cache, clock):
    async def scenario():
        async with session_factory() as db:
            event = await _event(db, clock)
            links = ShareLinkService(db, cache, clock)

            with pytest.raises(ValueError):
                await links.create_excuse_link(event, expires_at=clock.now())
            # Naive datetimes are read as UTC.
            naive = (clock.now() + timedelta(hours=1)).replace(tzinfo=None)
            link = await links.create_excuse_link(event, expires_at=naive)
            assert link.expires_at == clock.now() + timedelta(hours=1)

            clock.advance(3599)
            assert (await links.open_excuse(event.id, link.token)).ok
            clock.advance(1)
            assert (await links.open_excuse(event.id, link.token)).reason is LinkReason.LINK_EXPIRED

    asyncio.run(scenario())


def test_deleted_link_stops_working(session_factory, cache, clock):
    async def scenario():
        async with session_factory() as db:
            event = await _event(db, clock, moderation_enabled=True)
            links = ShareLinkService(db, cache, clock)
            excuse = await links.create_excuse_link(event)
            moderation = await links.create_moderation_link(event)
            assert [link.id for link in await links.list_links(ExcuseLink, event.id)] == [excuse.id]

            await links.delete_link(excuse)
            await links.delete_link(moderation)
            assert await links.list_links(ExcuseLink, event.id) == []
            assert await links.list_links(ModerationLink, event.id) == []
            assert (
                await links.open_excuse(event.id, excuse.token)
            ).reason is LinkReason.LINK_NOT_FOUND
            assert (
                await links.authorize_moderator(event.id, moderation.token)
            ).reason is LinkReason.LINK_NOT_FOUND

    asyncio.run(scenario())


def test_moderator_link_needs_moderation_enabled(session_factory, cache, clock):
    async def scenario():
        async with session_factory() as db:
            events = EventService(db, clock)
            event = await _event(db, clock)
            links = ShareLinkService(db, cache, clock)
            link = await links.create_moderation_link(event, "Door helper")
            assert build_share_url(link).endswith(f"/moderate/{event.id}/{link.token}")

            denied = await links.authorize_moderator(event.id, link.token)
            assert denied.reason is LinkReason.MODERATION_DISABLED

            await events.update_settings(event, moderation_enabled=True)
            access = await links.authorize_moderator(event.id, link.token)
            assert access.ok
            assert access.link.label == "Door helper"

            record = await links.add_moderator_attendee(access.event, "Ada", "ADA@x.org")
            assert record.client_id.startswith("moderator-")
            assert record.device_client_id is None
            assert record.status == "verified"
            assert await links.record_for_event(event.id, record.id) is not None

            other = await _event(db, clock)
            assert await links.record_for_event(other.id, record.id) is None

            await links.set_active(link, False)
            inactive = await links.authorize_moderator(event.id, link.token)
            assert inactive.reason is LinkReason.LINK_INACTIVE

    asyncio.run(scenario())


# --- HTTP surface ---


def _event_id(client, **fields):
    res = client.post("/events", json={"name": "Seminar", "rotation_enabled": False, **fields})
    assert res.status_code == 201
    event_id = res.json()["id"]
    assert client.post(f"/events/{event_id}/start").status_code == 200
    return event_id


def test_excuse_flow_over_http(client):
    event_id = _event_id(client)
    created = client.post(f"/events/{event_id}/excuse-links", json={"label": "Travel"})
    assert created.status_code == 201
    link = created.json()
    assert link["url"].endswith(f"/excuse/{event_id}/{link['token']}")
    assert link["expires_at"].startswith("2026-04-01T09:00:00")

    listed = client.get(f"/events/{event_id}/excuse-links").json()
    assert [item["id"] for item in listed] == [link["id"]]

    start = client.post("/excuse/start", json={"eventId": event_id, "token": link["token"]})
    assert start.status_code == 200
    assert start.json()["authorized"] is True
    assert start.json()["event"]["name"] == "Seminar"
    assert start.json()["linkLabel"] == "Travel"

    submit = client.post(
        "/excuse/submit",
        json={
            "eventId": event_id,
            "token": link["token"],
            "attendeeName": "Grace Hopper",
            "attendeeEmail": "Grace@Navy.mil",
        },
    )
    assert submit.status_code == 200
    assert submit.json() == {"success": True}

    records = client.get(f"/events/{event_id}/records").json()
    assert [(r["status"], r["attendee_email"]) for r in records] == [("excused", "grace@navy.mil")]


def test_excuse_rejections_over_http(client, clock):
    event_id = _event_id(client)
    link = client.post(f"/events/{event_id}/excuse-links", json={}).json()
    body = {
        "eventId": event_id,
        "token": link["token"],
        "attendeeName": "Eve",
        "attendeeEmail": "eve@x.org",
    }

    missing = client.post("/excuse/start", json={"eventId": event_id})
    assert missing.status_code == 400
    assert missing.json() == {"authorized": False, "reason": "invalid_request"}
    bad_submit = client.post("/excuse/submit", json={"eventId": event_id, "token": "x"})
    assert bad_submit.status_code == 400
    assert bad_submit.json()["reason"] == "invalid_request"

    unknown = client.post("/excuse/start", json={"eventId": event_id, "token": "nope"})
    assert unknown.status_code == 200
    assert unknown.json() == {"authorized": False, "reason": "link_not_found"}
    assert client.post("/excuse/submit", json={**body, "token": "nope"}).status_code == 404

    patched = client.patch(f"/excuse-links/{link['id']}", json={"is_active": False})
    assert patched.json()["is_active"] is False
    start = client.post("/excuse/start", json={"eventId": event_id, "token": link["token"]})
    assert start.json()["reason"] == "link_inactive"
    inactive = client.post("/excuse/submit", json=body)
    assert inactive.status_code == 403
    assert inactive.json()["reason"] == "link_inactive"

    client.patch(f"/excuse-links/{link['id']}", json={"is_active": True})
    clock.advance(timedelta(days=31).total_seconds())
    expired = client.post("/excuse/submit", json=body)
    assert expired.status_code == 410
    assert expired.json()["reason"] == "link_expired"

    past = client.post(
        f"/events/{event_id}/excuse-links", json={"expires_at": "2026-03-01T00:00:00Z"}
    )
    assert past.status_code == 400

    assert client.delete(f"/excuse-links/{link['id']}").status_code == 204
    assert client.delete(f"/excuse-links/{link['id']}").status_code == 404
    assert client.get(f"/events/{event_id}/excuse-links").json() == []
    assert client.post("/events/missing/excuse-links", json={}).status_code == 404


def test_moderator_share_link_over_http(client):
    event_id = _event_id(client)
    other_id = _event_id(client)
    link = client.post(f"/events/{event_id}/moderation-links", json={"label": "Helper"}).json()
    base = f"/moderate/{event_id}/{link['token']}"
    assert link["url"].endswith(base)

    state = client.get(base).json()
    assert state == {"authorized": False, "reason": "moderation_disabled"}
    assert client.post(
        f"{base}/records", json={"attendee_name": "Ada", "attendee_email": "ada@x.org"}
    ).status_code == 403

    client.patch(f"/events/{event_id}/settings", json={"moderation_enabled": True})
    added = client.post(
        f"{base}/records",
        json={"attendee_name": "Ada", "attendee_email": "ADA@x.org", "status": "excused"},
    )
    assert added.status_code == 201
    record = added.json()
    assert record["client_id"].startswith("moderator-")
    assert record["status"] == "verified"

    state = client.get(base).json()
    assert state["authorized"] is True
    assert state["link_label"] == "Helper"
    assert state["event"]["id"] == event_id
    assert [r["id"] for r in state["records"]] == [record["id"]]
    assert "records" not in client.get(base, params={"include_attendance": False}).json()

    updated = client.patch(f"{base}/records/{record['id']}/status", json={"status": "excused"})
    assert updated.status_code == 200
    assert updated.json()["status"] == "excused"

    # Records of other events are out of reach.
    foreign = client.post(
        f"/events/{other_id}/records", json={"attendee_name": "Bob", "attendee_email": "bob@x.org"}
    ).json()
    assert client.delete(f"{base}/records/{foreign['id']}").status_code == 404

    assert client.delete(f"{base}/records/{record['id']}").status_code == 204
    assert client.get(f"/events/{event_id}/records").json() == []

    wrong = f"/moderate/{event_id}/nope"
    assert client.get(wrong).json() == {"authorized": False, "reason": "link_not_found"}
    assert client.delete(f"{wrong}/records/{foreign['id']}").status_code == 401

    assert client.delete(f"/moderation-links/{link['id']}").status_code == 204
    assert client.patch(
        f"{base}/records/{foreign['id']}/status", json={"status": "cleared"}
    ).status_code == 401
