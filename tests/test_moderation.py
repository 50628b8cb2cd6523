import asyncio

import pytest

from attendly.models.attendance import AttendanceStatus
from attendly.models.event import STATIC_TOKEN
from attendly.redis_config import attendance_cache_key
from attendly.services.events import EventService
from attendly.services.moderation import ModerationService
from attendly.services.sessions import AttendanceSessionService, StartReason


async def _static_event(db, clock, **fields):
    events = EventService(db, clock)
    event = await events.start(
        await events.create("Seminar", rotation_enabled=False, **fields)
    )
    return event


def test_manual_attendees_get_synthetic_client_ids(session_factory, cache, clock):
    async def scenario():
        async with session_factory() as db:
            event = await _static_event(db, clock)
            moderation = ModerationService(db, cache, clock)

            record = await moderation.add_manual_attendee(event, " Grace Hopper ", "GRACE@navy.mil")
            excused = await moderation.add_manual_attendee(
                event, "Alan Turing", "alan@bletchley.uk", AttendanceStatus.EXCUSED
            )
            assert record.client_id.startswith("manual-")
            assert record.device_client_id is None
            assert record.attendee_name == "Grace Hopper"
            assert record.attendee_email == "grace@navy.mil"
            assert record.status == "verified"
            assert excused.status == "excused"

            with pytest.raises(ValueError):
                await moderation.add_manual_attendee(
                    event, "Eve", "eve@x.org", AttendanceStatus.SUSPICIOUS
                )
            with pytest.raises(ValueError):
                await moderation.add_manual_attendee(event, "  ", "eve@x.org")

            records = await moderation.list_records(event.id)
            assert {r.attendee_email for r in records} == {"grace@navy.mil", "alan@bletchley.uk"}

    asyncio.run(scenario())


def test_clearing_a_record_drops_the_reason(session_factory, cache, clock):
    async def scenario():
        async with session_factory() as db:
            event = await _static_event(db, clock, location_check_enabled=True)
            event_id = event.id
            sessions = AttendanceSessionService(db, cache, clock)
            started = await sessions.start(event_id, STATIC_TOKEN, "device-1")
            outcome = await sessions.submit(started.session_id, "device-1", "Ada", "ada@x.org")
            assert outcome.record.status == "suspicious"

            moderation = ModerationService(db, cache, clock)
            record = await moderation.get_record(outcome.record.id)
            record = await moderation.update_status(record, AttendanceStatus.CLEARED)
            assert record.status == "cleared"
            assert record.suspicious_reason is None

            record = await moderation.update_status(record, AttendanceStatus.SUSPICIOUS)
            assert record.status == "suspicious"

    asyncio.run(scenario())


def test_deleting_a_record_lets_the_device_check_in_again(session_factory, cache, clock):
    async def scenario():
        async with session_factory() as db:
            event = await _static_event(db, clock)
            event_id = event.id
            sessions = AttendanceSessionService(db, cache, clock)

            started = await sessions.start(event_id, STATIC_TOKEN, "device-1")
            outcome = await sessions.submit(started.session_id, "device-1", "Ada", "ada@x.org")
            assert outcome.success
            blocked = await sessions.start(event_id, STATIC_TOKEN, "device-1")
            assert blocked.reason is StartReason.ALREADY_SUBMITTED

            moderation = ModerationService(db, cache, clock)
            await moderation.delete_record(await moderation.get_record(outcome.record.id))
            assert await cache.get(attendance_cache_key(event_id, "device-1")) is None
            assert await moderation.get_record(outcome.record.id) is None

            assert (await sessions.start(event_id, STATIC_TOKEN, "device-1")).authorized

    asyncio.run(scenario())
