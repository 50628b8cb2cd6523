import asyncio

from attendly.models.event import STATIC_TOKEN
from attendly.services.events import EventService
from attendly.services.host_lease import HostLeaseService
from attendly.services.tokens import TokenRotationService


async def _active_event(db, clock, **fields):
    events = EventService(db, clock)
    event = await events.create("Lecture", **fields)
    return await events.start(event)


def test_only_one_tab_holds_the_lease(session_factory, clock):
    async def scenario():
        async with session_factory() as db:
            event = await _active_event(db, clock)
            leases = HostLeaseService(db, clock)

            assert await leases.claim(event.id, "tab-a")
            assert not await leases.claim(event.id, "tab-b")
            # Re-claiming our own lease just extends it.
            assert await leases.claim(event.id, "tab-a")

            events = EventService(db, clock)
            current = await events.get(event.id)
            assert events.qr_view(current, "tab-a").is_host
            assert not events.qr_view(current, "tab-b").is_host

    asyncio.run(scenario())


def test_lease_is_taken_over_after_it_lapses(session_factory, clock):
    async def scenario():
        async with session_factory() as db:
            event = await _active_event(db, clock)
            leases = HostLeaseService(db, clock)
            assert await leases.claim(event.id, "tab-a")

            clock.advance(10)
            assert await leases.renew(event.id, "tab-a")

            # Still within 20s of the last renewal.
            clock.advance(19)
            assert not await leases.claim(event.id, "tab-b")

            clock.advance(2)
            events = EventService(db, clock)
            assert events.qr_view(await events.get(event.id)).host_id is None
            assert await leases.claim(event.id, "tab-b")
            assert not await leases.renew(event.id, "tab-a")

    asyncio.run(scenario())


def test_inactive_or_static_events_cannot_be_hosted(session_factory, clock):
    async def scenario():
        async with session_factory() as db:
            events = EventService(db, clock)
            inactive = await events.create("Not started")
            static = await _active_event(db, clock, rotation_enabled=False)
            leases = HostLeaseService(db, clock)

            assert not await leases.claim(inactive.id, "tab-a")
            assert not await leases.claim(static.id, "tab-a")
            assert static.current_token == STATIC_TOKEN

    asyncio.run(scenario())


def test_release_stops_the_event_only_for_the_holder(session_factory, clock):
    async def scenario():
        async with session_factory() as db:
            event = await _active_event(db, clock)
            leases = HostLeaseService(db, clock)
            assert await leases.claim(event.id, "tab-a")
            assert await TokenRotationService(db, clock).rotate(event.id, "tab-a")

            assert not await leases.release(event.id, "tab-b")
            assert await leases.release(event.id, "tab-a")

            event = await EventService(db, clock).get(event.id)
            assert not event.is_active
            assert event.current_token is None
            assert event.host_id is None

    asyncio.run(scenario())


def test_release_can_keep_the_event_running(session_factory, clock):
    async def scenario():
        async with session_factory() as db:
            event = await _active_event(db, clock)
            leases = HostLeaseService(db, clock)
            assert await leases.claim(event.id, "tab-a")
            assert await leases.release(event.id, "tab-a", stop_event=False)

            event = await EventService(db, clock).get(event.id)
            assert event.is_active
            assert event.host_id is None
            assert await leases.claim(event.id, "tab-b")

    asyncio.run(scenario())


def test_concurrent_claims_on_an_expired_lease_have_one_winner(session_factory, clock):
    async def setup():
        async with session_factory() as db:
            event = await _active_event(db, clock)
            assert await HostLeaseService(db, clock).claim(event.id, "tab-old")
            return event.id

    async def claim(event_id, tab_id):
        async with session_factory() as db:
            return await HostLeaseService(db, clock).claim(event_id, tab_id)

    async def race(event_id):
        return await asyncio.gather(claim(event_id, "tab-a"), claim(event_id, "tab-b"))

    event_id = asyncio.run(setup())
    clock.advance(25)
    results = asyncio.run(race(event_id))
    assert sorted(results) == [False, True]
