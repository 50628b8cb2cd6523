import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone

from attendly.services.events import EventService
from attendly.services.host_agent import (
    DatabaseHostBackend,
    EventSnapshot,
    HostState,
    QrHostAgent,
)
from attendly.services.tokens import RotatedToken


async def _started_event(session_factory, clock, **fields) -> str:
    async with session_factory() as db:
        events = EventService(db, clock)
        event = await events.start(await events.create("Lecture", **fields))
        return event.id


async def _load_event(session_factory, clock, event_id):
    async with session_factory() as db:
        return await EventService(db, clock).get(event_id)


def test_first_tab_hosts_and_second_views(session_factory, clock):
    async def scenario():
        event_id = await _started_event(session_factory, clock)
        backend = DatabaseHostBackend(session_factory, clock)
        shown = []
        host = QrHostAgent(backend, event_id, tab_id="tab-a")
        viewer = QrHostAgent(backend, event_id, tab_id="tab-b", on_token=shown.append)

        assert await host.sync() is HostState.HOST
        rotated = await host.rotate()
        assert host.token == rotated.token

        assert await viewer.sync() is HostState.VIEWER
        assert viewer.token == rotated.token
        assert shown == [rotated.token]
        assert await viewer.rotate() is None
        assert not await viewer.heartbeat()

    asyncio.run(scenario())


def test_race_for_an_expired_lease_leaves_one_host(session_factory, clock):
    async def scenario():
        event_id = await _started_event(session_factory, clock)
        backend = DatabaseHostBackend(session_factory, clock)
        first = QrHostAgent(backend, event_id, tab_id="tab-a")
        second = QrHostAgent(backend, event_id, tab_id="tab-b")

        assert await first.sync() is HostState.HOST
        clock.advance(25)

        states = await asyncio.gather(first.sync(), second.sync())
        assert sorted(s.value for s in states) == ["host", "viewer"]

        loser = first if first.state is HostState.VIEWER else second
        winner = second if loser is first else first
        assert not await loser.heartbeat()
        assert loser.state is HostState.VIEWER
        assert await winner.heartbeat()

    asyncio.run(scenario())


def test_host_that_lost_the_lease_becomes_viewer(session_factory, clock):
    async def scenario():
        event_id = await _started_event(session_factory, clock)
        backend = DatabaseHostBackend(session_factory, clock)
        first = QrHostAgent(backend, event_id, tab_id="tab-a")
        second = QrHostAgent(backend, event_id, tab_id="tab-b")

        assert await first.sync() is HostState.HOST
        clock.advance(21)
        assert await second.sync() is HostState.HOST

        assert await first.rotate() is None
        assert first.state is HostState.VIEWER

    asyncio.run(scenario())


def test_static_event_has_no_host(session_factory, clock):
    async def scenario():
        event_id = await _started_event(session_factory, clock, rotation_enabled=False)
        agent = QrHostAgent(DatabaseHostBackend(session_factory, clock), event_id)
        assert await agent.sync() is HostState.VIEWER
        assert agent.token == "static"

        missing = QrHostAgent(DatabaseHostBackend(session_factory, clock), "no-such-event")
        assert await missing.sync() is HostState.UNCLAIMED

    asyncio.run(scenario())


def test_run_hosts_until_stopped_then_releases(session_factory, clock):
    async def scenario():
        event_id = await _started_event(session_factory, clock)
        agent = QrHostAgent(
            DatabaseHostBackend(session_factory, clock),
            event_id,
            tab_id="tab-a",
            heartbeat_seconds=0.05,
            poll_seconds=0.05,
        )
        task = asyncio.ensure_future(agent.run())
        await asyncio.sleep(0.3)
        assert agent.is_host
        assert agent.token

        release = agent.stop()
        assert agent.stop() is release
        await asyncio.wait_for(task, timeout=2)
        assert await release is True
        assert agent.state is HostState.RELEASED

        event = await _load_event(session_factory, clock, event_id)
        assert not event.is_active
        assert event.host_id is None

    asyncio.run(scenario())


class FailingReleaseBackend:
    async def observe(self, event_id):
        return EventSnapshot(True, True, 3, None, None, None, True)

    async def claim(self, event_id, host_id):
        return True

    async def renew(self, event_id, host_id):
        return True

    async def rotate(self, event_id, host_id):
        return None

    async def release(self, event_id, host_id):
        raise ConnectionError("network is down")


def test_failed_release_does_not_raise(caplog):
    async def scenario():
        agent = QrHostAgent(FailingReleaseBackend(), "event-1", tab_id="tab-a")
        assert await agent.sync() is HostState.HOST

        release = agent.stop()
        await asyncio.wait([release])
        # Let the done-callback run.
        await asyncio.sleep(0)
        assert isinstance(release.exception(), ConnectionError)

    asyncio.run(scenario())
    assert "Best-effort release" in caplog.text


class FlakyBackend:
    """In-memory lease whose calls fail on the given call numbers."""

    def __init__(self, **failures):
        self.host_id = None
        self.calls = Counter()
        self.failures = {action: set(numbers) for action, numbers in failures.items()}
        self.released = []

    def _call(self, action):
        self.calls[action] += 1
        if self.calls[action] in self.failures.get(action, ()):
            raise ConnectionError("network blip")

    async def observe(self, event_id):
        self._call("observe")
        return EventSnapshot(True, True, 3, "shared", None, self.host_id, self.host_id is None)

    async def claim(self, event_id, host_id):
        self._call("claim")
        if self.host_id in (None, host_id):
            self.host_id = host_id
            return True
        return False

    async def renew(self, event_id, host_id):
        self._call("renew")
        return self.host_id == host_id

    async def rotate(self, event_id, host_id):
        self._call("rotate")
        if self.host_id != host_id:
            return None
        now = datetime.now(timezone.utc)
        return RotatedToken(f"token-{self.calls['rotate']}", now, now + timedelta(seconds=10))

    async def release(self, event_id, host_id):
        self._call("release")
        self.released.append(host_id)
        self.host_id = None
        return True


def _fast_agent(backend):
    return QrHostAgent(
        backend, "event-1", tab_id="tab-a", heartbeat_seconds=0.01, poll_seconds=0.01
    )


def test_run_survives_a_failed_poll(caplog):
    async def scenario():
        backend = FlakyBackend(observe={2})
        agent = _fast_agent(backend)
        task = asyncio.ensure_future(agent.run())
        await asyncio.sleep(0.2)

        assert not task.done()
        assert backend.calls["observe"] > 2
        assert agent.is_host
        assert backend.released == []

        release = agent.stop()
        await asyncio.wait_for(task, timeout=2)
        assert await release is True
        assert backend.released == ["tab-a"]

    asyncio.run(scenario())
    assert "network blip" in caplog.text


def test_hosting_tab_claims_only_once():
    async def scenario():
        backend = FlakyBackend()
        agent = _fast_agent(backend)
        task = asyncio.ensure_future(agent.run())
        await asyncio.sleep(0.2)

        assert agent.is_host
        assert backend.calls["observe"] > 3
        assert backend.calls["renew"] > 3
        assert backend.calls["claim"] == 1

        agent.stop()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(scenario())


def test_failed_renewal_demotes_until_the_next_poll(caplog):
    async def scenario():
        backend = FlakyBackend(renew={1})
        agent = _fast_agent(backend)
        task = asyncio.ensure_future(agent.run())
        await asyncio.sleep(0.2)

        assert not task.done()
        # Demoted by the failed renewal, then re-claimed its own lease.
        assert backend.calls["claim"] == 2
        assert agent.is_host
        assert backend.released == []

        agent.stop()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(scenario())
    assert "renew for event event-1 failed" in caplog.text


def test_failed_rotation_is_retried_after_reclaiming():
    async def scenario():
        backend = FlakyBackend(rotate={1})
        agent = _fast_agent(backend)
        task = asyncio.ensure_future(agent.run())
        await asyncio.sleep(0.2)

        assert not task.done()
        assert agent.is_host
        assert agent.token == "token-2"

        agent.stop()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(scenario())
