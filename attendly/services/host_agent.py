"""
One organizer tab's view of an event's rotating QR.

``QrHostAgent`` is the per-tab state machine:

    UNCLAIMED -> CLAIMING -> HOST (heartbeat + rotation) -> RELEASED
                        \\-> VIEWER (polls, retries the claim once the lease lapses)

It is driven by two fixed-interval timers (lease heartbeat and token
rotation) plus a viewer poll, all scheduled explicitly in ``run``. The agent
never raises on contention: a failed claim, renewal or rotation just turns it
into a viewer until the lease is free again. Backend errors inside ``run``
are logged and only cost the current tick.
"""
import asyncio
import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Protocol

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from attendly.clock import Clock, system_clock
from attendly.config import settings
from attendly.services.events import EventService
from attendly.services.host_lease import HostLeaseService
from attendly.services.tokens import RotatedToken, TokenRotationService
from attendly.utils.logging import get_logger

logger = get_logger(__name__)


class HostState(str, enum.Enum):
    UNCLAIMED = "unclaimed"
    CLAIMING = "claiming"
    HOST = "host"
    VIEWER = "viewer"
    RELEASED = "released"


@dataclass(frozen=True)
class EventSnapshot:
    is_active: bool
    rotation_enabled: bool
    rotation_interval_seconds: int
    token: str | None
    token_expires_at: datetime | None
    host_id: str | None
    lease_vacant: bool


class HostBackend(Protocol):
    async def observe(self, event_id: str) -> EventSnapshot | None: ...

    async def claim(self, event_id: str, host_id: str) -> bool: ...

    async def renew(self, event_id: str, host_id: str) -> bool: ...

    async def rotate(self, event_id: str, host_id: str) -> RotatedToken | None: ...

    async def release(self, event_id: str, host_id: str) -> bool: ...


class DatabaseHostBackend:
    """Backend for agents running next to the store (workers, tests)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = system_clock):
        self.session_factory = session_factory
        self.clock = clock

    async def observe(self, event_id: str) -> EventSnapshot | None:
        async with self.session_factory() as db:
            events = EventService(db, self.clock)
            event = await events.get(event_id)
            if event is None:
                return None
            view = events.qr_view(event)
            return EventSnapshot(
                is_active=event.is_active,
                rotation_enabled=event.rotation_enabled,
                rotation_interval_seconds=view.rotation_interval_seconds,
                token=view.token,
                token_expires_at=view.token_expires_at,
                host_id=view.host_id,
                lease_vacant=view.host_id is None,
            )

    async def claim(self, event_id: str, host_id: str) -> bool:
        async with self.session_factory() as db:
            return await HostLeaseService(db, self.clock).claim(event_id, host_id)

    async def renew(self, event_id: str, host_id: str) -> bool:
        async with self.session_factory() as db:
            return await HostLeaseService(db, self.clock).renew(event_id, host_id)

    async def rotate(self, event_id: str, host_id: str) -> RotatedToken | None:
        async with self.session_factory() as db:
            return await TokenRotationService(db, self.clock).rotate(event_id, host_id)

    async def release(self, event_id: str, host_id: str) -> bool:
        async with self.session_factory() as db:
            return await HostLeaseService(db, self.clock).release(event_id, host_id)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class HttpHostBackend:
    """Backend for agents talking to the API (``scripts/qr_host.py``)."""

    def __init__(self, client: httpx.AsyncClient, stop_on_release: bool = True):
        self.client = client
        self.stop_on_release = stop_on_release

    async def observe(self, event_id: str) -> EventSnapshot | None:
        response = await self.client.get(f"/events/{event_id}/qr")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        return EventSnapshot(
            is_active=data["is_active"],
            rotation_enabled=data["rotation_enabled"],
            rotation_interval_seconds=data["rotation_interval_seconds"],
            token=data["token"],
            token_expires_at=_parse_time(data["token_expires_at"]),
            host_id=data["host_id"],
            lease_vacant=data["host_id"] is None,
        )

    async def _host_call(self, event_id: str, action: str, **body) -> dict:
        response = await self.client.post(f"/events/{event_id}/host/{action}", json=body)
        response.raise_for_status()
        return response.json()

    async def claim(self, event_id: str, host_id: str) -> bool:
        return (await self._host_call(event_id, "claim", tab_id=host_id))["ok"]

    async def renew(self, event_id: str, host_id: str) -> bool:
        return (await self._host_call(event_id, "renew", tab_id=host_id))["ok"]

    async def rotate(self, event_id: str, host_id: str) -> RotatedToken | None:
        data = await self._host_call(event_id, "rotate", tab_id=host_id)
        if not data["ok"] or not data["token"]:
            return None
        return RotatedToken(
            token=data["token"],
            issued_at=datetime.now(timezone.utc),
            expires_at=_parse_time(data["token_expires_at"]),
        )

    async def release(self, event_id: str, host_id: str) -> bool:
        data = await self._host_call(
            event_id, "release", tab_id=host_id, stop_event=self.stop_on_release
        )
        return data["ok"]


class QrHostAgent:
    def __init__(
        self,
        backend: HostBackend,
        event_id: str,
        tab_id: str | None = None,
        heartbeat_seconds: float | None = None,
        poll_seconds: float | None = None,
        on_token: Callable[[str], None] | None = None,
    ):
        self.backend = backend
        self.event_id = event_id
        self.tab_id = tab_id or str(uuid.uuid4())
        self.heartbeat_seconds = heartbeat_seconds or settings.HOST_HEARTBEAT_SECONDS
        self.poll_seconds = poll_seconds or settings.VIEWER_POLL_SECONDS
        self.on_token = on_token

        self.state = HostState.UNCLAIMED
        self.token: str | None = None
        self.token_expires_at: datetime | None = None
        self.rotation_seconds: int = settings.ROTATION_DEFAULT_SECONDS
        self._stopping = asyncio.Event()
        self._release_task: asyncio.Task | None = None

    @property
    def is_host(self) -> bool:
        return self.state is HostState.HOST

    def _show(self, token: str | None, expires_at: datetime | None) -> None:
        changed = token != self.token
        self.token = token
        self.token_expires_at = expires_at
        if changed and token and self.on_token:
            self.on_token(token)

    def _demote(self) -> None:
        if self.state is HostState.RELEASED:
            return
        if self.state is HostState.HOST:
            logger.info("Tab %s is now a viewer of event %s", self.tab_id, self.event_id)
        self.state = HostState.VIEWER

    async def sync(self) -> HostState:
        """
        Observe the event and settle this tab's role.

        Claims the lease when it is vacant (or already ours), otherwise mirrors
        the host's token as a viewer.
        """
        if self.state is HostState.RELEASED:
            return self.state

        snapshot = await self.backend.observe(self.event_id)
        if self.state is HostState.RELEASED:
            return self.state
        if snapshot is None or not snapshot.is_active or not snapshot.rotation_enabled:
            self.state = HostState.VIEWER if snapshot else HostState.UNCLAIMED
            self._show(snapshot.token if snapshot else None, None)
            return self.state

        self.rotation_seconds = snapshot.rotation_interval_seconds
        if self.state is HostState.HOST and snapshot.host_id == self.tab_id:
            # The heartbeat keeps the lease alive.
            return self.state
        if snapshot.lease_vacant or snapshot.host_id == self.tab_id:
            self.state = HostState.CLAIMING
            claimed = await self.backend.claim(self.event_id, self.tab_id)
            if self.state is HostState.RELEASED:
                # Stopped mid-claim: stop() already sent the release.
                return self.state
            if claimed:
                if snapshot.host_id != self.tab_id:
                    logger.info("Tab %s is hosting event %s", self.tab_id, self.event_id)
                self.state = HostState.HOST
                return self.state

        self._demote()
        self._show(snapshot.token, snapshot.token_expires_at)
        return self.state

    async def heartbeat(self) -> bool:
        if self.state is not HostState.HOST:
            return False
        if await self.backend.renew(self.event_id, self.tab_id):
            return True
        self._demote()
        return False

    async def rotate(self) -> RotatedToken | None:
        if self.state is not HostState.HOST:
            return None
        rotated = await self.backend.rotate(self.event_id, self.tab_id)
        if rotated is None:
            self._demote()
            return None
        self._show(rotated.token, rotated.expires_at)
        return rotated

    async def _guarded(self, step: Callable[[], Awaitable], action: str):
        """
        Run one timer tick; an infrastructure error only fails this cycle.

        A renewal or rotation that errors counts as lost and demotes the tab;
        the next poll re-claims the lease if it is still ours.
        """
        try:
            return await step()
        except Exception as error:
            logger.warning(
                "Tab %s: %s for event %s failed: %s", self.tab_id, action, self.event_id, error
            )
            if action in ("renew", "rotate") or self.state is HostState.CLAIMING:
                self._demote()
            return None

    async def run(self) -> None:
        """Drive the tab until ``stop`` is called."""
        loop = asyncio.get_running_loop()
        await self._guarded(self.sync, "sync")
        if self.is_host:
            await self._guarded(self.rotate, "rotate")

        next_heartbeat = loop.time() + self.heartbeat_seconds
        next_rotation = loop.time() + self.rotation_seconds
        next_poll = loop.time() + self.poll_seconds

        while not self._stopping.is_set():
            wake_at = min(next_poll, next_heartbeat, next_rotation) if self.is_host else next_poll
            try:
                await asyncio.wait_for(
                    self._stopping.wait(), timeout=max(0.0, wake_at - loop.time())
                )
                break
            except asyncio.TimeoutError:
                pass

            now = loop.time()
            if self.is_host and now >= next_heartbeat:
                await self._guarded(self.heartbeat, "renew")
                next_heartbeat = now + self.heartbeat_seconds
            if self.is_host and now >= next_rotation:
                await self._guarded(self.rotate, "rotate")
                next_rotation = now + self.rotation_seconds
            if now >= next_poll:
                was_host = self.is_host
                await self._guarded(self.sync, "sync")
                if self.is_host and not was_host:
                    await self._guarded(self.rotate, "rotate")
                    next_heartbeat = now + self.heartbeat_seconds
                    next_rotation = now + self.rotation_seconds
                next_poll = now + self.poll_seconds

    def stop(self) -> asyncio.Task | None:
        """
        Leave the event. If hosting, fire a release without waiting for it.

        The returned task may be awaited, but nothing depends on it: the lease
        deadline is what frees the event if the release never lands.
        Calling it again returns the same task.
        """
        if self.state is HostState.RELEASED:
            return self._release_task
        self._stopping.set()
        may_hold_lease = self.state in (HostState.HOST, HostState.CLAIMING)
        self.state = HostState.RELEASED
        if not may_hold_lease:
            return None

        self._release_task = asyncio.ensure_future(
            self.backend.release(self.event_id, self.tab_id)
        )
        self._release_task.add_done_callback(self._log_release)
        return self._release_task

    def _log_release(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Best-effort release for event %s failed: %s", self.event_id, error)
