"""Admin presence tracking for live page connections.

A ``PresenceManager`` lives exactly as long as one admin page connection. It
publishes the admin on the shared presence topic, keeps ``user_presence``
fresh with a heartbeat, records the session in ``admin_sessions`` and closes
it again on cleanup. Store, audit, channel and geolocation failures are
logged and skipped: presence is observability, it never breaks the page.

``PresenceRegistry`` indexes the live managers by admin so that logout can
end every presence session the admin still has open.
"""
import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from adminguard.config import settings
from adminguard.database import session_scope
from adminguard.middleware.monitoring import record_presence_failure, set_online_admins
from adminguard.realtime.channel import ChannelSubscription, PresenceChannel, PresenceState
from adminguard.realtime.geo import GeoLocator
from adminguard.services.audit import AuditLogger, RequestMeta
from adminguard.services.presence_store import PresenceStore
from adminguard.utils.logger import logger

RosterCallback = Callable[[int, List[Dict[str, Any]]], Awaitable[None]]


class PresenceManager:
    def __init__(
        self,
        channel: PresenceChannel,
        session_factory: Optional[Callable[[], Session]] = None,
        geolocator: Optional[GeoLocator] = None,
        heartbeat_seconds: Optional[float] = None,
        store_factory: Callable[[Session], PresenceStore] = PresenceStore,
        audit_factory: Callable[[Session], AuditLogger] = AuditLogger,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.channel = channel
        self.session_factory = session_factory
        self.geolocator = geolocator or GeoLocator()
        self.heartbeat_seconds = (
            settings.PRESENCE_HEARTBEAT_SECONDS if heartbeat_seconds is None else heartbeat_seconds
        )
        self.store_factory = store_factory
        self.audit_factory = audit_factory
        self.clock = clock

        self.user_id: Optional[str] = None
        self.session_start: Optional[datetime] = None
        self.payload: Dict[str, Any] = {}
        self.roster: PresenceState = {}
        self._subscription: Optional[ChannelSubscription] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._on_roster: Optional[RosterCallback] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(
        self,
        user_id: str,
        email: str,
        role: str,
        current_page: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
        on_roster: Optional[RosterCallback] = None,
    ) -> bool:
        """Join the presence topic and open a session record.

        Returns False when the manager was already used or the channel could
        not be joined; the caller keeps working without presence.
        """
        if self.user_id is not None or self._closed:
            return False
        meta = meta or RequestMeta()

        self.user_id = user_id
        self.session_start = self.clock()
        self._on_roster = on_roster
        self.payload = {
            "user_id": user_id,
            "email": email,
            "role": role,
            "online_at": self.session_start.isoformat(),
            "session_start": self.session_start.isoformat(),
            "current_page": current_page,
        }

        try:
            self._subscription = self.channel.subscribe(user_id, self._handle_sync)
        except Exception as exc:
            record_presence_failure("join")
            logger.error(f"Presence subscribe failed: {exc}", extra={"admin_id": user_id})
            self.user_id = None
            self._closed = True
            return False
        await self._track()

        geo = await self._locate(meta.ip_address)
        await self._blocking("join", self._write_session_start, user_id, meta, geo)
        await self._blocking("join", self._write_presence, user_id, {
            "email": email,
            "role": role,
            "online_at": self.session_start,
            "session_start": self.session_start,
            "page_path": current_page,
            "presence_metadata": geo or None,
        })

        self._heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat_loop())
        logger.info("Presence session started", extra={"admin_id": user_id, "path": current_page})
        return True

    async def update_current_page(self, path: str) -> None:
        if self.user_id is None or self._closed:
            return
        self.payload["current_page"] = path
        await self._track()
        await self._blocking("page", self._write_presence, self.user_id, {"page_path": path})

    async def heartbeat(self) -> None:
        """Re-track the payload and refresh ``last_seen_at``."""
        if self.user_id is None or self._closed:
            return
        await self._track()
        await self._blocking("heartbeat", self._write_presence, self.user_id, {})

    async def cleanup(self) -> bool:
        """End the session exactly once. Later calls return False and do nothing."""
        if self._closed or self.user_id is None:
            return False
        self._closed = True
        user_id = self.user_id

        task = self._heartbeat_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._heartbeat_task = None

        duration = self.duration_seconds()
        await self._blocking("leave", self._write_session_end, user_id, duration)

        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            try:
                await subscription.unsubscribe()
            except Exception as exc:
                record_presence_failure("leave")
                logger.warning(f"Presence unsubscribe failed: {exc}", extra={"admin_id": user_id})

        set_online_admins(len(self.channel.presence_state()))
        self.roster = {}
        self.payload = {}
        self._on_roster = None
        self.user_id = None
        logger.info(
            "Presence session ended",
            extra={"admin_id": user_id, "outcome": f"{duration}s"},
        )
        return True

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    def online_admin_count(self) -> int:
        return len(self.roster)

    def online_admins(self) -> List[Dict[str, Any]]:
        return [payload for payloads in self.roster.values() for payload in payloads]

    def duration_seconds(self) -> int:
        if self.session_start is None:
            return 0
        return max(0, int((self.clock() - self.session_start).total_seconds()))

    async def _handle_sync(self, state: PresenceState) -> None:
        self.roster = state
        set_online_admins(len(state))
        if self._on_roster is not None:
            await self._on_roster(self.online_admin_count(), self.online_admins())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _track(self) -> None:
        if self._subscription is None:
            return
        try:
            await self._subscription.track(self.payload)
        except Exception as exc:
            record_presence_failure("track")
            logger.warning(f"Presence track failed: {exc}", extra={"admin_id": self.user_id})

    async def _locate(self, ip_address: str) -> Dict[str, Any]:
        try:
            return await self.geolocator.locate(ip_address)
        except Exception as exc:
            logger.warning(f"Geolocation skipped: {exc}", extra={"admin_id": self.user_id})
            return {}

    async def _blocking(self, operation: str, func: Callable, *args) -> None:
        try:
            await run_in_threadpool(func, *args)
        except Exception as exc:
            record_presence_failure(operation)
            logger.warning(
                f"Presence {operation} write skipped: {exc}",
                extra={"admin_id": self.user_id, "action": operation},
            )

    async def _heartbeat_loop(self) -> None:
        try:
            while not self._closed:
                await asyncio.sleep(self.heartbeat_seconds)
                await self.heartbeat()
        except asyncio.CancelledError:
            pass

    def _write_session_start(self, user_id: str, meta: RequestMeta, geo: Dict[str, Any]) -> None:
        with session_scope(self.session_factory) as db:
            self.audit_factory(db).log_session_start(user_id, meta, metadata=geo)
            self.store_factory(db).start_session(
                user_id,
                started_at=self.session_start,
                ip_address=meta.ip_address,
                user_agent=meta.user_agent,
                metadata=geo,
            )

    def _write_presence(self, user_id: str, fields: Dict[str, Any]) -> None:
        with session_scope(self.session_factory) as db:
            self.store_factory(db).upsert_presence(
                user_id,
                last_seen_at=self.clock(),
                session_duration_seconds=self.duration_seconds(),
                **fields,
            )

    def _write_session_end(self, user_id: str, duration: int) -> None:
        with session_scope(self.session_factory) as db:
            self.store_factory(db).end_session(user_id, ended_at=self.clock(), duration_seconds=duration)
            self.audit_factory(db).log_session_end(user_id, duration)


class PresenceRegistry:
    """Live presence managers by admin id, held on ``app.state``"""

    def __init__(self) -> None:
        self._managers: Dict[str, Set[PresenceManager]] = {}
        self._closers: Dict[PresenceManager, Callable[[], Awaitable[None]]] = {}

    def register(self, user_id: str, manager: PresenceManager,
                 close: Optional[Callable[[], Awaitable[None]]] = None) -> None:
        self._managers.setdefault(user_id, set()).add(manager)
        if close is not None:
            self._closers[manager] = close

    def unregister(self, user_id: str, manager: PresenceManager) -> None:
        managers = self._managers.get(user_id)
        if managers is not None:
            managers.discard(manager)
            if not managers:
                self._managers.pop(user_id, None)
        self._closers.pop(manager, None)

    def managers_for(self, user_id: str) -> List[PresenceManager]:
        return list(self._managers.get(user_id, set()))

    def connection_count(self) -> int:
        return sum(len(managers) for managers in self._managers.values())

    async def cleanup_user(self, user_id: str) -> int:
        """End every live presence session of ``user_id``; returns how many were ended."""
        ended = 0
        for manager in self.managers_for(user_id):
            close = self._closers.get(manager)
            self.unregister(user_id, manager)
            if await manager.cleanup():
                ended += 1
            if close is not None:
                try:
                    await close()
                except Exception as exc:
                    logger.warning(f"Closing presence connection failed: {exc}", extra={"admin_id": user_id})
        return ended

    async def cleanup_all(self) -> int:
        """End every live presence session (application shutdown)."""
        ended = 0
        for user_id in list(self._managers):
            ended += await self.cleanup_user(user_id)
        return ended
