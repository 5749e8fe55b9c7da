"""In-process presence channels.

A ``PresenceHub`` owns one ``PresenceChannel`` per topic. A channel keeps a
keyed presence state ``{key: [payload, ...]}`` (one entry per live
subscription tracking under that key) and fans out a sync with the full state
to every subscriber after each change.

Usage:
- await subscription.track(payload)   # publish/replace this connection's payload
- await subscription.untrack()         # withdraw it
- await subscription.unsubscribe()     # stop receiving syncs
"""
import asyncio
import itertools
from typing import Any, Awaitable, Callable, Dict, List, Optional

from adminguard.utils.logger import logger

PresenceState = Dict[str, List[Dict[str, Any]]]
SyncCallback = Callable[[PresenceState], Awaitable[None]]

_ref_counter = itertools.count(1)


class ChannelSubscription:
    def __init__(self, channel: "PresenceChannel", key: str, on_sync: Optional[SyncCallback]):
        self.channel = channel
        self.key = key
        self.ref = next(_ref_counter)
        self.on_sync = on_sync
        self.active = True

    async def track(self, payload: Dict[str, Any]) -> None:
        if not self.active:
            return
        await self.channel._track(self, payload)

    async def untrack(self) -> None:
        await self.channel._untrack(self)

    async def unsubscribe(self) -> None:
        """Untrack and stop receiving syncs. Calling it again does nothing."""
        if not self.active:
            return
        self.active = False
        await self.channel._remove(self)


class PresenceChannel:
    def __init__(self, topic: str):
        self.topic = topic
        self._subscriptions: Dict[int, ChannelSubscription] = {}
        self._tracked: Dict[int, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    def subscribe(self, key: str, on_sync: Optional[SyncCallback] = None) -> ChannelSubscription:
        subscription = ChannelSubscription(self, key, on_sync)
        self._subscriptions[subscription.ref] = subscription
        logger.info(
            f"Presence subscribe: key={key} total={len(self._subscriptions)}",
            extra={"topic": self.topic, "admin_id": key},
        )
        return subscription

    def presence_state(self) -> PresenceState:
        state: PresenceState = {}
        for ref, payload in self._tracked.items():
            subscription = self._subscriptions.get(ref)
            if subscription is None:
                continue
            state.setdefault(subscription.key, []).append(dict(payload))
        return state

    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def _track(self, subscription: ChannelSubscription, payload: Dict[str, Any]) -> None:
        async with self._lock:
            self._tracked[subscription.ref] = dict(payload)
        await self._broadcast()

    async def _untrack(self, subscription: ChannelSubscription) -> None:
        async with self._lock:
            removed = self._tracked.pop(subscription.ref, None)
        if removed is not None:
            await self._broadcast()

    async def _remove(self, subscription: ChannelSubscription) -> None:
        async with self._lock:
            self._subscriptions.pop(subscription.ref, None)
            removed = self._tracked.pop(subscription.ref, None)
        logger.info(
            f"Presence unsubscribe: key={subscription.key} total={len(self._subscriptions)}",
            extra={"topic": self.topic, "admin_id": subscription.key},
        )
        if removed is not None:
            await self._broadcast()

    async def _broadcast(self) -> None:
        state = self.presence_state()
        for subscription in list(self._subscriptions.values()):
            if subscription.on_sync is None or not subscription.active:
                continue
            try:
                await subscription.on_sync(state)
            except Exception as exc:
                # one broken listener must not starve the others
                logger.warning(
                    f"Presence sync callback failed: {exc}",
                    extra={"topic": self.topic, "admin_id": subscription.key},
                )


class PresenceHub:
    """Topic -> channel registry, held on ``app.state``"""

    def __init__(self) -> None:
        self._channels: Dict[str, PresenceChannel] = {}

    def channel(self, topic: str) -> PresenceChannel:
        if topic not in self._channels:
            self._channels[topic] = PresenceChannel(topic)
        return self._channels[topic]
