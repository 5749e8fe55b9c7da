"""Live admin page connection: presence channel, presence manager and idle tracking"""
from adminguard.realtime.channel import ChannelSubscription, PresenceChannel, PresenceHub
from adminguard.realtime.idle import ACTIVITY_SIGNALS, IdleTracker, Registration
from adminguard.realtime.presence import PresenceManager, PresenceRegistry

__all__ = [
    "ACTIVITY_SIGNALS",
    "ChannelSubscription",
    "IdleTracker",
    "PresenceChannel",
    "PresenceHub",
    "PresenceManager",
    "PresenceRegistry",
    "Registration",
]
