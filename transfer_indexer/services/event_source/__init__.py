"""
Event Source Adapter.

Read-only gateway to the event log: bounded range queries, block
timestamps, the current frontier, and push-style subscriptions delivered
over an asyncio queue.
"""

from .constants import ERC20_ABI, TRANSFER_TOPIC
from .core import Web3EventSource
from .subscription import Subscription
from .types import EventSource, RawEvent, SubscriptionLike

__all__ = [
    "ERC20_ABI",
    "EventSource",
    "RawEvent",
    "Subscription",
    "SubscriptionLike",
    "TRANSFER_TOPIC",
    "Web3EventSource",
]
