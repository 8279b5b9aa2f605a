"""
Event source types: raw events and the source contract.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from web3 import Web3


@dataclass(frozen=True, slots=True)
class RawEvent:
    """A decoded Transfer log, before block time resolution."""

    transaction_hash: str
    block_number: int
    log_index: int
    token_address: str
    from_address: str
    to_address: str
    value: int

    @property
    def key(self) -> tuple[str, int]:
        """Idempotence key."""
        return self.transaction_hash, self.log_index

    @classmethod
    def from_event_data(cls, event: Any, token_address: str) -> "RawEvent":
        """
        Build from web3 decoded event data.

        Args:
            event: EventData returned by process_log
            token_address: Token contract the log belongs to
        """
        args = event["args"]
        return cls(
            transaction_hash=Web3.to_hex(event["transactionHash"]).lower(),
            block_number=int(event["blockNumber"]),
            log_index=int(event["logIndex"]),
            token_address=token_address.lower(),
            from_address=args["from"].lower(),
            to_address=args["to"].lower(),
            value=int(args["value"]),
        )


class EventSource(Protocol):
    """
    Contract the indexing drivers depend on.

    Implemented by Web3EventSource; tests use in-memory fakes.
    """

    async def fetch_range(
        self, token_address: str, from_block: int, to_block: int
    ) -> list[RawEvent]:
        """Events in [from_block, to_block]; InvalidRange if reversed."""
        ...

    async def resolve_block_time(self, block_number: int) -> datetime:
        """Timestamp of a block."""
        ...

    async def current_frontier(self) -> int:
        """Highest block considered final."""
        ...

    def subscribe(
        self,
        token_address: str,
        from_block: int,
        poll_interval: float,
        max_range: int,
    ) -> "SubscriptionLike":
        """Start delivering events from from_block (inclusive)."""
        ...


class SubscriptionLike(Protocol):
    """Channel of event batches produced by a subscription."""

    next_block: int  # first block not yet fetched

    async def get(self) -> list[RawEvent]:
        """Next non-empty batch; raises SubscriptionBroken when the feed dies."""
        ...

    async def close(self) -> None:
        """Stop producing and release resources."""
        ...
