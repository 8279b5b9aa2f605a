"""Unit tests for the live tail driver."""

import asyncio

import pytest

from tests.fakes import TOKEN_A, MemoryCheckpointStore, block_time, make_event, wait_until
from transfer_indexer.services.indexer import LiveTailDriver, TailState, TrackedEntity
from transfer_indexer.services.records import TransferRecord
from transfer_indexer.utils.exceptions import EntityFatal, SourceUnavailable
from transfer_indexer.utils.retry import BackoffPolicy

ENTITY = TrackedEntity(TOKEN_A)


def make_tail(source, transfer_store, checkpoint_store, backoff, reconnect_attempts=3, on_active=None):
    return LiveTailDriver(
        source,
        transfer_store,
        checkpoint_store,
        backoff=backoff,
        reconnect_backoff=BackoffPolicy(
            initial_delay=0, multiplier=1, max_delay=0, max_attempts=reconnect_attempts
        ),
        poll_interval=0.01,
        max_range=100,
        on_active=on_active,
    )


async def stop_tail(tail, task):
    tail.stop()
    with pytest.raises(asyncio.CancelledError):
        await task


class TestLiveTailDelivery:
    """Tests for persisting deliveries."""

    @pytest.mark.asyncio
    async def test_overlap_with_backfill_is_absorbed(self, source, transfer_store, fast_backoff):
        """Redelivered boundary block adds only the new event."""
        boundary = make_event(25000)
        await transfer_store.insert_batch([TransferRecord.from_raw(boundary, block_time(25000))])
        checkpoint_store = MemoryCheckpointStore({TOKEN_A: 25000})
        source.scripts = [[[boundary, make_event(25001)]]]
        tail = make_tail(source, transfer_store, checkpoint_store, fast_backoff)

        task = asyncio.create_task(tail.run(ENTITY, from_block=25000, checkpoint=25000))
        await wait_until(lambda: tail.checkpoint == 25001)
        await stop_tail(tail, task)

        assert tail.inserted == 1
        assert len(transfer_store.rows) == 2
        assert checkpoint_store.blocks[TOKEN_A] == 25001

    @pytest.mark.asyncio
    async def test_old_redelivery_keeps_checkpoint(self, source, transfer_store, fast_backoff):
        """A delivery below the checkpoint is stored but never moves it back."""
        checkpoint_store = MemoryCheckpointStore({TOKEN_A: 100})
        source.scripts = [[[make_event(90)], [make_event(101)]]]
        tail = make_tail(source, transfer_store, checkpoint_store, fast_backoff)

        task = asyncio.create_task(tail.run(ENTITY, from_block=90, checkpoint=100))
        await wait_until(lambda: tail.checkpoint == 101)
        await stop_tail(tail, task)

        assert checkpoint_store.writes == [(TOKEN_A, 101)]
        assert len(transfer_store.rows) == 2

    @pytest.mark.asyncio
    async def test_failed_insert_retried_on_same_batch(
        self, source, transfer_store, checkpoint_store, fast_backoff
    ):
        """A transient store failure is retried and the delivery lands once."""
        transfer_store.failures = 1
        source.scripts = [[[make_event(7, 0), make_event(7, 1)]]]
        tail = make_tail(source, transfer_store, checkpoint_store, fast_backoff)

        task = asyncio.create_task(tail.run(ENTITY, from_block=1, checkpoint=6))
        await wait_until(lambda: tail.checkpoint == 7)
        await stop_tail(tail, task)

        assert len(transfer_store.batches) == 1
        assert len(transfer_store.rows) == 2
        assert checkpoint_store.writes == [(TOKEN_A, 7)]

    @pytest.mark.asyncio
    async def test_on_active_fires_once(self, source, transfer_store, checkpoint_store, fast_backoff):
        """Activation callback runs on first attach only."""
        calls = []
        source.scripts = [[SourceUnavailable("reset")], []]
        tail = make_tail(
            source, transfer_store, checkpoint_store, fast_backoff, on_active=lambda: calls.append(1)
        )

        task = asyncio.create_task(tail.run(ENTITY, from_block=1))
        await wait_until(lambda: len(source.subscriptions) == 2)
        await stop_tail(tail, task)

        assert calls == [1]


class TestLiveTailReconnect:
    """Tests for subscription failure handling."""

    @pytest.mark.asyncio
    async def test_reconnects_from_last_fetched_block(
        self, source, transfer_store, checkpoint_store, fast_backoff
    ):
        """A broken subscription is reattached past what was delivered."""
        source.scripts = [[[make_event(101)], SourceUnavailable("reset")], []]
        tail = make_tail(source, transfer_store, checkpoint_store, fast_backoff)

        task = asyncio.create_task(tail.run(ENTITY, from_block=100))
        await wait_until(lambda: len(source.subscriptions) == 2)
        await stop_tail(tail, task)

        assert [s.from_block for s in source.subscriptions] == [100, 102]
        assert source.subscriptions[0].closed
        assert checkpoint_store.blocks[TOKEN_A] == 101

    @pytest.mark.asyncio
    async def test_consecutive_failures_are_fatal(
        self, source, transfer_store, checkpoint_store, fast_backoff
    ):
        """Too many reattach failures in a row halt the token."""
        source.scripts = [[SourceUnavailable("down")] for _ in range(3)]
        tail = make_tail(source, transfer_store, checkpoint_store, fast_backoff, reconnect_attempts=3)

        with pytest.raises(EntityFatal):
            await tail.run(ENTITY, from_block=1)

        assert len(source.subscriptions) == 3
        assert all(s.closed for s in source.subscriptions)
        assert tail.state is TailState.DETACHED

    @pytest.mark.asyncio
    async def test_progress_resets_failure_count(
        self, source, transfer_store, checkpoint_store, fast_backoff
    ):
        """Failures separated by deliveries are not consecutive."""
        source.scripts = [
            [SourceUnavailable("down")],
            [[make_event(5)], SourceUnavailable("down")],
            [SourceUnavailable("down")],
            [],
        ]
        tail = make_tail(source, transfer_store, checkpoint_store, fast_backoff, reconnect_attempts=3)

        task = asyncio.create_task(tail.run(ENTITY, from_block=1))
        await wait_until(lambda: len(source.subscriptions) == 4)

        assert tail.state is TailState.ACTIVE
        await stop_tail(tail, task)

    @pytest.mark.asyncio
    async def test_persist_failure_is_fatal(self, source, checkpoint_store, transfer_store, fast_backoff):
        """A delivery that cannot be stored halts the token; checkpoint stays."""
        transfer_store.failures = fast_backoff.max_attempts
        source.scripts = [[[make_event(7)]]]
        tail = make_tail(source, transfer_store, checkpoint_store, fast_backoff)

        with pytest.raises(EntityFatal):
            await tail.run(ENTITY, from_block=1, checkpoint=6)

        assert checkpoint_store.writes == []
        assert tail.checkpoint == 6


class TestLiveTailStop:
    """Tests for detaching."""

    @pytest.mark.asyncio
    async def test_stop_detaches(self, source, transfer_store, checkpoint_store, fast_backoff):
        """stop() cancels the tail and closes the subscription."""
        tail = make_tail(source, transfer_store, checkpoint_store, fast_backoff)

        task = asyncio.create_task(tail.run(ENTITY, from_block=1))
        await wait_until(lambda: tail.state is TailState.ACTIVE)
        await stop_tail(tail, task)

        assert tail.state is TailState.DETACHED
        assert source.subscriptions[0].closed

    @pytest.mark.asyncio
    async def test_detached_tail_cannot_restart(
        self, source, transfer_store, checkpoint_store, fast_backoff
    ):
        """DETACHED is terminal."""
        tail = make_tail(source, transfer_store, checkpoint_store, fast_backoff)
        tail.stop()

        with pytest.raises(RuntimeError):
            await tail.run(ENTITY, from_block=1)
