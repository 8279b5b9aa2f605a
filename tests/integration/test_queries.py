"""Integration tests for transfer queries (SQLite)."""

from datetime import timedelta

import pytest
import pytest_asyncio

from tests.fakes import ALICE, BOB, TOKEN_A, TOKEN_B, block_time, make_event
from transfer_indexer.services.queries import IndexingStatus, TransferQueryService
from transfer_indexer.services.records import TransferRecord
from transfer_indexer.services.stores import CheckpointStore, TransferStore

CAROL = "0x" + "3" * 40


@pytest_asyncio.fixture
async def seeded(session_maker):
    """Five transfers across two tokens."""
    events = [
        make_event(10, 0, from_address=ALICE, to_address=BOB),
        make_event(10, 1, from_address=BOB, to_address=ALICE),
        make_event(20, 0, from_address=ALICE, to_address=CAROL),
        make_event(30, 0, from_address=CAROL, to_address=BOB),
        make_event(40, 0, token_address=TOKEN_B, from_address=ALICE, to_address=BOB),
    ]
    await TransferStore(session_maker).insert_batch(
        [TransferRecord.from_raw(e, block_time(e.block_number)) for e in events]
    )
    return TransferQueryService(session_maker)


class TestGetTransfers:
    """Tests for TransferQueryService.get_transfers."""

    @pytest.mark.asyncio
    async def test_address_matches_both_directions(self, seeded):
        """A participant sees transfers it sent and received."""
        result = await seeded.get_transfers(address=ALICE, token_address=TOKEN_A)

        directions = [(t["block_number"], t["log_index"], t["direction"]) for t in result["transfers"]]
        assert directions == [
            ("20", 0, "outgoing"),
            ("10", 1, "incoming"),
            ("10", 0, "outgoing"),
        ]
        assert result["pagination"]["total"] == 3

    @pytest.mark.asyncio
    async def test_block_range_is_inclusive(self, seeded):
        """Both block bounds are inclusive."""
        result = await seeded.get_transfers(from_block=20, to_block=30, order="asc")

        assert [t["block_number"] for t in result["transfers"]] == ["20", "30"]

    @pytest.mark.asyncio
    async def test_timestamp_filter(self, seeded):
        """Block time bounds filter by resolved timestamps."""
        result = await seeded.get_transfers(
            from_timestamp=block_time(30) - timedelta(seconds=1)
        )

        assert [t["block_number"] for t in result["transfers"]] == ["40", "30"]

    @pytest.mark.asyncio
    async def test_pagination(self, seeded):
        """Pages are sized by limit and report totals."""
        result = await seeded.get_transfers(page=2, limit=2, order="asc")

        assert [t["block_number"] for t in result["transfers"]] == ["20", "30"]
        assert result["pagination"] == {"page": 2, "limit": 2, "total": 5, "total_pages": 3}

    @pytest.mark.asyncio
    async def test_limit_is_capped(self, seeded):
        """Oversized pages are clamped."""
        result = await seeded.get_transfers(limit=10_000)

        assert result["pagination"]["limit"] == 100

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"sort_by": "value"},
            {"order": "sideways"},
            {"page": 0},
            {"address": "not-an-address"},
        ],
    )
    async def test_invalid_arguments(self, seeded, kwargs):
        """Bad query arguments raise ValueError."""
        with pytest.raises(ValueError):
            await seeded.get_transfers(**kwargs)


class TestIndexingStatus:
    """Tests for indexing progress reporting."""

    @pytest.mark.asyncio
    async def test_reports_partial_data(self, session_maker):
        """Missing or lagging checkpoints are flagged as partial."""
        await CheckpointStore(session_maker).set(TOKEN_A, 90)
        service = TransferQueryService(session_maker)

        statuses = await service.get_indexing_status([TOKEN_A, TOKEN_B], frontier=100)

        assert statuses == [
            IndexingStatus(TOKEN_A, 90, 100),
            IndexingStatus(TOKEN_B, None, 100),
        ]
        assert all(s.is_partial for s in statuses)

    def test_caught_up_is_not_partial(self):
        """A checkpoint at the frontier is complete."""
        status = IndexingStatus(TOKEN_A, 100, 100)

        assert not status.is_partial
        assert status.as_dict()["partial"] is False
