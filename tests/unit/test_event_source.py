"""Unit tests for the Web3 event source (mocked Web3)."""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from tests.fakes import ALICE, BOB, TOKEN_A
from transfer_indexer.config.settings import Settings
from transfer_indexer.services.event_source import TRANSFER_TOPIC, Web3EventSource
from transfer_indexer.utils.exceptions import InvalidRange, SourceUnavailable


def make_log(block_number, log_index, removed=False, topic_count=3):
    """Raw log dict as returned by eth_getLogs."""
    return {
        "address": TOKEN_A,
        "blockNumber": block_number,
        "logIndex": log_index,
        "transactionHash": bytes.fromhex(f"{block_number:032x}{log_index:032x}"),
        "topics": [TRANSFER_TOPIC] + ["0x" + "0" * 64] * (topic_count - 1),
        "data": "0x",
        "removed": removed,
    }


def decode(log):
    """Stand-in for ContractEvent.process_log."""
    return {
        "args": {"from": ALICE, "to": BOB, "value": 10**30},
        "transactionHash": log["transactionHash"],
        "blockNumber": log["blockNumber"],
        "logIndex": log["logIndex"],
    }


@pytest.fixture
def w3():
    """Mock synchronous Web3 instance."""
    w3 = MagicMock()
    w3.eth.block_number = 1000
    w3.eth.get_block.return_value = {"timestamp": 1_700_000_000}
    w3.eth.contract.return_value.events.Transfer.return_value.process_log.side_effect = decode
    return w3


class TestFetchRange:
    """Tests for Web3EventSource.fetch_range."""

    @pytest.mark.asyncio
    async def test_reversed_range_raises_without_rpc(self, w3):
        """InvalidRange is raised before any RPC call."""
        source = Web3EventSource(w3)

        with pytest.raises(InvalidRange):
            await source.fetch_range(TOKEN_A, 10, 9)

        w3.eth.get_logs.assert_not_called()
        await source.close()

    @pytest.mark.asyncio
    async def test_decodes_and_orders_events(self, w3):
        """Events are decoded, normalized and ordered by (block, log index)."""
        w3.eth.get_logs.return_value = [make_log(12, 1), make_log(11, 4), make_log(12, 0)]
        source = Web3EventSource(w3)

        events = await source.fetch_range(TOKEN_A, 10, 20)

        assert [(e.block_number, e.log_index) for e in events] == [(11, 4), (12, 0), (12, 1)]
        first = events[0]
        assert first.transaction_hash == "0x" + f"{11:032x}{4:032x}"
        assert first.from_address == ALICE
        assert first.token_address == TOKEN_A
        assert first.value == 10**30

        params = w3.eth.get_logs.call_args.args[0]
        assert params["fromBlock"] == 10
        assert params["toBlock"] == 20
        assert params["topics"] == [TRANSFER_TOPIC]
        await source.close()

    @pytest.mark.asyncio
    async def test_skips_removed_and_non_erc20_logs(self, w3):
        """Reorged logs and ERC-721 style logs (4 topics) are ignored."""
        w3.eth.get_logs.return_value = [
            make_log(11, 0, removed=True),
            make_log(11, 1, topic_count=4),
            make_log(11, 2),
        ]
        source = Web3EventSource(w3)

        events = await source.fetch_range(TOKEN_A, 11, 11)

        assert [e.log_index for e in events] == [2]
        await source.close()

    @pytest.mark.asyncio
    async def test_transport_failure_is_source_unavailable(self, w3):
        """RPC errors surface as SourceUnavailable."""
        w3.eth.get_logs.side_effect = ConnectionError("connection reset")
        source = Web3EventSource(w3)

        with pytest.raises(SourceUnavailable):
            await source.fetch_range(TOKEN_A, 1, 2)
        await source.close()


class TestBlocks:
    """Tests for block time and frontier lookups."""

    @pytest.mark.asyncio
    async def test_block_time_is_cached(self, w3):
        """Each block is fetched from the node at most once."""
        source = Web3EventSource(w3)

        first = await source.resolve_block_time(500)
        second = await source.resolve_block_time(500)

        assert first == second == datetime.fromtimestamp(1_700_000_000, tz=UTC)
        w3.eth.get_block.assert_called_once_with(500)
        await source.close()

    @pytest.mark.asyncio
    async def test_frontier_subtracts_confirmations(self, w3):
        """Frontier trails the head by the confirmation depth."""
        source = Web3EventSource(w3, confirmations=12)

        assert await source.current_frontier() == 988
        await source.close()

    @pytest.mark.asyncio
    async def test_frontier_never_negative(self, w3):
        """A young chain has frontier 0."""
        w3.eth.block_number = 5
        source = Web3EventSource(w3, confirmations=12)

        assert await source.current_frontier() == 0
        await source.close()


@pytest.mark.asyncio
async def test_chain_id(w3):
    """Chain ID is read from the node."""
    w3.eth.chain_id = 56
    source = Web3EventSource(w3)

    assert await source.chain_id() == 56
    await source.close()


@pytest.mark.asyncio
async def test_from_settings_sizes_pool_above_concurrency():
    """Timed-out calls still holding threads leave room for new ones."""
    settings = Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        token_addresses=TOKEN_A,
        rpc_max_concurrency=4,
        rpc_timeout=7,
        _env_file=None,
    )
    source = Web3EventSource.from_settings(settings)

    assert source._executor._max_workers > 4
    assert source.timeout == 7
    assert source.w3.provider._request_kwargs["timeout"] == 7
    await source.close()
