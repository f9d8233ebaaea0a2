"""Tests for the nonce sequencer."""

import asyncio

import pytest

from treasury_relay.transfer.nonce import UNKNOWN_NONCE, NonceSequencer


class CountSource:
    """Transaction count source that yields to the loop before answering."""

    def __init__(self, count: int):
        self.count = count
        self.calls = 0

    async def get_transaction_count(self) -> int:
        self.calls += 1
        await asyncio.sleep(0.01)
        return self.count


class TestReserve:
    """Tests for nonce reservation."""

    @pytest.mark.asyncio
    async def test_cold_start_reads_network(self):
        """Test that the first reservation fetches the on-chain count."""
        sequencer = NonceSequencer()
        source = CountSource(42)

        assert sequencer.value == UNKNOWN_NONCE
        assert await sequencer.reserve(source) == 42
        assert sequencer.value == 43
        assert source.calls == 1

    @pytest.mark.asyncio
    async def test_known_counter_skips_network(self):
        """Test that an initialized counter does not hit the network."""
        sequencer = NonceSequencer()
        await sequencer.sync(5)
        source = CountSource(999)

        assert await sequencer.reserve(source) == 5
        assert await sequencer.reserve(source) == 6
        assert source.calls == 0

    @pytest.mark.asyncio
    async def test_concurrent_reservations_are_contiguous(self):
        """Test that concurrent reservations get exactly [initial, initial+N)."""
        sequencer = NonceSequencer()
        source = CountSource(100)

        results = await asyncio.gather(*(sequencer.reserve(source) for _ in range(50)))

        assert sorted(results) == list(range(100, 150))
        assert len(set(results)) == 50
        assert sequencer.value == 150
        assert source.calls == 1


class TestRelease:
    """Tests for nonce rollback."""

    @pytest.mark.asyncio
    async def test_release_latest_reservation(self):
        """Test that releasing the most recent reservation rolls back."""
        sequencer = NonceSequencer()
        await sequencer.sync(10)
        nonce = await sequencer.reserve(CountSource(0))

        assert await sequencer.release(nonce) is True
        assert sequencer.value == 10

    @pytest.mark.asyncio
    async def test_stale_release_is_noop(self):
        """Test that releasing a nonce followed by another reservation does nothing."""
        sequencer = NonceSequencer()
        await sequencer.sync(10)
        first = await sequencer.reserve(CountSource(0))
        await sequencer.reserve(CountSource(0))

        assert await sequencer.release(first) is False
        assert sequencer.value == 12

    @pytest.mark.asyncio
    async def test_double_release_only_rolls_back_once(self):
        """Test that the same nonce cannot be released twice."""
        sequencer = NonceSequencer()
        await sequencer.sync(3)
        nonce = await sequencer.reserve(CountSource(0))

        assert await sequencer.release(nonce) is True
        assert await sequencer.release(nonce) is False
        assert sequencer.value == 3

    @pytest.mark.asyncio
    async def test_release_on_unknown_counter(self):
        """Test that release is a no-op while the counter is unknown."""
        sequencer = NonceSequencer()

        assert await sequencer.release(-2) is False
        assert sequencer.value == UNKNOWN_NONCE


class TestSync:
    """Tests for network synchronization."""

    @pytest.mark.asyncio
    async def test_sync_never_moves_backward(self):
        """Test that a lower network count does not rewind a known counter."""
        sequencer = NonceSequencer()
        await sequencer.sync(20)
        await sequencer.sync(15)

        assert sequencer.value == 20

    @pytest.mark.asyncio
    async def test_sync_catches_up(self):
        """Test that a higher network count moves the counter forward."""
        sequencer = NonceSequencer()
        await sequencer.sync(20)
        await sequencer.sync(25)

        assert sequencer.value == 25

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self):
        """Test that invalidate makes the next reservation read the network."""
        sequencer = NonceSequencer()
        await sequencer.sync(20)
        await sequencer.invalidate()
        source = CountSource(18)

        assert sequencer.value == UNKNOWN_NONCE
        assert await sequencer.reserve(source) == 18
        assert source.calls == 1
