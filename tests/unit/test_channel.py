"""
Tests for PageActionChannel.
"""

import pytest

from web_replay_agent.capture.channel import PageActionChannel


class MockPage:
    def __init__(self, payload=None, error=None, closed=False):
        self.payload = payload
        self.error = error
        self.closed = closed

    def is_closed(self):
        return self.closed

    async def evaluate(self, script):
        if self.error:
            raise self.error
        return self.payload


class TestDrain:

    @pytest.mark.asyncio
    async def test_drains_events(self):
        channel = PageActionChannel(MockPage({"events": [{"type": "click"}], "dropped": 0}))
        result = await channel.drain()

        assert result.status == "ok"
        assert result.events == [{"type": "click"}]
        assert result.dropped == 0

    @pytest.mark.asyncio
    async def test_accepts_bare_list(self):
        channel = PageActionChannel(MockPage([{"type": "click"}, "noise"]))
        result = await channel.drain()
        assert result.events == [{"type": "click"}]

    @pytest.mark.asyncio
    async def test_overflow_keeps_newest(self):
        events = [{"type": "click", "timestamp": i} for i in range(5)]
        channel = PageActionChannel(MockPage({"events": events, "dropped": 2}), capacity=3)

        result = await channel.drain()

        assert [e["timestamp"] for e in result.events] == [2, 3, 4]
        assert result.dropped == 4
        assert channel.total_dropped == 4


class TestTransportErrors:

    @pytest.mark.asyncio
    async def test_navigation_skips(self):
        channel = PageActionChannel(MockPage(error=RuntimeError("Execution context was destroyed")))
        result = await channel.drain()

        assert result.status == "skipped"
        assert not channel.closed

    @pytest.mark.asyncio
    async def test_target_closed_closes(self):
        channel = PageActionChannel(MockPage(error=RuntimeError("Target page, context or browser has been closed")))
        result = await channel.drain()

        assert result.status == "closed"
        assert channel.closed
        assert (await channel.drain()).status == "closed"

    @pytest.mark.asyncio
    async def test_other_error_skips(self):
        channel = PageActionChannel(MockPage(error=ValueError("boom")))
        assert (await channel.drain()).status == "skipped"

    @pytest.mark.asyncio
    async def test_closed_page(self):
        channel = PageActionChannel(MockPage(closed=True))
        assert (await channel.drain()).status == "closed"
        assert channel.closed
