import asyncio
import logging

import pytest

from pandora.context import CancellationToken, LoggingExecutionContext
from pandora.exceptions import SkillCancelledError


class TestCancellationToken:
    def test_unbounded(self):
        token = CancellationToken()
        assert token.cancelled is False
        assert token.remaining() is None
        token.raise_if_cancelled()

    def test_cancel(self):
        token = CancellationToken()
        token.cancel("timed out")
        token.cancel("second reason ignored")
        assert token.cancelled is True
        assert token.reason == "timed out"
        with pytest.raises(SkillCancelledError, match="Execution cancelled: timed out"):
            token.raise_if_cancelled()

    def test_deadline(self):
        token = CancellationToken(timeout_seconds=0)
        assert token.cancelled is True
        assert token.reason == "deadline exceeded"
        assert token.remaining() == 0.0

    @pytest.mark.asyncio
    async def test_wait(self):
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        token.cancel()
        await asyncio.wait_for(waiter, timeout=1)


class TestLoggingExecutionContext:
    @pytest.mark.asyncio
    async def test_messages_prefixed_with_run_id(self, caplog):
        ctx = LoggingExecutionContext(workspace_id="ws-1", run_id="run-1")
        with caplog.at_level(logging.DEBUG, logger="pandora.context"):
            await ctx.debug("probing cache")
            await ctx.warning("slow query")
        assert [r.getMessage() for r in caplog.records] == ["[run-1] probing cache", "[run-1] slow query"]
        assert [r.levelno for r in caplog.records] == [logging.DEBUG, logging.WARNING]

    @pytest.mark.asyncio
    async def test_custom_logger(self, caplog):
        ctx = LoggingExecutionContext(logger=logging.getLogger("pandora.test"))
        with caplog.at_level(logging.INFO, logger="pandora.test"):
            await ctx.info("hello")
            await ctx.error("boom")
        assert [r.getMessage() for r in caplog.records] == ["hello", "boom"]
        assert ctx.cancellation.cancelled is False
