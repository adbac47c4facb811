"""Tests for taleforge.services.narrator — Narrator adapter and RetryPolicy."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from taleforge.errors import NarratorError
from taleforge.services.narrator import NarrationRequest, Narrator, RetryPolicy

from conftest import ScriptedLLM


# ---------------------------------------------------------------------------
# Narrator
# ---------------------------------------------------------------------------

class TestNarrator:
    async def test_returns_reply_text(self) -> None:
        llm = ScriptedLLM(["The gate creaks open."])
        reply = await Narrator(llm).narrate(NarrationRequest(prompt="go"))
        assert reply.text == "The gate creaks open."
        assert llm.prompts == ["go"]

    async def test_provider_error_is_wrapped(self) -> None:
        llm = ScriptedLLM([ConnectionError("offline")])
        with pytest.raises(NarratorError, match="offline"):
            await Narrator(llm).narrate(NarrationRequest(prompt="go"))

    async def test_empty_reply_is_an_error(self) -> None:
        llm = ScriptedLLM(["   "])
        with pytest.raises(NarratorError, match="empty"):
            await Narrator(llm).narrate(NarrationRequest(prompt="go"))


# ---------------------------------------------------------------------------
# RetryPolicy
# ---------------------------------------------------------------------------

class TestRetryPolicy:
    async def test_first_success_is_returned(self) -> None:
        call = AsyncMock(return_value="ok")
        assert await RetryPolicy(delay=0).run(call) == "ok"
        assert call.await_count == 1

    async def test_retries_then_succeeds(self) -> None:
        call = AsyncMock(side_effect=[NarratorError("a"), NarratorError("b"), "ok"])
        assert await RetryPolicy(attempts=3, delay=0).run(call) == "ok"
        assert call.await_count == 3

    async def test_gives_up_after_attempts(self) -> None:
        call = AsyncMock(side_effect=NarratorError("still down"))
        with pytest.raises(NarratorError, match="still down"):
            await RetryPolicy(attempts=2, delay=0).run(call)
        assert call.await_count == 2

    async def test_other_errors_are_not_retried(self) -> None:
        call = AsyncMock(side_effect=KeyError("bug"))
        with pytest.raises(KeyError):
            await RetryPolicy(attempts=3, delay=0).run(call)
        assert call.await_count == 1

    async def test_timeout_becomes_narrator_error(self) -> None:
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(NarratorError, match="timed out"):
            await RetryPolicy(attempts=2, delay=0, timeout=0.01).run(slow)

    async def test_waits_between_attempts(self) -> None:
        call = AsyncMock(side_effect=[NarratorError("a"), "ok"])
        with patch("taleforge.services.narrator.asyncio.sleep", new=AsyncMock()) as sleep:
            await RetryPolicy(attempts=2, delay=2.5).run(call)
        sleep.assert_awaited_once_with(2.5)
