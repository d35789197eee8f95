"""Tests for MutationGuard: flag lifecycle on success, failure and repeated writes."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.app.workspace.errors import WriteFailure
from src.app.workspace.guard import MutationGuard, SessionState


class TestGuardFlag:
    @pytest.mark.asyncio
    async def test_flag_set_during_write_and_cleared_after(self):
        state = SessionState()
        guard = MutationGuard(state)
        observed: list[bool] = []

        async def write() -> str:
            observed.append(state.write_in_flight)
            return "new-id"

        result = await guard.run("create_contact", write)

        assert result == "new-id"
        assert observed == [True]
        assert state.write_in_flight is False

    @pytest.mark.asyncio
    async def test_flag_false_after_many_writes(self):
        state = SessionState()
        guard = MutationGuard(state)
        write = AsyncMock(return_value=None)

        assert state.write_in_flight is False
        for _ in range(25):
            await guard.run("update_account", write)

        assert state.write_in_flight is False
        assert guard.guarded_writes == 25
        assert write.await_count == 25

    @pytest.mark.asyncio
    async def test_failure_clears_flag_and_reraises(self):
        state = SessionState()
        guard = MutationGuard(state)
        write = AsyncMock(side_effect=WriteFailure("accounts", "update", "boom"))

        with pytest.raises(WriteFailure, match="update on accounts failed: boom"):
            await guard.run("update_account", write)

        assert state.write_in_flight is False

    @pytest.mark.asyncio
    async def test_mixed_success_and_failure_leaves_flag_clear(self):
        state = SessionState()
        guard = MutationGuard(state)
        ok = AsyncMock(return_value=None)
        bad = AsyncMock(side_effect=RuntimeError("network down"))

        for write in (ok, bad, ok, bad, ok):
            try:
                await guard.run("delete_task", write)
            except RuntimeError:
                pass

        assert state.write_in_flight is False

    @pytest.mark.asyncio
    async def test_context_manager_form(self):
        state = SessionState()
        guard = MutationGuard(state)

        async with guard.guarding("log_meeting"):
            assert guard.active is True

        assert guard.active is False


class TestSettleCallback:
    @pytest.mark.asyncio
    async def test_on_settled_runs_after_flag_clears(self):
        state = SessionState()
        seen: list[bool] = []
        guard = MutationGuard(state, on_settled=lambda: seen.append(state.write_in_flight))

        await guard.run("update_contact", AsyncMock(return_value=None))

        assert seen == [False]

    @pytest.mark.asyncio
    async def test_on_settled_runs_on_failure(self):
        state = SessionState()
        settled = MagicMock()
        guard = MutationGuard(state, on_settled=settled)

        with pytest.raises(ValueError):
            await guard.run("update_contact", AsyncMock(side_effect=ValueError("bad")))

        settled.assert_called_once()

    def test_consume_clears_flag(self):
        state = SessionState(write_in_flight=True)
        guard = MutationGuard(state)
        guard.consume()
        assert state.write_in_flight is False
