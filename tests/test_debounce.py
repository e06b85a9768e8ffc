"""Tests for the Debouncer."""

import asyncio
from unittest.mock import MagicMock

import pytest

from fxpulse.services.debounce import Debouncer


class TestDebouncer:
    @pytest.mark.asyncio
    async def test_burst_runs_once(self):
        """A burst of schedules runs the callback once."""
        callback = MagicMock()
        debouncer = Debouncer(0.01, callback)
        for _ in range(5):
            debouncer.schedule()
        assert debouncer.pending
        await asyncio.sleep(0.05)
        callback.assert_called_once()
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_reschedule_delays_call(self):
        """Rescheduling pushes the call back."""
        callback = MagicMock()
        debouncer = Debouncer(0.1, callback)
        debouncer.schedule()
        await asyncio.sleep(0.06)
        debouncer.schedule()
        await asyncio.sleep(0.06)
        callback.assert_not_called()
        await asyncio.sleep(0.1)
        callback.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancel(self):
        """cancel() drops the pending call."""
        callback = MagicMock()
        debouncer = Debouncer(0.01, callback)
        debouncer.schedule()
        assert debouncer.cancel() is True
        await asyncio.sleep(0.03)
        callback.assert_not_called()
        assert debouncer.cancel() is False

    @pytest.mark.asyncio
    async def test_flush_runs_now(self):
        """flush() runs the pending call now."""
        callback = MagicMock()
        debouncer = Debouncer(10.0, callback)
        debouncer.schedule()
        assert debouncer.flush() is True
        callback.assert_called_once()
        assert debouncer.flush() is False

    @pytest.mark.asyncio
    async def test_callback_error_logged(self, caplog):
        """Callback errors are logged, not raised."""
        debouncer = Debouncer(0, MagicMock(side_effect=RuntimeError("boom")), name="heatmap recompute")
        debouncer.schedule()
        await asyncio.sleep(0.01)
        assert "heatmap recompute callback failed" in caplog.text

    def test_without_loop_runs_immediately(self):
        """Without an event loop the callback runs inline."""
        callback = MagicMock()
        Debouncer(0.5, callback).schedule()
        callback.assert_called_once()
