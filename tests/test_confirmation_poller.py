"""
Tests for ConfirmationPoller: confirmed, reverted and timed out stay distinct.
"""
import pytest

from swapcache.core.models import SignatureStatus
from swapcache.execution.confirmation_poller import ConfirmationPoller
from tests.fakes import FakeClock, FakeDirect, make_sleep


def _poller(direct):
    clock = FakeClock()
    return ConfirmationPoller(direct, interval=0.5, timeout=30.0, clock=clock, sleep=make_sleep(clock))


class TestConfirmationPoller:
    @pytest.mark.asyncio
    async def test_confirmed_after_pending(self):
        direct = FakeDirect(statuses=[None, SignatureStatus("processed"), SignatureStatus("finalized")])
        result = await _poller(direct).confirm("sig")
        assert result.confirmed
        assert result.error is None
        assert not result.timed_out
        assert direct.status_calls == 3

    @pytest.mark.asyncio
    async def test_error_reported_immediately(self):
        direct = FakeDirect(statuses=[SignatureStatus("processed", err="InsufficientFunds")])
        result = await _poller(direct).confirm("sig")
        assert not result.confirmed
        assert result.error == "InsufficientFunds"
        assert not result.timed_out
        assert direct.status_calls == 1

    @pytest.mark.asyncio
    async def test_structured_error_is_serialized(self):
        direct = FakeDirect(statuses=[SignatureStatus("confirmed", err={"InstructionError": [0, "Custom"]})])
        result = await _poller(direct).confirm("sig")
        assert "InstructionError" in result.error

    @pytest.mark.asyncio
    async def test_timeout_is_not_a_failure(self):
        direct = FakeDirect(statuses=[None] * 200)
        result = await _poller(direct).confirm("sig", timeout=5.0)
        assert not result.confirmed
        assert result.timed_out
        assert result.error is None
        assert result.elapsed_ms == pytest.approx(5000.0)

    @pytest.mark.asyncio
    async def test_status_read_errors_keep_polling(self):
        direct = FakeDirect(statuses=[ConnectionError("rpc blip"), SignatureStatus("confirmed")])
        result = await _poller(direct).confirm("sig")
        assert result.confirmed
