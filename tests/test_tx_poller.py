from __future__ import annotations

import asyncio

import pytest

from app.domain.errors import (
    MalformedSponsorshipResponseError,
    SponsorshipApiError,
    TransactionFailedError,
    TransactionTimeoutError,
)
from app.domain.tx_state import TransactionState, is_failure, is_terminal
from app.services.tx_poller import TransactionPoller
from conftest import TX_HASH


class FakeClock:
    """Time only advances when the poller sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _poller(tx_api, clock: FakeClock | None = None, **kwargs) -> TransactionPoller:
    if clock is None:
        return TransactionPoller(tx_api, **kwargs)
    return TransactionPoller(tx_api, clock=clock, sleep=clock.sleep, **kwargs)


@pytest.mark.asyncio
async def test_confirmed_after_two_sent_polls(tx_api):
    tx_api.script = [TransactionState.SENT, TransactionState.SENT, TransactionState.CONFIRMED]
    clock = FakeClock()

    result = await _poller(tx_api, clock, max_wait_ms=10_000, poll_interval_ms=100).wait_for("tx-1")

    assert result.state == TransactionState.CONFIRMED
    assert result.tx_hash == TX_HASH
    assert tx_api.polls == 3
    assert clock.sleeps == [0.1, 0.1]


@pytest.mark.asyncio
async def test_failed_raises_immediately(tx_api):
    tx_api.script = [TransactionState.QUEUED, TransactionState.FAILED]

    with pytest.raises(TransactionFailedError) as exc:
        await _poller(tx_api, FakeClock(), poll_interval_ms=100).wait_for("tx-1")

    assert exc.value.transaction_id == "tx-1"
    assert exc.value.state == TransactionState.FAILED
    assert exc.value.reason == "execution reverted"
    assert tx_api.polls == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("state", [TransactionState.DENIED, TransactionState.CANCELLED])
async def test_denied_and_cancelled_fail_fast(tx_api, state):
    tx_api.script = [state]

    with pytest.raises(TransactionFailedError) as exc:
        await _poller(tx_api, FakeClock()).wait_for("tx-1")

    assert exc.value.state == state
    assert exc.value.reason == "Unknown error"
    assert tx_api.polls == 1


@pytest.mark.asyncio
async def test_timeout_with_real_clock(tx_api):
    tx_api.script = [TransactionState.SENT] * 50

    with pytest.raises(TransactionTimeoutError) as exc:
        await _poller(tx_api).wait_for("tx-1", max_wait_ms=500, poll_interval_ms=100)

    assert exc.value.transaction_id == "tx-1"
    assert exc.value.max_wait_ms == 500
    assert exc.value.last_state == TransactionState.SENT
    assert tx_api.polls >= 4


@pytest.mark.asyncio
async def test_last_sleep_is_clipped_to_remaining_budget(tx_api):
    tx_api.script = [TransactionState.SENT] * 10
    clock = FakeClock()

    with pytest.raises(TransactionTimeoutError):
        await _poller(tx_api, clock).wait_for("tx-1", max_wait_ms=250, poll_interval_ms=100)

    assert clock.sleeps == pytest.approx([0.1, 0.1, 0.05])
    assert tx_api.polls == 3


@pytest.mark.asyncio
async def test_transient_errors_only_consume_budget(tx_api):
    tx_api.script = [
        SponsorshipApiError("HTTP 503", http_status=503),
        MalformedSponsorshipResponseError("Malformed transaction"),
        TransactionState.SENT,
        TransactionState.CONFIRMED,
    ]

    result = await _poller(tx_api, FakeClock(), poll_interval_ms=100).wait_for("tx-1")

    assert result.state == TransactionState.CONFIRMED
    assert tx_api.polls == 4


@pytest.mark.asyncio
async def test_timeout_after_only_errors_has_no_last_state(tx_api):
    tx_api.script = [SponsorshipApiError("HTTP 500", http_status=500)] * 10

    with pytest.raises(TransactionTimeoutError) as exc:
        await _poller(tx_api, FakeClock()).wait_for("tx-1", max_wait_ms=300, poll_interval_ms=100)

    assert exc.value.last_state is None


@pytest.mark.asyncio
async def test_cancellation_propagates(tx_api):
    tx_api.script = [TransactionState.SENT] * 1000
    poller = _poller(tx_api, max_wait_ms=60_000, poll_interval_ms=50)

    task = asyncio.create_task(poller.wait_for("tx-1"))
    await asyncio.sleep(0.12)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


def test_terminal_states():
    assert is_terminal(TransactionState.CONFIRMED)
    assert not is_failure(TransactionState.CONFIRMED)
    for state in (TransactionState.FAILED, TransactionState.DENIED, TransactionState.CANCELLED):
        assert is_terminal(state) and is_failure(state)
    for state in (TransactionState.INITIATED, TransactionState.QUEUED, TransactionState.SENT):
        assert not is_terminal(state)
