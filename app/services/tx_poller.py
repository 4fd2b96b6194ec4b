from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Protocol

from app.domain.errors import TransactionFailedError, TransactionTimeoutError
from app.domain.models import TransactionResult
from app.domain.tx_state import TransactionState, is_failure, is_terminal


class TransactionStatusApi(Protocol):
    async def get_transaction(self, transaction_id: str) -> TransactionResult: ...


class TransactionPoller:
    """
    Fixed-interval poll until the transaction reaches a terminal state or the
    time budget runs out.

    Query errors are transient: they are logged and the loop keeps going.
    CONFIRMED returns; FAILED, DENIED and CANCELLED raise immediately.
    """

    def __init__(
        self,
        api: TransactionStatusApi,
        *,
        max_wait_ms: int = 120_000,
        poll_interval_ms: int = 3_000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._api = api
        self._max_wait_ms = max_wait_ms
        self._poll_interval_ms = poll_interval_ms
        self._clock = clock
        self._sleep = sleep
        self._logger = logger or logging.getLogger(__name__)

    async def wait_for(
        self,
        transaction_id: str,
        max_wait_ms: int | None = None,
        poll_interval_ms: int | None = None,
    ) -> TransactionResult:
        max_wait = self._max_wait_ms if max_wait_ms is None else max_wait_ms
        interval = self._poll_interval_ms if poll_interval_ms is None else poll_interval_ms

        started = self._clock()
        last_state: TransactionState | None = None
        attempt = 0

        while True:
            elapsed_ms = (self._clock() - started) * 1000
            if elapsed_ms >= max_wait:
                break

            attempt += 1
            try:
                result = await self._api.get_transaction(transaction_id)
            except Exception as e:
                self._logger.warning(
                    "transaction poll error transaction_id=%s attempt=%d error=%s: %s",
                    transaction_id,
                    attempt,
                    type(e).__name__,
                    e,
                )
            else:
                last_state = result.state
                self._logger.debug(
                    "transaction poll transaction_id=%s attempt=%d state=%s",
                    transaction_id,
                    attempt,
                    result.state.value,
                )

                if is_terminal(result.state):
                    if is_failure(result.state):
                        raise TransactionFailedError(
                            transaction_id, state=result.state, reason=result.error_reason
                        )

                    self._logger.info(
                        "transaction confirmed transaction_id=%s tx_hash=%s attempts=%d",
                        transaction_id,
                        result.tx_hash,
                        attempt,
                    )
                    return result

            remaining_ms = max_wait - (self._clock() - started) * 1000
            if remaining_ms <= 0:
                break
            await self._sleep(min(interval, remaining_ms) / 1000)

        self._logger.warning(
            "transaction timeout transaction_id=%s max_wait_ms=%d last_state=%s attempts=%d",
            transaction_id,
            max_wait,
            last_state.value if last_state else None,
            attempt,
        )
        raise TransactionTimeoutError(transaction_id, max_wait_ms=max_wait, last_state=last_state)
