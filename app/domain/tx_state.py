from __future__ import annotations

from enum import Enum


class TransactionState(str, Enum):
    INITIATED = "INITIATED"
    PENDING_RISK_SCREENING = "PENDING_RISK_SCREENING"
    DENIED = "DENIED"
    QUEUED = "QUEUED"
    SENT = "SENT"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


FAILURE_STATES = {
    TransactionState.FAILED,
    TransactionState.DENIED,
    TransactionState.CANCELLED,
}

TERMINAL = {TransactionState.CONFIRMED} | FAILURE_STATES


def is_terminal(state: TransactionState) -> bool:
    return state in TERMINAL


def is_failure(state: TransactionState) -> bool:
    return state in FAILURE_STATES
