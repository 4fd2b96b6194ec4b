from __future__ import annotations

from enum import Enum


class MintStage(str, Enum):
    RESOLVE_USER = "RESOLVE_USER"
    CHECK_SUPPLY = "CHECK_SUPPLY"
    ENSURE_WALLET = "ENSURE_WALLET"
    PUBLISH_METADATA = "PUBLISH_METADATA"
    VALIDATE_STABLECOIN_BALANCE = "VALIDATE_STABLECOIN_BALANCE"
    SUBMIT_TRANSACTION = "SUBMIT_TRANSACTION"
    POLL_TRANSACTION = "POLL_TRANSACTION"
    EXTRACT_TOKEN_ID = "EXTRACT_TOKEN_ID"
    DONE = "DONE"
