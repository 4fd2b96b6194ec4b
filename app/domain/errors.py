"""Error taxonomy for the mint workflow."""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from app.domain.mint_stage import MintStage
from app.domain.tx_state import TransactionState


class MintError(Exception):
    pass


class ProviderError(MintError):
    """An external provider rejected a call or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        http_status: Optional[int] = None,
        provider_message: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.http_status = http_status
        self.provider_message = provider_message


class WalletProviderError(ProviderError):
    pass


class MalformedWalletResponseError(WalletProviderError):
    pass


class SponsorshipApiError(ProviderError):
    pass


class MalformedSponsorshipResponseError(SponsorshipApiError):
    pass


class MetadataPublishError(ProviderError):
    pass


class TransactionFailedError(MintError):
    def __init__(
        self,
        transaction_id: str,
        *,
        state: TransactionState = TransactionState.FAILED,
        reason: Optional[str] = None,
    ) -> None:
        self.transaction_id = transaction_id
        self.state = state
        self.reason = reason or "Unknown error"
        super().__init__(
            f"Transaction {transaction_id} ended in {state.value}: {self.reason}"
        )


class TransactionTimeoutError(MintError):
    def __init__(
        self,
        transaction_id: str,
        *,
        max_wait_ms: int,
        last_state: Optional[TransactionState] = None,
    ) -> None:
        self.transaction_id = transaction_id
        self.max_wait_ms = max_wait_ms
        self.last_state = last_state
        last = last_state.value if last_state else "unknown"
        super().__init__(
            f"Transaction {transaction_id} confirmation timeout after {max_wait_ms}ms "
            f"(last_state={last})"
        )


class ReceiptParseError(MintError):
    """Internal to the receipt parser; never surfaces to callers."""


class InsufficientBalanceError(MintError):
    def __init__(self, *, token: str, required: Decimal, available: Decimal) -> None:
        self.token = token
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient {token} balance. Required: {required}, Available: {available}"
        )


class SupplyExhaustedError(MintError):
    def __init__(self, *, requested: int, available: int) -> None:
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough NFTs remaining. Requested: {requested}, Available: {available}"
        )


class MintFailedError(MintError):
    def __init__(self, stage: MintStage, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage.value} failed: {type(cause).__name__}: {cause}")
