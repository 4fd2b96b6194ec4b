from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from app.domain.mint_stage import MintStage
from app.domain.tx_state import TransactionState


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Blockchain(str, Enum):
    ETH_SEPOLIA = "ETH-SEPOLIA"
    BASE_SEPOLIA = "BASE-SEPOLIA"
    MATIC_AMOY = "MATIC-AMOY"
    ETH = "ETH"
    BASE = "BASE"
    MATIC = "MATIC"


class AccountType(str, Enum):
    SCA = "SCA"
    EOA = "EOA"


class WalletState(str, Enum):
    LIVE = "LIVE"
    FROZEN = "FROZEN"


# ---------------------------
# Ledger
# ---------------------------

class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    wallet_id: Optional[str] = None
    wallet_address: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def has_wallet(self) -> bool:
        return bool(self.wallet_id and self.wallet_address)


# ---------------------------
# Wallet provider payloads
# ---------------------------

class Wallet(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    address: str
    blockchain: Blockchain
    account_type: Optional[AccountType] = Field(default=None, alias="accountType")
    state: WalletState = WalletState.LIVE


class TokenBalance(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    token_address: Optional[str] = Field(default=None, alias="tokenAddress")
    symbol: Optional[str] = None
    amount: Decimal

    @model_validator(mode="before")
    @classmethod
    def _flatten_token(cls, data: Any) -> Any:
        # {"token": {"tokenAddress": ..., "symbol": ...}, "amount": "1.5"}
        if isinstance(data, dict) and isinstance(data.get("token"), dict):
            token = data["token"]
            return {
                "tokenAddress": token.get("tokenAddress"),
                "symbol": token.get("symbol"),
                "amount": data.get("amount"),
            }
        return data


# ---------------------------
# Metadata
# ---------------------------

class NFTAttribute(BaseModel):
    trait_type: str
    value: Union[str, int, float]


class NFTMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: str = ""
    image_uri: str = Field(..., alias="image")
    attributes: List[NFTAttribute] = Field(default_factory=list)
    external_uri: Optional[str] = Field(default=None, alias="external_url")

    def to_token_json(self) -> Dict[str, Any]:
        """Marketplace-style token metadata document."""
        return self.model_dump(by_alias=True, exclude_none=True)


class MintRequest(BaseModel):
    email: str
    metadata: NFTMetadata
    blockchain: Blockchain
    pay_with_stablecoin: bool = False


# ---------------------------
# Sponsored transactions
# ---------------------------

class PendingTransaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    wallet_id: str
    contract_address: str
    function_signature: str
    encoded_parameters: List[Any]
    call_data: str
    blockchain: Blockchain
    idempotency_key: str
    initial_state: Optional[TransactionState] = None
    submitted_at: datetime = Field(default_factory=utcnow)


class TransactionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    transaction_id: str = Field(..., alias="id")
    state: TransactionState
    tx_hash: Optional[str] = Field(default=None, alias="txHash")
    block_hash: Optional[str] = Field(default=None, alias="blockHash")
    block_height: Optional[int] = Field(default=None, alias="blockHeight")
    gas_used: Optional[str] = Field(default=None, alias="gasUsed")
    error_reason: Optional[str] = Field(default=None, alias="errorReason")

    @field_validator("gas_used", mode="before")
    @classmethod
    def _gas_as_str(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @model_validator(mode="after")
    def _confirmed_has_hash(self) -> "TransactionResult":
        if self.state == TransactionState.CONFIRMED and not self.tx_hash:
            raise ValueError("CONFIRMED transaction without txHash")
        return self


# ---------------------------
# Results
# ---------------------------

class MintResult(BaseModel):
    token_id: str
    tx_hash: str
    contract_address: str
    wallet_address: str
    blockchain: Blockchain
    gas_sponsored: Literal[True] = True
    transaction_id: str
    metadata_uri: str
    account_type: Optional[AccountType] = None
    block_height: Optional[int] = None
    gas_used: Optional[str] = None


class BatchMintError(BaseModel):
    index: int
    nft_name: str
    stage: MintStage
    error: str


class BatchMintResult(BaseModel):
    successful: List[MintResult] = Field(default_factory=list)
    errors: List[BatchMintError] = Field(default_factory=list)

    @computed_field
    @property
    def total_requested(self) -> int:
        return len(self.successful) + len(self.errors)

    @computed_field
    @property
    def total_successful(self) -> int:
        return len(self.successful)

    @computed_field
    @property
    def total_failed(self) -> int:
        return len(self.errors)


class CollectionMintResult(BaseModel):
    token_ids: List[str] = Field(default_factory=list)
    tx_hash: str
    contract_address: str
    wallet_address: str
    recipients: List[str] = Field(default_factory=list)
    blockchain: Blockchain
    gas_sponsored: Literal[True] = True
    transaction_id: str
    metadata_uris: List[str] = Field(default_factory=list)
    block_height: Optional[int] = None
    gas_used: Optional[str] = None


# ---------------------------
# Contract reads
# ---------------------------

class NFTDetails(BaseModel):
    token_id: str
    owner: str
    token_uri: str
    blockchain: Blockchain
    contract_address: str
    # set when the token URI could not be read
    error: Optional[str] = None


class ContractStats(BaseModel):
    name: str
    symbol: str
    total_minted: int
    max_supply: int
    remaining_supply: int
    blockchain: Blockchain
    contract_address: str


class OwnedNFTs(BaseModel):
    owner: str
    balance: int
    tokens: List[NFTDetails] = Field(default_factory=list)
    blockchain: Blockchain
