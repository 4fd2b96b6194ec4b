from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import contextmanager
from decimal import Decimal
from typing import Awaitable, Callable, Iterator, List, Optional, Protocol, Sequence

from web3 import Web3

from app.config import Settings
from app.core.context import reset_mint_id, set_mint_id
from app.domain.errors import InsufficientBalanceError, MintFailedError
from app.domain.mint_stage import MintStage
from app.domain.models import (
    BatchMintError,
    BatchMintResult,
    Blockchain,
    CollectionMintResult,
    MintRequest,
    MintResult,
    NFTMetadata,
    TokenBalance,
    User,
)
from app.services.metadata_publisher import MetadataPublisher
from app.services.nft_reader import NFTReader
from app.services.tx_poller import TransactionPoller
from app.services.tx_submitter import TransactionSubmitter
from app.services.wallet_service import WalletService
from chain.abis import BATCH_MINT_SIGNATURE, GASLESS_NFT_ABI, MINT_SIGNATURE
from chain.chains import ChainConfig, ChainRegistry
from chain.receipts import ReceiptParser
from db.user_store import UserStore


class BalancesApi(Protocol):
    async def get_balances(self, wallet_id: str) -> List[TokenBalance]: ...


def _new_mint_id() -> str:
    return uuid.uuid4().hex[:12]


def _checked_recipients(recipients: Optional[Sequence[str]], count: int) -> List[str]:
    if recipients is None:
        return []
    if len(recipients) != count:
        raise ValueError(
            f"Recipients and items must have the same length, got {len(recipients)} and {count}"
        )
    for address in recipients:
        if not Web3.is_address(address):
            raise ValueError(f"Invalid recipient address: {address!r}")
    return [Web3.to_checksum_address(a) for a in recipients]


class MintOrchestrator:
    """
    Runs the gasless mint workflow:

      RESOLVE_USER -> ENSURE_WALLET -> PUBLISH_METADATA
        -> (VALIDATE_STABLECOIN_BALANCE) -> SUBMIT_TRANSACTION
        -> POLL_TRANSACTION -> EXTRACT_TOKEN_ID

    A failing stage raises MintFailedError naming the stage, with the
    original error as cause. Completed stages are not rolled back.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        users: UserStore,
        chains: ChainRegistry,
        wallets: WalletService,
        balances: BalancesApi,
        publisher: MetadataPublisher,
        submitter: TransactionSubmitter,
        poller: TransactionPoller,
        receipts: ReceiptParser,
        reader: NFTReader | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._users = users
        self._chains = chains
        self._wallets = wallets
        self._balances = balances
        self._publisher = publisher
        self._submitter = submitter
        self._poller = poller
        self._receipts = receipts
        self._reader = reader
        self._sleep = sleep
        self._logger = logger or logging.getLogger(__name__)

        self._storage_cost = Decimal(settings.metadata_storage_cost)
        self._batch_delay_ms = settings.batch_mint_delay_ms
        self._max_batch_size = settings.max_batch_size
        self._batch_gas_limit = settings.batch_gas_limit

    @property
    def reader(self) -> NFTReader | None:
        return self._reader

    # ---------------------------
    # Public operations
    # ---------------------------

    async def mint_nft(
        self,
        email: str,
        metadata: NFTMetadata,
        blockchain: Blockchain | str | None = None,
        pay_with_stablecoin: bool = False,
    ) -> MintResult:
        token = set_mint_id(_new_mint_id())
        try:
            return await self._mint_one(email, metadata, blockchain, pay_with_stablecoin)
        finally:
            reset_mint_id(token)

    async def mint(self, request: MintRequest) -> MintResult:
        return await self.mint_nft(
            request.email,
            request.metadata,
            request.blockchain,
            request.pay_with_stablecoin,
        )

    async def mint_batch(
        self,
        email: str,
        items: Sequence[NFTMetadata],
        blockchain: Blockchain | str | None = None,
        pay_with_stablecoin: bool = False,
    ) -> BatchMintResult:
        """
        Mint items one after another. A failed item is recorded and the
        batch moves on. With pay_with_stablecoin every item checks the
        balance before it is submitted.
        """
        self._check_batch_size(items)

        batch_id = _new_mint_id()
        result = BatchMintResult()

        for index, metadata in enumerate(items):
            if index > 0 and self._batch_delay_ms > 0:
                await self._sleep(self._batch_delay_ms / 1000)

            token = set_mint_id(f"{batch_id}-{index}")
            try:
                minted = await self._mint_one(
                    email,
                    metadata,
                    blockchain,
                    pay_with_stablecoin,
                )
                result.successful.append(minted)
            except MintFailedError as e:
                result.errors.append(
                    BatchMintError(
                        index=index,
                        nft_name=metadata.name,
                        stage=e.stage,
                        error=str(e.cause),
                    )
                )
            finally:
                reset_mint_id(token)

        self._logger.info(
            "batch mint finished batch_id=%s requested=%d successful=%d failed=%d",
            batch_id,
            result.total_requested,
            result.total_successful,
            result.total_failed,
        )
        return result

    async def mint_collection(
        self,
        email: str,
        items: Sequence[NFTMetadata],
        blockchain: Blockchain | str | None = None,
        recipients: Optional[Sequence[str]] = None,
    ) -> CollectionMintResult:
        """
        Mint every item in a single batchMint transaction. Item i goes to
        recipients[i]; without recipients everything goes to the user's wallet.
        When a contract reader is configured the remaining supply is checked
        before anything is published or submitted.
        """
        self._check_batch_size(items)
        targets = _checked_recipients(recipients, len(items))

        token = set_mint_id(_new_mint_id())
        try:
            with self._stage(MintStage.RESOLVE_USER):
                chain, contract = self._resolve_chain(blockchain)
                user = await self._resolve_user(email)

            if self._reader is not None:
                with self._stage(MintStage.CHECK_SUPPLY):
                    await self._reader.ensure_supply(len(items), chain.blockchain)

            with self._stage(MintStage.ENSURE_WALLET):
                wallet = await self._wallets.ensure_wallet(user.id, chain.blockchain)

            with self._stage(MintStage.PUBLISH_METADATA):
                uris = [await self._publisher.publish(m) for m in items]
            targets = targets or [wallet.address] * len(uris)

            with self._stage(MintStage.SUBMIT_TRANSACTION):
                pending = await self._submitter.submit(
                    wallet_id=wallet.id,
                    contract_address=contract,
                    function_signature=BATCH_MINT_SIGNATURE,
                    parameters=[targets, uris],
                    blockchain=chain.blockchain,
                    gas_limit=self._batch_gas_limit,
                )

            with self._stage(MintStage.POLL_TRANSACTION):
                confirmed = await self._poller.wait_for(pending.transaction_id)

            with self._stage(MintStage.EXTRACT_TOKEN_ID):
                token_ids = await self._receipts.extract_token_ids(
                    confirmed.tx_hash,
                    chain.blockchain,
                    GASLESS_NFT_ABI,
                    contract_address=contract,
                )

            self._logger.info(
                "collection minted count=%d tx_hash=%s token_ids=%s",
                len(uris),
                confirmed.tx_hash,
                token_ids,
            )
            return CollectionMintResult(
                token_ids=token_ids,
                tx_hash=confirmed.tx_hash,
                contract_address=contract,
                wallet_address=wallet.address,
                recipients=targets,
                blockchain=chain.blockchain,
                transaction_id=confirmed.transaction_id,
                metadata_uris=uris,
                block_height=confirmed.block_height,
                gas_used=confirmed.gas_used,
            )
        finally:
            reset_mint_id(token)

    # ---------------------------
    # Workflow
    # ---------------------------

    async def _mint_one(
        self,
        email: str,
        metadata: NFTMetadata,
        blockchain: Blockchain | str | None,
        pay_with_stablecoin: bool,
    ) -> MintResult:
        self._logger.info(
            "mint started email=%s blockchain=%s name=%s pay_with_stablecoin=%s",
            email,
            blockchain or self._chains.default_blockchain.value,
            metadata.name,
            pay_with_stablecoin,
        )

        with self._stage(MintStage.RESOLVE_USER):
            chain, contract = self._resolve_chain(blockchain)
            user = await self._resolve_user(email)

        with self._stage(MintStage.ENSURE_WALLET):
            wallet = await self._wallets.ensure_wallet(user.id, chain.blockchain)

        with self._stage(MintStage.PUBLISH_METADATA):
            metadata_uri = await self._publisher.publish(metadata)

        if pay_with_stablecoin:
            with self._stage(MintStage.VALIDATE_STABLECOIN_BALANCE):
                await self._validate_stablecoin_balance(wallet.id, chain)

        with self._stage(MintStage.SUBMIT_TRANSACTION):
            pending = await self._submitter.submit(
                wallet_id=wallet.id,
                contract_address=contract,
                function_signature=MINT_SIGNATURE,
                parameters=[wallet.address, metadata_uri],
                blockchain=chain.blockchain,
            )

        with self._stage(MintStage.POLL_TRANSACTION):
            confirmed = await self._poller.wait_for(pending.transaction_id)

        with self._stage(MintStage.EXTRACT_TOKEN_ID):
            token_id = await self._receipts.extract_token_id(
                confirmed.tx_hash,
                chain.blockchain,
                GASLESS_NFT_ABI,
                contract_address=contract,
            )

        self._logger.info(
            "mint completed stage=%s token_id=%s tx_hash=%s transaction_id=%s wallet=%s",
            MintStage.DONE.value,
            token_id,
            confirmed.tx_hash,
            confirmed.transaction_id,
            wallet.address,
        )

        return MintResult(
            token_id=token_id,
            tx_hash=confirmed.tx_hash,
            contract_address=contract,
            wallet_address=wallet.address,
            blockchain=chain.blockchain,
            transaction_id=confirmed.transaction_id,
            metadata_uri=metadata_uri,
            account_type=wallet.account_type,
            block_height=confirmed.block_height,
            gas_used=confirmed.gas_used,
        )

    def _resolve_chain(self, blockchain: Blockchain | str | None) -> tuple[ChainConfig, str]:
        chain = self._chains.get(blockchain)
        return chain, chain.require_contract()

    async def _resolve_user(self, email: str) -> User:
        if not email or "@" not in email:
            raise ValueError(f"Invalid email: {email!r}")
        return await self._users.get_or_create(email)

    async def _validate_stablecoin_balance(self, wallet_id: str, chain: ChainConfig) -> Decimal:
        """Require at least the metadata storage cost in the chain's USDC token."""
        balances = await self._balances.get_balances(wallet_id)
        usdc = chain.usdc_address.lower()

        available = Decimal("0")
        for balance in balances:
            if balance.token_address:
                if balance.token_address.lower() == usdc:
                    available += balance.amount
            elif (balance.symbol or "").upper() == "USDC":
                available += balance.amount

        if available < self._storage_cost:
            raise InsufficientBalanceError(
                token="USDC", required=self._storage_cost, available=available
            )

        self._logger.info(
            "stablecoin balance ok wallet_id=%s available=%s required=%s",
            wallet_id,
            available,
            self._storage_cost,
        )
        return available

    def _check_batch_size(self, items: Sequence[NFTMetadata]) -> None:
        if not 1 <= len(items) <= self._max_batch_size:
            raise ValueError(
                f"Batch size must be between 1 and {self._max_batch_size}, got {len(items)}"
            )

    @contextmanager
    def _stage(self, stage: MintStage) -> Iterator[None]:
        try:
            yield
        except MintFailedError:
            raise
        except Exception as e:
            self._logger.error(
                "mint stage failed error=%s: %s",
                type(e).__name__,
                e,
                extra={"stage": stage.value},
            )
            raise MintFailedError(stage, e) from e
