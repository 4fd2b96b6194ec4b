from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from typing import List, Optional, Protocol, Sequence

from app.domain.errors import WalletProviderError
from app.domain.models import AccountType, Blockchain, Wallet
from db.repos.users_repo import UserNotFoundError
from db.user_store import UserStore


class WalletsApi(Protocol):
    async def create_wallets(
        self,
        blockchains: Sequence[Blockchain],
        *,
        account_type: AccountType = AccountType.SCA,
        count: int = 1,
    ) -> List[Wallet]: ...

    async def get_wallet(self, wallet_id: str) -> Optional[Wallet]: ...


class WalletService:
    """
    Idempotent wallet provisioning: one custodial wallet per user.

    A user that already has a wallet gets it back from the ledger without a
    provider call. Creation is serialized per user so concurrent first mints
    cannot provision two wallets. A lock lives only while some call for that
    user holds or waits on it.
    """

    def __init__(
        self,
        users: UserStore,
        wallets_api: WalletsApi,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._users = users
        self._wallets_api = wallets_api
        self._logger = logger or logging.getLogger(__name__)
        self._locks: weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def ensure_wallet(self, user_id: uuid.UUID, preferred_chain: Blockchain) -> Wallet:
        lock = self._lock_for(user_id)
        async with lock:
            user = await self._users.get(user_id)
            if user is None:
                raise UserNotFoundError(f"User not found: {user_id}")

            if user.wallet_id:
                self._logger.info(
                    "wallet reused user_id=%s wallet_id=%s", user_id, user.wallet_id
                )
                return await self._stored_wallet(
                    user.wallet_id, user.wallet_address, preferred_chain
                )

            created = await self._wallets_api.create_wallets(
                [preferred_chain], account_type=AccountType.SCA, count=1
            )
            wallet = next((w for w in created if w.blockchain == preferred_chain), None)
            if wallet is None:
                raise WalletProviderError(
                    f"No wallet created for {preferred_chain.value}; "
                    f"got {[w.blockchain.value for w in created]}"
                )

            if wallet.account_type != AccountType.SCA:
                self._logger.warning(
                    "wallet is not a smart contract account wallet_id=%s account_type=%s",
                    wallet.id,
                    wallet.account_type.value if wallet.account_type else None,
                )

            stored = await self._users.attach_wallet(
                user_id, wallet_id=wallet.id, wallet_address=wallet.address
            )
            if stored.wallet_id != wallet.id:
                # another writer attached first; keep theirs
                self._logger.warning(
                    "wallet attach lost user_id=%s kept=%s orphaned=%s",
                    user_id,
                    stored.wallet_id,
                    wallet.id,
                )
                return await self._stored_wallet(
                    stored.wallet_id, stored.wallet_address, preferred_chain
                )

            self._logger.info(
                "wallet created user_id=%s wallet_id=%s address=%s blockchain=%s",
                user_id,
                wallet.id,
                wallet.address,
                wallet.blockchain.value,
            )
            return wallet

    async def _stored_wallet(
        self, wallet_id: str, wallet_address: str | None, chain: Blockchain
    ) -> Wallet:
        # ledger rows written without an address get it from the provider
        if not wallet_address:
            fetched = await self._wallets_api.get_wallet(wallet_id)
            if fetched is None or not fetched.address:
                raise WalletProviderError(f"Stored wallet {wallet_id} has no address")
            wallet_address = fetched.address

        return Wallet(
            id=wallet_id,
            address=wallet_address,
            blockchain=chain,
            account_type=None,
        )
