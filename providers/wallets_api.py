from __future__ import annotations

import uuid
from typing import List, Sequence

from app.domain.errors import MalformedWalletResponseError, WalletProviderError
from app.domain.models import AccountType, Blockchain, TokenBalance, Wallet
from providers.circle import CircleApiClient


class WalletProviderClient(CircleApiClient):
    """Custodial (developer-controlled) wallet endpoints."""

    error_cls = WalletProviderError
    malformed_cls = MalformedWalletResponseError

    def __init__(self, *, wallet_set_id: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self._wallet_set_id = wallet_set_id

    async def create_wallets(
        self,
        blockchains: Sequence[Blockchain],
        *,
        account_type: AccountType = AccountType.SCA,
        count: int = 1,
    ) -> List[Wallet]:
        body = self._signed_body(
            {
                "idempotencyKey": str(uuid.uuid4()),
                "count": count,
                "accountType": account_type.value,
                "blockchains": [b.value for b in blockchains],
                "walletSetId": self._wallet_set_id,
            }
        )
        data = await self._request(
            "POST",
            "/v1/w3s/developer/wallets",
            tool_name="circle.wallets.create",
            json=body,
        )

        raw_wallets = data.get("wallets") if data else None
        if raw_wallets is not None and not isinstance(raw_wallets, list):
            raise MalformedWalletResponseError("Malformed wallets list")
        if not raw_wallets:
            raise WalletProviderError("No wallets created in response")

        return [self._validate(Wallet, item, what="wallet") for item in raw_wallets]

    async def get_wallet(self, wallet_id: str) -> Wallet | None:
        data = await self._request(
            "GET",
            f"/v1/w3s/wallets/{wallet_id}",
            tool_name="circle.wallets.get",
            allow_404=True,
        )
        if data is None:
            return None
        return self._validate(Wallet, data.get("wallet", data), what="wallet")

    async def get_balances(self, wallet_id: str) -> List[TokenBalance]:
        data = await self._request(
            "GET",
            f"/v1/w3s/wallets/{wallet_id}/balances",
            tool_name="circle.wallets.balances",
        )
        raw = (data or {}).get("tokenBalances") or []
        if not isinstance(raw, list):
            raise MalformedWalletResponseError("Malformed tokenBalances list")
        return [self._validate(TokenBalance, item, what="token balance") for item in raw]
