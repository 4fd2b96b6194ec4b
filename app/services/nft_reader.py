"""Read-side queries against the configured NFT contract."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, Sequence

from web3 import Web3

from app.domain.errors import SupplyExhaustedError
from app.domain.models import Blockchain, ContractStats, NFTDetails, OwnedNFTs
from chain.abis import GASLESS_NFT_ABI
from chain.chains import ChainConfig, ChainRegistry
from chain.rpc import Web3RPCError


class ContractReader(Protocol):
    async def call_function(
        self,
        blockchain: Blockchain,
        contract_address: str,
        abi: Sequence[dict[str, Any]],
        fn_name: str,
        *args: Any,
    ) -> Any: ...


def _token_id(token_id: str | int) -> int:
    try:
        value = int(token_id)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid token id: {token_id!r}") from None
    if value < 0:
        raise ValueError(f"Invalid token id: {token_id!r}")
    return value


def _owner_address(address: str) -> str:
    if not Web3.is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return Web3.to_checksum_address(address)


class NFTReader:
    def __init__(
        self,
        chains: ChainRegistry,
        rpc: ContractReader,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._chains = chains
        self._rpc = rpc
        self._logger = logger or logging.getLogger(__name__)

    def _target(self, blockchain: Blockchain | str | None) -> tuple[ChainConfig, str]:
        chain = self._chains.get(blockchain)
        return chain, chain.require_contract()

    async def _call(self, chain: ChainConfig, contract: str, fn_name: str, *args: Any) -> Any:
        return await self._rpc.call_function(
            chain.blockchain, contract, GASLESS_NFT_ABI, fn_name, *args
        )

    async def get_owner(self, token_id: str | int, blockchain: Blockchain | str | None = None) -> str:
        chain, contract = self._target(blockchain)
        return await self._call(chain, contract, "ownerOf", _token_id(token_id))

    async def get_total_supply(self, blockchain: Blockchain | str | None = None) -> int:
        chain, contract = self._target(blockchain)
        return int(await self._call(chain, contract, "totalSupply"))

    async def get_remaining_supply(self, blockchain: Blockchain | str | None = None) -> int:
        chain, contract = self._target(blockchain)
        return int(await self._call(chain, contract, "getRemainingSupply"))

    async def ensure_supply(self, requested: int, blockchain: Blockchain | str | None = None) -> int:
        """Raise SupplyExhaustedError unless `requested` tokens can still be minted."""
        available = await self.get_remaining_supply(blockchain)
        if available < requested:
            raise SupplyExhaustedError(requested=requested, available=available)
        return available

    async def get_stats(self, blockchain: Blockchain | str | None = None) -> ContractStats:
        chain, contract = self._target(blockchain)
        name, symbol, total, max_supply, remaining = await asyncio.gather(
            self._call(chain, contract, "name"),
            self._call(chain, contract, "symbol"),
            self._call(chain, contract, "totalSupply"),
            self._call(chain, contract, "maxSupply"),
            self._call(chain, contract, "getRemainingSupply"),
        )
        return ContractStats(
            name=name,
            symbol=symbol,
            total_minted=int(total),
            max_supply=int(max_supply),
            remaining_supply=int(remaining),
            blockchain=chain.blockchain,
            contract_address=contract,
        )

    async def get_nft(self, token_id: str | int, blockchain: Blockchain | str | None = None) -> NFTDetails:
        chain, contract = self._target(blockchain)
        value = _token_id(token_id)
        owner, token_uri = await asyncio.gather(
            self._call(chain, contract, "ownerOf", value),
            self._call(chain, contract, "tokenURI", value),
        )
        return NFTDetails(
            token_id=str(value),
            owner=owner,
            token_uri=token_uri,
            blockchain=chain.blockchain,
            contract_address=contract,
        )

    async def get_user_nfts(self, address: str, blockchain: Blockchain | str | None = None) -> OwnedNFTs:
        """
        Tokens held by `address`. A token whose URI cannot be read is still
        listed, with an empty URI and the error recorded.
        """
        chain, contract = self._target(blockchain)
        owner = _owner_address(address)

        token_ids, balance = await asyncio.gather(
            self._call(chain, contract, "getUserTokens", owner),
            self._call(chain, contract, "balanceOf", owner),
        )

        async def details(token_id: int) -> NFTDetails:
            try:
                token_uri = await self._call(chain, contract, "tokenURI", token_id)
                error = None
            except Web3RPCError as e:
                self._logger.warning(
                    "token uri lookup failed token_id=%s blockchain=%s error=%s",
                    token_id,
                    chain.blockchain.value,
                    e,
                )
                token_uri, error = "", str(e)
            return NFTDetails(
                token_id=str(token_id),
                owner=owner,
                token_uri=token_uri,
                blockchain=chain.blockchain,
                contract_address=contract,
                error=error,
            )

        tokens = await asyncio.gather(*[details(int(t)) for t in token_ids])
        return OwnedNFTs(owner=owner, balance=int(balance), tokens=list(tokens), blockchain=chain.blockchain)
