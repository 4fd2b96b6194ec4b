from __future__ import annotations

import logging
from typing import Any, Sequence

from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from app.domain.models import Blockchain
from chain.chains import ChainRegistry
from tools.tool_runner import run_tool


class Web3RPCError(RuntimeError):
    pass


def _to_plain(receipt: Any) -> dict[str, Any]:
    plain = dict(receipt)
    plain["logs"] = [dict(log) for log in (receipt.get("logs") or [])]
    return plain


class ChainRpc:
    """
    Read-only chain access: receipt lookups and contract view calls.
    One AsyncWeb3 instance is created lazily per blockchain.
    """

    def __init__(self, registry: ChainRegistry, *, logger: logging.Logger | None = None) -> None:
        self._registry = registry
        self._clients: dict[Blockchain, AsyncWeb3] = {}
        self._logger = logger or logging.getLogger(__name__)

    def _get_web3(self, blockchain: Blockchain) -> AsyncWeb3:
        w3 = self._clients.get(blockchain)
        if w3 is None:
            chain = self._registry.get(blockchain)
            w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(chain.rpc_url))
            self._clients[blockchain] = w3
        return w3

    async def get_transaction_receipt(
        self,
        blockchain: Blockchain,
        tx_hash: str,
    ) -> dict[str, Any] | None:
        """
        Return the receipt as a plain dict, or None if the chain does not know
        the transaction yet.
        """
        w3 = self._get_web3(blockchain)

        async def call() -> dict[str, Any] | None:
            try:
                receipt = await w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                return None
            except Exception as e:
                raise Web3RPCError(f"get_transaction_receipt failed: {e}") from e
            return _to_plain(receipt)

        return await run_tool(
            tool_name="rpc.eth_getTransactionReceipt",
            request={"blockchain": blockchain.value, "txHash": tx_hash},
            fn=call,
            logger=self._logger,
        )

    async def call_function(
        self,
        blockchain: Blockchain,
        contract_address: str,
        abi: Sequence[dict[str, Any]],
        fn_name: str,
        *args: Any,
    ) -> Any:
        """eth_call a view function and return its decoded output."""
        w3 = self._get_web3(blockchain)
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=list(abi)
        )

        async def call() -> Any:
            try:
                return await contract.get_function_by_name(fn_name)(*args).call()
            except Exception as e:
                raise Web3RPCError(f"{fn_name} failed: {e}") from e

        return await run_tool(
            tool_name=f"rpc.eth_call.{fn_name}",
            request={"blockchain": blockchain.value, "contract": contract_address, "args": args},
            fn=call,
            logger=self._logger,
        )

    async def aclose(self) -> None:
        for w3 in self._clients.values():
            disconnect = getattr(w3.provider, "disconnect", None)
            if disconnect is not None:
                await disconnect()
        self._clients.clear()
