"""Token ID recovery from mint transaction receipts.

Extraction is best-effort: a missing receipt, a receipt without a mint event,
or an RPC failure all degrade to the "pending" sentinel (or an empty list for
batch mints) instead of raising.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from web3 import Web3

from app.domain.errors import ReceiptParseError
from app.domain.models import Blockchain
from chain.abis import GASLESS_NFT_ABI, ZERO_ADDRESS

PENDING_TOKEN_ID = "pending"


class ReceiptSource(Protocol):
    async def get_transaction_receipt(
        self, blockchain: Blockchain, tx_hash: str
    ) -> Optional[Dict[str, Any]]: ...


class ReceiptParser:
    def __init__(
        self,
        rpc: ReceiptSource,
        *,
        mint_event_name: str = "NFTMinted",
        batch_event_name: str = "BatchMinted",
        logger: logging.Logger | None = None,
    ) -> None:
        self._rpc = rpc
        self._mint_event_name = mint_event_name
        self._batch_event_name = batch_event_name
        self._logger = logger or logging.getLogger(__name__)
        # codec only, never connects
        self._w3 = Web3()

    async def extract_token_id(
        self,
        tx_hash: str | None,
        blockchain: Blockchain,
        contract_abi: Sequence[Dict[str, Any]] | None = None,
        contract_address: str | None = None,
    ) -> str:
        """
        Return the minted token ID as a string, or "pending" when it cannot be
        determined. Never raises.
        """
        try:
            events = await self._decoded_events(tx_hash, blockchain, contract_abi, contract_address)

            for event in events:
                if event["event"] == self._mint_event_name:
                    return str(event["args"]["tokenId"])

            # plain ERC-721 mint: Transfer from the zero address
            for event in events:
                if event["event"] == "Transfer" and _is_zero(event["args"].get("from")):
                    return str(event["args"]["tokenId"])

            raise ReceiptParseError(f"No {self._mint_event_name} event found in transaction logs")
        except Exception as e:
            self._logger.warning(
                "token id extraction failed tx_hash=%s blockchain=%s error=%s: %s",
                tx_hash,
                blockchain.value,
                type(e).__name__,
                e,
            )
            return PENDING_TOKEN_ID

    async def extract_token_ids(
        self,
        tx_hash: str | None,
        blockchain: Blockchain,
        contract_abi: Sequence[Dict[str, Any]] | None = None,
        contract_address: str | None = None,
    ) -> List[str]:
        """
        Batch variant: token IDs from the batch mint event, or [] when they
        cannot be determined. Never raises.
        """
        try:
            events = await self._decoded_events(tx_hash, blockchain, contract_abi, contract_address)

            for event in events:
                if event["event"] == self._batch_event_name:
                    return [str(token_id) for token_id in event["args"]["tokenIds"]]

            raise ReceiptParseError(f"No {self._batch_event_name} event found in transaction logs")
        except Exception as e:
            self._logger.warning(
                "batch token id extraction failed tx_hash=%s blockchain=%s error=%s: %s",
                tx_hash,
                blockchain.value,
                type(e).__name__,
                e,
            )
            return []

    async def _decoded_events(
        self,
        tx_hash: str | None,
        blockchain: Blockchain,
        contract_abi: Sequence[Dict[str, Any]] | None,
        contract_address: str | None,
    ) -> List[Any]:
        if not tx_hash:
            raise ReceiptParseError("No transaction hash")

        receipt = await self._rpc.get_transaction_receipt(blockchain, tx_hash)
        if not receipt:
            raise ReceiptParseError("Transaction receipt not found")

        logs = receipt.get("logs") or []
        if not logs:
            raise ReceiptParseError("Transaction receipt has no logs")

        return self.decode_logs(logs, contract_abi or GASLESS_NFT_ABI, contract_address)

    def decode_logs(
        self,
        logs: Sequence[Dict[str, Any]],
        contract_abi: Sequence[Dict[str, Any]],
        contract_address: str | None = None,
    ) -> List[Any]:
        """
        Decode every log that matches one of the ABI's events. Logs from other
        contracts or with other signatures are skipped.
        """
        contract = self._w3.eth.contract(abi=list(contract_abi))
        event_names = [item["name"] for item in contract_abi if item.get("type") == "event"]
        wanted_address = contract_address.lower() if contract_address else None

        decoded: List[Any] = []
        for log in logs:
            if wanted_address and str(log.get("address", "")).lower() != wanted_address:
                continue
            for name in event_names:
                try:
                    decoded.append(getattr(contract.events, name)().process_log(log))
                    break
                except Exception:
                    continue
        return decoded


def _is_zero(address: Any) -> bool:
    return isinstance(address, str) and address.lower() == ZERO_ADDRESS
