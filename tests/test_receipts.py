from __future__ import annotations

import pytest

from app.domain.models import Blockchain
from chain.receipts import PENDING_TOKEN_ID, ReceiptParser
from chain.rpc import Web3RPCError
from conftest import (
    CONTRACT_ADDRESS,
    TX_HASH,
    batch_minted_log,
    nft_minted_log,
    transfer_log,
    unrelated_log,
)

OTHER_CONTRACT = "0x3333333333333333333333333333333333333333"


def _receipt(*logs):
    return {"transactionHash": TX_HASH, "status": 1, "logs": list(logs)}


@pytest.mark.asyncio
async def test_extracts_token_id_from_mint_event(rpc):
    rpc.receipts[TX_HASH] = _receipt(unrelated_log(), nft_minted_log(42))

    token_id = await ReceiptParser(rpc).extract_token_id(TX_HASH, Blockchain.ETH_SEPOLIA)

    assert token_id == "42"
    assert rpc.calls == [TX_HASH]


@pytest.mark.asyncio
async def test_falls_back_to_transfer_from_zero_address(rpc):
    rpc.receipts[TX_HASH] = _receipt(transfer_log(9))

    assert await ReceiptParser(rpc).extract_token_id(TX_HASH, Blockchain.ETH_SEPOLIA) == "9"


@pytest.mark.asyncio
async def test_transfer_between_holders_is_not_a_mint(rpc):
    rpc.receipts[TX_HASH] = _receipt(transfer_log(9, sender=OTHER_CONTRACT))

    assert await ReceiptParser(rpc).extract_token_id(TX_HASH, Blockchain.ETH_SEPOLIA) == PENDING_TOKEN_ID


@pytest.mark.asyncio
async def test_receipt_without_logs_is_pending(rpc):
    rpc.receipts[TX_HASH] = _receipt()

    assert await ReceiptParser(rpc).extract_token_id(TX_HASH, Blockchain.ETH_SEPOLIA) == "pending"


@pytest.mark.asyncio
async def test_undecodable_logs_are_pending(rpc):
    rpc.receipts[TX_HASH] = _receipt(unrelated_log(), unrelated_log())

    assert await ReceiptParser(rpc).extract_token_id(TX_HASH, Blockchain.ETH_SEPOLIA) == "pending"


@pytest.mark.asyncio
async def test_missing_receipt_or_hash_is_pending(rpc):
    rpc.default = None
    parser = ReceiptParser(rpc)

    assert await parser.extract_token_id(TX_HASH, Blockchain.ETH_SEPOLIA) == "pending"
    assert await parser.extract_token_id(None, Blockchain.ETH_SEPOLIA) == "pending"


@pytest.mark.asyncio
async def test_rpc_errors_are_pending(rpc):
    rpc.fail_with = Web3RPCError("get_transaction_receipt failed: timeout")

    assert await ReceiptParser(rpc).extract_token_id(TX_HASH, Blockchain.ETH_SEPOLIA) == "pending"


@pytest.mark.asyncio
async def test_logs_from_other_contracts_are_ignored(rpc):
    rpc.receipts[TX_HASH] = _receipt(nft_minted_log(1, address=OTHER_CONTRACT), nft_minted_log(2))
    parser = ReceiptParser(rpc)

    assert await parser.extract_token_id(
        TX_HASH, Blockchain.ETH_SEPOLIA, contract_address=CONTRACT_ADDRESS
    ) == "2"
    assert await parser.extract_token_id(
        TX_HASH, Blockchain.ETH_SEPOLIA, contract_address="0x" + "44" * 20
    ) == "pending"


@pytest.mark.asyncio
async def test_custom_mint_event_name(rpc):
    rpc.receipts[TX_HASH] = _receipt(nft_minted_log(5))
    parser = ReceiptParser(rpc, mint_event_name="TokenCreated")

    # NFTMinted no longer counts; there is no zero-address Transfer either
    assert await parser.extract_token_id(TX_HASH, Blockchain.ETH_SEPOLIA) == "pending"


@pytest.mark.asyncio
async def test_extract_token_ids_from_batch_event(rpc):
    rpc.receipts[TX_HASH] = _receipt(batch_minted_log([10, 11, 12]))

    ids = await ReceiptParser(rpc).extract_token_ids(TX_HASH, Blockchain.BASE_SEPOLIA)

    assert ids == ["10", "11", "12"]


@pytest.mark.asyncio
async def test_extract_token_ids_without_batch_event_is_empty(rpc):
    rpc.receipts[TX_HASH] = _receipt(nft_minted_log(1))

    assert await ReceiptParser(rpc).extract_token_ids(TX_HASH, Blockchain.BASE_SEPOLIA) == []
