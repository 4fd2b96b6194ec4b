from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

import pytest
from eth_abi import encode
from web3 import Web3

from app.config import Settings
from app.domain.errors import SponsorshipApiError
from app.domain.models import AccountType, Blockchain, TokenBalance, TransactionResult, Wallet
from app.domain.tx_state import TransactionState
from app.services.metadata_publisher import MetadataPublisher
from app.services.mint_service import MintOrchestrator
from app.services.nft_reader import NFTReader
from app.services.tx_poller import TransactionPoller
from app.services.tx_submitter import TransactionSubmitter
from app.services.wallet_service import WalletService
from chain.abis import ZERO_ADDRESS
from chain.chains import ChainRegistry
from chain.receipts import ReceiptParser
from db.user_store import InMemoryUserStore
from providers.transactions_api import ContractExecutionAck

WALLET_ADDRESS = "0x1111111111111111111111111111111111111111"
CONTRACT_ADDRESS = "0x2222222222222222222222222222222222222222"
TX_HASH = "0x" + "ab" * 32


# ---------------------------
# Fakes
# ---------------------------

class FakeWalletsApi:
    def __init__(self) -> None:
        self.create_calls: List[List[Blockchain]] = []
        self.account_type = AccountType.SCA
        self.balances: List[TokenBalance] = []
        self.fail_with: Exception | None = None
        self.lookups: List[str] = []

    async def create_wallets(
        self,
        blockchains: Sequence[Blockchain],
        *,
        account_type: AccountType = AccountType.SCA,
        count: int = 1,
    ) -> List[Wallet]:
        self.create_calls.append(list(blockchains))
        if self.fail_with is not None:
            raise self.fail_with
        n = len(self.create_calls)
        return [
            Wallet(
                id=f"wallet-{n}",
                address=WALLET_ADDRESS,
                blockchain=blockchains[0],
                account_type=self.account_type,
            )
        ]

    async def get_wallet(self, wallet_id: str) -> Wallet | None:
        self.lookups.append(wallet_id)
        return Wallet(id=wallet_id, address=WALLET_ADDRESS, blockchain=Blockchain.ETH_SEPOLIA)

    async def get_balances(self, wallet_id: str) -> List[TokenBalance]:
        return list(self.balances)


class FakeTxApi:
    """
    Sponsorship API double. `script` holds the states (or exceptions)
    returned by successive status queries; once empty, CONFIRMED.
    """

    def __init__(self) -> None:
        self.submissions: List[Dict[str, Any]] = []
        self.fail_submit_on: set[int] = set()
        self.script: List[Any] = []
        self.polls = 0

    async def create_contract_execution(self, **kwargs: Any) -> ContractExecutionAck:
        index = len(self.submissions)
        self.submissions.append(kwargs)
        if index in self.fail_submit_on:
            raise SponsorshipApiError(
                "contractExecution failed: HTTP 400", http_status=400, provider_message="bad request"
            )
        return ContractExecutionAck(id=f"tx-{index}", state=TransactionState.INITIATED)

    async def get_transaction(self, transaction_id: str) -> TransactionResult:
        self.polls += 1
        item = self.script.pop(0) if self.script else TransactionState.CONFIRMED
        if isinstance(item, Exception):
            raise item
        return TransactionResult(
            id=transaction_id,
            state=item,
            txHash=TX_HASH if item == TransactionState.CONFIRMED else None,
            blockHeight=123,
            gasUsed=84000,
            errorReason="execution reverted" if item == TransactionState.FAILED else None,
        )


class FakeRpc:
    """
    Receipts by hash, and view-function results by name in `views`. A view
    value that is callable gets the call arguments; an exception is raised.
    """

    def __init__(self) -> None:
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.default: Dict[str, Any] | None = None
        self.fail_with: Exception | None = None
        self.calls: List[str] = []
        self.views: Dict[str, Any] = {"getRemainingSupply": 100}
        self.view_calls: List[tuple] = []

    async def get_transaction_receipt(self, blockchain: Blockchain, tx_hash: str):
        self.calls.append(tx_hash)
        if self.fail_with is not None:
            raise self.fail_with
        return self.receipts.get(tx_hash, self.default)

    async def call_function(self, blockchain, contract_address, abi, fn_name, *args):
        self.view_calls.append((fn_name, *args))
        value = self.views[fn_name]
        if isinstance(value, Exception):
            raise value
        return value(*args) if callable(value) else value


class FakePinning:
    def __init__(self, ipfs_hash: str = "QmTestHash") -> None:
        self.ipfs_hash = ipfs_hash
        self.fail_with: Exception | None = None
        self.pinned: List[Dict[str, Any]] = []

    async def pin_json(self, content, *, name, keyvalues=None) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.pinned.append({"content": content, "name": name})
        return self.ipfs_hash


# ---------------------------
# Receipt log builders
# ---------------------------

def _log(address: str, topics: List[bytes], data: bytes, index: int = 0) -> Dict[str, Any]:
    return {
        "address": address,
        "topics": topics,
        "data": data,
        "logIndex": index,
        "transactionIndex": 0,
        "transactionHash": bytes.fromhex(TX_HASH[2:]),
        "blockHash": bytes.fromhex("cd" * 32),
        "blockNumber": 123,
    }


def nft_minted_log(token_id: int, *, to: str = WALLET_ADDRESS, address: str = CONTRACT_ADDRESS):
    topic = bytes(Web3.keccak(text="NFTMinted(address,uint256,string,uint256)"))
    return _log(
        address,
        [topic, encode(["address"], [to]), encode(["uint256"], [token_id])],
        encode(["string", "uint256"], ["https://ipfs.io/ipfs/QmTestHash", 1_700_000_000]),
    )


def batch_minted_log(token_ids: List[int], *, to: str = WALLET_ADDRESS, address: str = CONTRACT_ADDRESS):
    topic = bytes(Web3.keccak(text="BatchMinted(address,uint256[],uint256)"))
    return _log(
        address,
        [topic, encode(["address"], [to])],
        encode(["uint256[]", "uint256"], [token_ids, 1_700_000_000]),
    )


def transfer_log(token_id: int, *, sender: str = ZERO_ADDRESS, to: str = WALLET_ADDRESS, address: str = CONTRACT_ADDRESS):
    topic = bytes(Web3.keccak(text="Transfer(address,address,uint256)"))
    return _log(
        address,
        [topic, encode(["address"], [sender]), encode(["address"], [to]), encode(["uint256"], [token_id])],
        b"",
    )


def unrelated_log(address: str = CONTRACT_ADDRESS):
    return _log(address, [bytes(Web3.keccak(text="Approval(address,address,uint256)"))], b"\x00" * 32)


# ---------------------------
# Fixtures
# ---------------------------

@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="",
        default_blockchain="ETH-SEPOLIA",
        rpc_urls="",
        usdc_addresses="",
        nft_contract_addresses=json.dumps(
            {"ETH-SEPOLIA": CONTRACT_ADDRESS, "BASE-SEPOLIA": CONTRACT_ADDRESS}
        ),
        tx_max_wait_ms=2_000,
        tx_poll_interval_ms=1,
        batch_mint_delay_ms=0,
        max_batch_size=10,
        metadata_storage_cost="1",
        mint_event_name="NFTMinted",
    )


@pytest.fixture
def users() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def wallets_api() -> FakeWalletsApi:
    return FakeWalletsApi()


@pytest.fixture
def tx_api() -> FakeTxApi:
    return FakeTxApi()


@pytest.fixture
def rpc() -> FakeRpc:
    fake = FakeRpc()
    fake.default = {"transactionHash": TX_HASH, "logs": [nft_minted_log(7)]}
    return fake


@pytest.fixture
def pinning() -> FakePinning:
    return FakePinning()


@pytest.fixture
def orchestrator(settings, users, wallets_api, tx_api, rpc, pinning) -> MintOrchestrator:
    chains = ChainRegistry(settings)
    return MintOrchestrator(
        settings,
        users=users,
        chains=chains,
        wallets=WalletService(users, wallets_api),
        balances=wallets_api,
        publisher=MetadataPublisher(pinning, gateway=settings.ipfs_gateway),
        submitter=TransactionSubmitter(tx_api, gas_limit=settings.gas_limit),
        poller=TransactionPoller(
            tx_api,
            max_wait_ms=settings.tx_max_wait_ms,
            poll_interval_ms=settings.tx_poll_interval_ms,
        ),
        receipts=ReceiptParser(rpc, mint_event_name=settings.mint_event_name),
        reader=NFTReader(chains, rpc),
    )
