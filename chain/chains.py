from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Dict

from app.config import Settings
from app.domain.models import Blockchain


class UnsupportedChainError(ValueError):
    pass


@dataclass(frozen=True)
class ChainConfig:
    blockchain: Blockchain
    name: str
    chain_id: int
    rpc_url: str
    usdc_address: str
    nft_contract_address: str = ""
    explorer_url: str = ""

    def require_contract(self) -> str:
        if not self.nft_contract_address:
            raise UnsupportedChainError(
                f"NFT contract address not configured for {self.blockchain.value}"
            )
        return self.nft_contract_address


_DEFAULT_CHAINS: Dict[Blockchain, ChainConfig] = {
    Blockchain.ETH_SEPOLIA: ChainConfig(
        blockchain=Blockchain.ETH_SEPOLIA,
        name="Ethereum Sepolia",
        chain_id=11155111,
        rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
        usdc_address="0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
        explorer_url="https://sepolia.etherscan.io",
    ),
    Blockchain.BASE_SEPOLIA: ChainConfig(
        blockchain=Blockchain.BASE_SEPOLIA,
        name="Base Sepolia",
        chain_id=84532,
        rpc_url="https://sepolia.base.org",
        usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        explorer_url="https://sepolia.basescan.org",
    ),
    Blockchain.MATIC_AMOY: ChainConfig(
        blockchain=Blockchain.MATIC_AMOY,
        name="Polygon Amoy",
        chain_id=80002,
        rpc_url="https://rpc-amoy.polygon.technology",
        usdc_address="0x41E94Eb019C0762f9Bfcf9Fb1E58725BfB0e7582",
        explorer_url="https://amoy.polygonscan.com",
    ),
    Blockchain.ETH: ChainConfig(
        blockchain=Blockchain.ETH,
        name="Ethereum",
        chain_id=1,
        rpc_url="https://eth.llamarpc.com",
        usdc_address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        explorer_url="https://etherscan.io",
    ),
    Blockchain.BASE: ChainConfig(
        blockchain=Blockchain.BASE,
        name="Base",
        chain_id=8453,
        rpc_url="https://mainnet.base.org",
        usdc_address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        explorer_url="https://basescan.org",
    ),
    Blockchain.MATIC: ChainConfig(
        blockchain=Blockchain.MATIC,
        name="Polygon",
        chain_id=137,
        rpc_url="https://polygon-rpc.com",
        usdc_address="0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
        explorer_url="https://polygonscan.com",
    ),
}

# friendly names used by clients -> provider blockchain names
_ALIASES: Dict[str, Blockchain] = {
    "ethereum": Blockchain.ETH_SEPOLIA,
    "base": Blockchain.BASE_SEPOLIA,
    "polygon": Blockchain.MATIC_AMOY,
}


def resolve_blockchain(name: str | Blockchain) -> Blockchain:
    """
    Map a blockchain name to a Blockchain. Provider names match
    case-insensitively; the lowercase internal aliases match exactly, so
    "base" is Base Sepolia while "BASE" is Base mainnet.
    Raises UnsupportedChainError for anything else.
    """
    if isinstance(name, Blockchain):
        return name

    key = str(name or "").strip()
    alias = _ALIASES.get(key)
    if alias is not None:
        return alias

    try:
        return Blockchain(key.upper())
    except ValueError:
        raise UnsupportedChainError(f"Unsupported blockchain: {name}")


def _load_json_map(raw: str, setting_name: str) -> Dict[Blockchain, str]:
    """
    Parse a JSON object keyed by blockchain name.

    Expected env format:
      NFT_CONTRACT_ADDRESSES='{"ETH-SEPOLIA":"0x...","base":"0x..."}'
    """
    if not raw:
        return {}

    try:
        data = json.loads(raw)
    except Exception as e:
        raise ValueError(f"{setting_name} must be valid JSON") from e

    if not isinstance(data, dict):
        raise ValueError(f"{setting_name} must be a JSON object")

    values: Dict[Blockchain, str] = {}
    for k, v in data.items():
        try:
            blockchain = resolve_blockchain(k)
        except UnsupportedChainError:
            raise ValueError(f"Invalid blockchain key in {setting_name}: {k}")

        if not isinstance(v, str) or not v:
            raise ValueError(f"Invalid value for {blockchain.value} in {setting_name}")

        values[blockchain] = v.rstrip("/")

    return values


class ChainRegistry:
    """
    Lookup table of supported chains with per-deployment overrides
    (RPC URLs, NFT contract and USDC addresses) applied from settings.
    """

    def __init__(self, settings: Settings) -> None:
        rpc_urls = _load_json_map(settings.rpc_urls, "RPC_URLS")
        contracts = _load_json_map(settings.nft_contract_addresses, "NFT_CONTRACT_ADDRESSES")
        usdc = _load_json_map(settings.usdc_addresses, "USDC_ADDRESSES")

        self._chains: Dict[Blockchain, ChainConfig] = {}
        for blockchain, base in _DEFAULT_CHAINS.items():
            self._chains[blockchain] = replace(
                base,
                rpc_url=rpc_urls.get(blockchain, base.rpc_url),
                usdc_address=usdc.get(blockchain, base.usdc_address),
                nft_contract_address=contracts.get(blockchain, ""),
            )

        self.default_blockchain = resolve_blockchain(settings.default_blockchain)

    def get(self, blockchain: str | Blockchain | None = None) -> ChainConfig:
        key = resolve_blockchain(blockchain) if blockchain else self.default_blockchain
        chain = self._chains.get(key)
        if chain is None:
            raise UnsupportedChainError(f"Unsupported blockchain: {key.value}")
        return chain

    def list_supported(self) -> list[Blockchain]:
        return sorted(self._chains.keys(), key=lambda b: b.value)

    def list_mintable(self) -> list[Blockchain]:
        """Chains with a configured NFT contract."""
        return [b for b in self.list_supported() if self._chains[b].nft_contract_address]
