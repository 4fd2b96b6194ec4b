from __future__ import annotations

from typing import Any

MINT_SIGNATURE = "mint(address,string)"
BATCH_MINT_SIGNATURE = "batchMint(address[],string[])"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _view(name: str, inputs: list[tuple[str, str]], output: str) -> dict[str, Any]:
    return {
        "name": name,
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": output}],
    }


GASLESS_NFT_ABI: list[dict[str, Any]] = [
    {
        "name": "mint",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "tokenURI", "type": "string"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "batchMint",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "recipients", "type": "address[]"},
            {"name": "tokenURIs", "type": "string[]"},
        ],
        "outputs": [{"name": "", "type": "uint256[]"}],
    },
    _view("name", [], "string"),
    _view("symbol", [], "string"),
    _view("totalSupply", [], "uint256"),
    _view("maxSupply", [], "uint256"),
    _view("getRemainingSupply", [], "uint256"),
    _view("ownerOf", [("tokenId", "uint256")], "address"),
    _view("tokenURI", [("tokenId", "uint256")], "string"),
    _view("balanceOf", [("owner", "address")], "uint256"),
    _view("getUserTokens", [("user", "address")], "uint256[]"),
    {
        "name": "NFTMinted",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "to", "type": "address", "indexed": True},
            {"name": "tokenId", "type": "uint256", "indexed": True},
            {"name": "tokenURI", "type": "string", "indexed": False},
            {"name": "timestamp", "type": "uint256", "indexed": False},
        ],
    },
    {
        "name": "BatchMinted",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "to", "type": "address", "indexed": True},
            {"name": "tokenIds", "type": "uint256[]", "indexed": False},
            {"name": "timestamp", "type": "uint256", "indexed": False},
        ],
    },
    {
        "name": "Transfer",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "tokenId", "type": "uint256", "indexed": True},
        ],
    },
]
