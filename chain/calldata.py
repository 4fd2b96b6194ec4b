from __future__ import annotations

import re
from typing import Any, Sequence

from eth_abi import encode as encode_abi
from web3 import Web3

_SIGNATURE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\((.*)\)$")


def parse_signature(signature: str) -> tuple[str, list[str]]:
    """
    Split "mint(address,string)" into ("mint", ["address", "string"]).
    Tuple types keep their inner commas.
    """
    match = _SIGNATURE.match(signature.replace(" ", ""))
    if not match:
        raise ValueError(f"Invalid function signature: {signature}")

    name, args = match.group(1), match.group(2)
    types: list[str] = []
    depth = 0
    current = ""
    for ch in args:
        if ch == "," and depth == 0:
            types.append(current)
            current = ""
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        current += ch
    if current:
        types.append(current)
    return name, types


def _coerce(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return Web3.to_checksum_address(value)
    if abi_type == "address[]":
        return [Web3.to_checksum_address(v) for v in value]
    if re.fullmatch(r"u?int[0-9]*", abi_type) and isinstance(value, str):
        return int(value, 0)
    return value


def function_selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature.replace(" ", "")))[:4]


def encode_call(signature: str, params: Sequence[Any]) -> str:
    """
    ABI-encode a contract call: 4-byte selector followed by the arguments.
    Returns 0x-prefixed hex.
    """
    _, types = parse_signature(signature)
    if len(types) != len(params):
        raise ValueError(
            f"{signature} expects {len(types)} parameters, got {len(params)}"
        )

    values = [_coerce(t, v) for t, v in zip(types, params)]
    encoded = encode_abi(types, values)
    return "0x" + (function_selector(signature) + encoded).hex()
