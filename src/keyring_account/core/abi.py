"""
ABI helpers shared by the account contracts.

Thin wrappers around eth-abi for selector computation and selector-prefixed
call data.
"""

from __future__ import annotations

from typing import Any, Sequence, Tuple

from eth_abi import decode, encode

from .crypto_utils import keccak256


def function_selector(signature: str) -> bytes:
    """First 4 bytes of keccak256 of a canonical function signature."""
    return keccak256(signature.encode())[:4]


def encode_call(signature: str, args: Sequence[Any] = ()) -> bytes:
    """Build call data for ``signature`` with ABI-encoded ``args``."""
    return function_selector(signature) + encode(argument_types(signature), list(args))


def argument_types(signature: str) -> list[str]:
    """Split ``name(type1,type2)`` into its top-level argument types."""
    inner = signature[signature.index("(") + 1:signature.rindex(")")]
    types: list[str] = []
    depth = 0
    current = ""
    for char in inner:
        if char == "," and depth == 0:
            types.append(current)
            current = ""
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        current += char
    if current:
        types.append(current)
    return types


def split_call(data: bytes) -> Tuple[bytes, bytes]:
    """Return (selector, encoded arguments). Short data yields an empty selector."""
    if len(data) < 4:
        return b"", bytes(data)
    return bytes(data[:4]), bytes(data[4:])


def decode_args(signature: str, payload: bytes) -> tuple:
    return decode(argument_types(signature), payload)
