"""
Custom errors raised by keyring account contracts.

Each error has a Solidity-style signature; its revert payload is the
4-byte selector followed by the ABI-encoded arguments, so callers and
off-chain tooling can decode failures exactly as they would on chain.
"""

from __future__ import annotations

from typing import Any, ClassVar

from eth_abi import encode

from ..abi import argument_types, function_selector
from ..vm.exceptions import VMExecutionError


class AccountError(VMExecutionError):
    """Base class for account custom errors."""

    signature: ClassVar[str] = "AccountError()"

    def __init__(self, *args: Any) -> None:
        self.args_values = args
        rendered = ", ".join(
            f"0x{a.hex()}" if isinstance(a, bytes) else str(a) for a in args
        )
        super().__init__(f"{self.signature.split('(')[0]}({rendered})")

    @classmethod
    def selector(cls) -> bytes:
        return function_selector(cls.signature)

    @property
    def revert_data(self) -> bytes:
        return self.selector() + encode(argument_types(self.signature), list(self.args_values))


# ==================== Access Control ====================

class Unauthorized(AccountError):
    """Caller is not permitted to invoke this entry point."""
    signature = "Unauthorized()"


class Initialized(AccountError):
    """The account already has owners."""
    signature = "Initialized()"


# ==================== Owner Registry ====================

class AlreadyOwner(AccountError):
    signature = "AlreadyOwner(uint256)"


class NotOwner(AccountError):
    signature = "NotOwner(uint256)"


class CannotRemoveLastOwner(AccountError):
    """Ordinary removal would leave the account without owners."""
    signature = "CannotRemoveLastOwner(uint256)"


class NotLastOwner(AccountError):
    """removeLastOwner called while other owners remain."""
    signature = "NotLastOwner(uint256)"


class InvalidKeyType(AccountError):
    signature = "InvalidKeyType(uint8)"


class NoOwners(AccountError):
    """initialize called with an empty owner list."""
    signature = "NoOwners()"


# ==================== Signatures ====================

class UnknownKey(AccountError):
    """
    Signature references a key id that is not a registered owner.

    This is a hard failure: it indicates a malformed or stale reference,
    not a wrong signature.
    """
    signature = "UnknownKey(uint256)"


class MalformedSignature(AccountError):
    """
    Signature wrapper or payload could not be decoded.

    This should NEVER be silently ignored as it may indicate an attack or
    data corruption.
    """
    signature = "MalformedSignature()"


# ==================== Replay Protection ====================

class InvalidNonceKey(AccountError):
    signature = "InvalidNonceKey(uint256)"


class SelectorNotAllowed(AccountError):
    signature = "SelectorNotAllowed(bytes4)"


# ==================== Dispatch / Upgrades ====================

class UnknownSelector(AccountError):
    signature = "UnknownSelector(bytes4)"


class InvalidImplementation(AccountError):
    signature = "InvalidImplementation(address)"
