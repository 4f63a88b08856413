"""ERC-4337 (v0.6) UserOperation and its hashes."""

from __future__ import annotations

from dataclasses import dataclass

from eth_abi import encode

from ..constants import MAX_NONCE_KEY, NONCE_SEQUENCE_BITS, NONCE_SEQUENCE_MASK
from ..crypto_utils import keccak256


def make_nonce(key: int, sequence: int) -> int:
    """Pack a 192-bit nonce key and a 64-bit sequence into one uint256."""
    if not 0 <= key <= MAX_NONCE_KEY:
        raise ValueError(f"Nonce key out of range: {key}")
    return (key << NONCE_SEQUENCE_BITS) | (sequence & NONCE_SEQUENCE_MASK)


def nonce_key(nonce: int) -> int:
    return nonce >> NONCE_SEQUENCE_BITS


def nonce_sequence(nonce: int) -> int:
    return nonce & NONCE_SEQUENCE_MASK


@dataclass
class UserOperation:
    """
    ERC-4337 UserOperation struct.

    Represents a user's intent to execute calls from a smart account.
    This is what owners sign instead of regular transactions.
    """

    sender: str  # Smart account address
    nonce: int  # key (192 bits) || sequence (64 bits)
    init_code: bytes = b""  # For account creation
    call_data: bytes = b""  # What to execute
    call_gas_limit: int = 200_000
    verification_gas_limit: int = 100_000
    pre_verification_gas: int = 50_000
    max_fee_per_gas: int = 1_000_000_000  # 1 Gwei
    max_priority_fee_per_gas: int = 1_000_000_000
    paymaster_and_data: bytes = b""  # Paymaster address + data
    signature: bytes = b""  # Wrapped owner signature

    @property
    def nonce_key(self) -> int:
        return nonce_key(self.nonce)

    @property
    def nonce_sequence(self) -> int:
        return nonce_sequence(self.nonce)

    def pack(self) -> bytes:
        """ABI-encode every field except the signature (dynamic fields hashed)."""
        return encode(
            [
                "address", "uint256", "bytes32", "bytes32",
                "uint256", "uint256", "uint256", "uint256", "uint256",
                "bytes32",
            ],
            [
                self.sender,
                self.nonce,
                keccak256(self.init_code),
                keccak256(self.call_data),
                self.call_gas_limit,
                self.verification_gas_limit,
                self.pre_verification_gas,
                self.max_fee_per_gas,
                self.max_priority_fee_per_gas,
                keccak256(self.paymaster_and_data),
            ],
        )

    def hash(self) -> bytes:
        return keccak256(self.pack())

    def required_prefund(self) -> int:
        max_gas = self.verification_gas_limit + self.call_gas_limit + self.pre_verification_gas
        return max_gas * self.max_fee_per_gas


def get_user_op_hash(user_op: UserOperation, entry_point: str, chain_id: int) -> bytes:
    """Chain-bound hash: keccak256(abi.encode(op.hash(), entryPoint, chainId))."""
    return keccak256(
        encode(["bytes32", "address", "uint256"], [user_op.hash(), entry_point, chain_id])
    )


def get_user_op_hash_without_chain_id(user_op: UserOperation, entry_point: str) -> bytes:
    """Replayable hash: keccak256(abi.encode(op.hash(), entryPoint))."""
    return keccak256(encode(["bytes32", "address"], [user_op.hash(), entry_point]))
