"""
Key registry and key-binding proofs.

The key registry binds each key id to a public key and publishes a single
root committing to every binding. Accounts read the root on each signature
check and ask a binding verifier whether the presented public key is the
one bound to the key id under that root.

Interfaces:
- KeyRegistry: ``current_root() -> int``
- BindingVerifier: ``verify(proof, public_inputs) -> bool`` with public
  inputs ``[key_id, root, commitment(x, y)]``

Reference implementations back the bindings with a keccak Merkle tree
(sorted-pair hashing). A proof is the ABI-encoded ``bytes32[]`` sibling
path of the leaf ``keccak256(abi.encode(key_id, commitment))``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Protocol, Sequence, runtime_checkable

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

from .constants import SNARK_SCALAR_FIELD, TEMPLATE_KEY_ID
from .crypto_utils import keccak256

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyRegistry(Protocol):
    def current_root(self) -> int:
        ...


@runtime_checkable
class BindingVerifier(Protocol):
    def verify(self, proof: bytes, public_inputs: Sequence[int]) -> bool:
        ...


class KeyRegistryError(Exception):
    """Raised for invalid key registry operations."""
    pass


def public_key_commitment(x: int, y: int) -> int:
    """Commitment to a public key, reduced into the proof system's field."""
    return int.from_bytes(keccak256(encode(["uint256", "uint256"], [x, y])), "big") % SNARK_SCALAR_FIELD


def binding_leaf(key_id: int, commitment: int) -> bytes:
    return keccak256(encode(["uint256", "uint256"], [key_id, commitment]))


def _hash_pair(a: bytes, b: bytes) -> bytes:
    return keccak256(a + b) if a < b else keccak256(b + a)


def _merkle_levels(leaves: List[bytes]) -> List[List[bytes]]:
    levels = [leaves]
    while len(levels[-1]) > 1:
        current = levels[-1]
        parents = []
        for i in range(0, len(current), 2):
            if i + 1 < len(current):
                parents.append(_hash_pair(current[i], current[i + 1]))
            else:
                # Odd node is promoted unchanged
                parents.append(current[i])
        levels.append(parents)
    return levels


def encode_proof(siblings: Sequence[bytes]) -> bytes:
    return encode(["bytes32[]"], [list(siblings)])


@dataclass
class InMemoryKeyRegistry:
    """
    Reference key registry holding key id -> public key commitments.

    The root advances on every bind, rotate or revoke. Key id 0 is
    reserved and can never be bound.
    """

    bindings: Dict[int, int] = field(default_factory=dict)
    root_history: List[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._root = self._compute_root()

    def current_root(self) -> int:
        return self._root

    def commitment_of(self, key_id: int) -> int:
        if key_id not in self.bindings:
            raise KeyRegistryError(f"Key id {hex(key_id)} is not bound")
        return self.bindings[key_id]

    def bind(self, key_id: int, x: int, y: int) -> int:
        """Bind a new key id to public key (x, y). Returns the new root."""
        if key_id == TEMPLATE_KEY_ID:
            raise KeyRegistryError("Key id 0 is reserved")
        if key_id in self.bindings:
            raise KeyRegistryError(f"Key id {hex(key_id)} already bound")
        self.bindings[key_id] = public_key_commitment(x, y)
        return self._advance("keystore.bind", key_id)

    def rotate(self, key_id: int, x: int, y: int) -> int:
        """Replace the public key bound to ``key_id``. Returns the new root."""
        if key_id not in self.bindings:
            raise KeyRegistryError(f"Key id {hex(key_id)} is not bound")
        self.bindings[key_id] = public_key_commitment(x, y)
        return self._advance("keystore.rotate", key_id)

    def revoke(self, key_id: int) -> int:
        if key_id not in self.bindings:
            raise KeyRegistryError(f"Key id {hex(key_id)} is not bound")
        del self.bindings[key_id]
        return self._advance("keystore.revoke", key_id)

    def prove(self, key_id: int) -> bytes:
        """Inclusion proof for ``key_id`` against the current root."""
        leaves = self._leaves()
        target = binding_leaf(key_id, self.commitment_of(key_id))
        index = leaves.index(target)

        siblings = []
        for level in _merkle_levels(leaves)[:-1]:
            sibling_index = index ^ 1
            if sibling_index < len(level):
                siblings.append(level[sibling_index])
            index //= 2
        return encode_proof(siblings)

    def _leaves(self) -> List[bytes]:
        return [binding_leaf(k, c) for k, c in sorted(self.bindings.items())]

    def _compute_root(self) -> int:
        leaves = self._leaves()
        if not leaves:
            return 0
        return int.from_bytes(_merkle_levels(leaves)[-1][0], "big")

    def _advance(self, event: str, key_id: int) -> int:
        self.root_history.append(self._root)
        self._root = self._compute_root()
        logger.info(
            "Key registry root advanced",
            extra={
                "event": event,
                "key_id": hex(key_id)[:18],
                "root": hex(self._root)[:18],
            },
        )
        return self._root


class MerkleBindingVerifier:
    """Verifies Merkle inclusion proofs produced by InMemoryKeyRegistry."""

    def verify(self, proof: bytes, public_inputs: Sequence[int]) -> bool:
        if len(public_inputs) != 3:
            return False
        key_id, root, commitment = public_inputs
        if root == 0:
            return False
        try:
            (siblings,) = decode(["bytes32[]"], proof)
        except DecodingError:
            logger.debug(
                "Binding proof could not be decoded",
                extra={"event": "keystore.proof_malformed", "key_id": hex(key_id)[:18]},
            )
            return False

        computed = binding_leaf(key_id, commitment)
        for sibling in siblings:
            computed = _hash_pair(computed, sibling)
        return int.from_bytes(computed, "big") == root
