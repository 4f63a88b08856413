"""
Tests for the reference key registry and Merkle binding verifier.
"""

import pytest

from keyring_account.core.constants import SNARK_SCALAR_FIELD
from keyring_account.core.keystore import (
    BindingVerifier,
    InMemoryKeyRegistry,
    KeyRegistry,
    KeyRegistryError,
    MerkleBindingVerifier,
    encode_proof,
    public_key_commitment,
)

KEYS = {
    1: (11, 12),
    2: (21, 22),
    3: (31, 32),
    4: (41, 42),
    5: (51, 52),
}


@pytest.fixture
def registry():
    registry = InMemoryKeyRegistry()
    for key_id, (x, y) in KEYS.items():
        registry.bind(key_id, x, y)
    return registry


def inputs(registry, key_id, x, y):
    return [key_id, registry.current_root(), public_key_commitment(x, y)]


class TestInterfaces:

    def test_reference_implementations_satisfy_protocols(self):
        assert isinstance(InMemoryKeyRegistry(), KeyRegistry)
        assert isinstance(MerkleBindingVerifier(), BindingVerifier)


class TestCommitment:

    def test_commitment_is_in_field(self):
        commitment = public_key_commitment(2**256 - 1, 2**256 - 1)

        assert 0 <= commitment < SNARK_SCALAR_FIELD

    def test_commitment_depends_on_both_coordinates(self):
        assert public_key_commitment(1, 2) != public_key_commitment(2, 1)


class TestKeyRegistry:

    def test_empty_registry_root_is_zero(self):
        assert InMemoryKeyRegistry().current_root() == 0

    def test_root_advances_on_bind(self, registry):
        before = registry.current_root()

        registry.bind(6, 61, 62)

        assert registry.current_root() != before
        assert registry.root_history[-1] == before

    def test_reserved_key_id_cannot_be_bound(self, registry):
        with pytest.raises(KeyRegistryError):
            registry.bind(0, 1, 2)

    def test_duplicate_bind_rejected(self, registry):
        with pytest.raises(KeyRegistryError):
            registry.bind(1, 99, 99)

    def test_rotate_unbound_key_rejected(self, registry):
        with pytest.raises(KeyRegistryError):
            registry.rotate(42, 1, 2)

    def test_revoke_removes_binding(self, registry):
        registry.revoke(3)

        with pytest.raises(KeyRegistryError):
            registry.commitment_of(3)
        with pytest.raises(KeyRegistryError):
            registry.prove(3)

    def test_revoking_every_key_resets_root(self, registry):
        for key_id in KEYS:
            registry.revoke(key_id)

        assert registry.current_root() == 0


class TestBindingProofs:

    @pytest.mark.parametrize("key_id", sorted(KEYS))
    def test_every_binding_proves(self, registry, key_id):
        x, y = KEYS[key_id]
        verifier = MerkleBindingVerifier()

        assert verifier.verify(registry.prove(key_id), inputs(registry, key_id, x, y)) is True

    def test_single_binding_proves_with_empty_path(self):
        registry = InMemoryKeyRegistry()
        registry.bind(9, 1, 2)

        proof = registry.prove(9)

        assert proof == encode_proof([])
        assert MerkleBindingVerifier().verify(proof, inputs(registry, 9, 1, 2)) is True

    def test_wrong_public_key_rejected(self, registry):
        assert MerkleBindingVerifier().verify(registry.prove(1), inputs(registry, 1, 21, 22)) is False

    def test_proof_for_other_key_id_rejected(self, registry):
        assert MerkleBindingVerifier().verify(registry.prove(2), inputs(registry, 1, 11, 12)) is False

    def test_rotated_key_proves_only_new_material(self, registry):
        registry.rotate(1, 101, 102)
        proof = registry.prove(1)
        verifier = MerkleBindingVerifier()

        assert verifier.verify(proof, inputs(registry, 1, 101, 102)) is True
        assert verifier.verify(proof, inputs(registry, 1, 11, 12)) is False

    def test_old_proof_fails_after_root_advances(self, registry):
        stale_proof = registry.prove(1)
        registry.bind(6, 61, 62)

        assert MerkleBindingVerifier().verify(stale_proof, inputs(registry, 1, 11, 12)) is False

    def test_zero_root_rejected(self):
        assert MerkleBindingVerifier().verify(encode_proof([]), [1, 0, 5]) is False

    def test_wrong_input_count_rejected(self, registry):
        assert MerkleBindingVerifier().verify(registry.prove(1), [1, registry.current_root()]) is False

    def test_malformed_proof_rejected(self, registry):
        assert MerkleBindingVerifier().verify(b"\x01\x02", inputs(registry, 1, 11, 12)) is False
