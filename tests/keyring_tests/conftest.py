"""
Shared fixtures for keyring account tests.

Provides a host chain with an EntryPoint, a reference key registry, key
helpers for EOA and passkey owners, and small callee contracts used to
observe execution and rollbacks.
"""

import hashlib
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import pytest

from keyring_account.core.constants import (
    AUTH_DATA_FLAGS_UP,
    AUTH_DATA_FLAGS_UV,
    DEFAULT_ENTRY_POINT,
    ERC1271_INVALID_VALUE,
    ERC1271_MAGIC_VALUE,
    REPLAYABLE_NONCE_KEY,
)
from keyring_account.core.contracts.account_abstraction import EntryPoint, KeyringAccount
from keyring_account.core.contracts.owner_registry import KeyType
from keyring_account.core.contracts.signature_dispatcher import SignaturePayload, WrappedSignature
from keyring_account.core.contracts.user_operation import (
    UserOperation,
    get_user_op_hash_without_chain_id,
)
from keyring_account.core.crypto_utils import (
    generate_p256_keypair_hex,
    generate_secp256k1_keypair_hex,
    public_key_coordinates,
    public_key_to_address,
    sign_hash_recoverable,
    sign_p256,
)
from keyring_account.core.keystore import InMemoryKeyRegistry, MerkleBindingVerifier
from keyring_account.core.vm.exceptions import ExecutionReverted
from keyring_account.core.vm.host import Host
from keyring_account.core.webauthn import WebAuthnAuth, encode_challenge

TEST_CHAIN_ID = 84532
BENEFICIARY = "0x" + "be" * 20
ACCOUNT_FUNDING = 10**18


# ==================== Keys ====================

@dataclass
class EoaKey:
    key_id: int
    private_hex: str
    x: int
    y: int
    key_type: KeyType = KeyType.EOA

    @property
    def address(self) -> str:
        return public_key_to_address(self.x, self.y)

    def sign(self, hash_: bytes) -> bytes:
        return sign_hash_recoverable(self.private_hex, hash_)


@dataclass
class PasskeyKey:
    key_id: int
    private_hex: str
    x: int
    y: int
    key_type: KeyType = KeyType.PASSKEY

    def assertion(self, challenge: bytes, flags: int = AUTH_DATA_FLAGS_UP | AUTH_DATA_FLAGS_UV) -> WebAuthnAuth:
        """Build a signed assertion the way a browser authenticator would."""
        client_data = (
            '{"type":"webauthn.get","challenge":"'
            + encode_challenge(challenge)
            + '","origin":"https://wallet.example","crossOrigin":false}'
        ).encode()
        auth_data = hashlib.sha256(b"wallet.example").digest() + bytes([flags]) + (7).to_bytes(4, "big")
        r, s = sign_p256(self.private_hex, auth_data + hashlib.sha256(client_data).digest())
        return WebAuthnAuth(
            authenticator_data=auth_data,
            client_data_json=client_data,
            challenge_index=client_data.index(b'"challenge"'),
            type_index=client_data.index(b'"type"'),
            r=r,
            s=s,
        )

    def sign(self, hash_: bytes) -> bytes:
        return self.assertion(hash_).encode()


# ==================== Callee Contracts ====================

@dataclass
class Recorder:
    """Records every call it receives; storage takes part in rollbacks."""

    calls: List[tuple] = field(default_factory=list)
    return_data: bytes = b"recorded"

    def call(self, host, caller, value, data):
        self.calls.append((caller, value, data))
        return self.return_data

    def snapshot_state(self):
        return len(self.calls)

    def restore_state(self, state):
        del self.calls[state:]


@dataclass
class Reverter:
    """Always reverts with a fixed payload."""

    revert_data: bytes = bytes.fromhex("08c379a0") + b"\x00" * 28 + b"boom"

    def call(self, host, caller, value, data):
        raise ExecutionReverted(self.revert_data)


@dataclass
class ContractSigner:
    """ERC-1271 signer approving a single signature blob."""

    approved: bytes = b"approved"

    def call(self, host, caller, value, data):
        return b""

    def is_valid_signature(self, hash_, signature):
        return ERC1271_MAGIC_VALUE if signature == self.approved else ERC1271_INVALID_VALUE


# ==================== Harness ====================

@dataclass
class Keyring:
    """Wires a host, an EntryPoint and the reference key registry together."""

    host: Host
    registry: InMemoryKeyRegistry
    verifier: MerkleBindingVerifier
    entry_point: EntryPoint

    def eoa_key(self, key_id: int, bind: bool = True) -> EoaKey:
        private_hex, public_hex = generate_secp256k1_keypair_hex()
        x, y = public_key_coordinates(public_hex)
        if bind:
            self.registry.bind(key_id, x, y)
        return EoaKey(key_id, private_hex, x, y)

    def passkey(self, key_id: int, bind: bool = True) -> PasskeyKey:
        private_hex, public_hex = generate_p256_keypair_hex()
        x, y = public_key_coordinates(public_hex)
        if bind:
            self.registry.bind(key_id, x, y)
        return PasskeyKey(key_id, private_hex, x, y)

    def wrap(
        self,
        key,
        hash_: bytes,
        raw: Optional[bytes] = None,
        proof: Optional[bytes] = None,
    ) -> bytes:
        raw = key.sign(hash_) if raw is None else raw
        proof = self.registry.prove(key.key_id) if proof is None else proof
        payload = SignaturePayload(raw, key.x, key.y, proof).encode()
        return WrappedSignature(key.key_id, payload).encode()

    def account(self, keys: Sequence, funding: int = ACCOUNT_FUNDING) -> KeyringAccount:
        account = KeyringAccount(
            host=self.host,
            key_registry=self.registry,
            binding_verifier=self.verifier,
            entry_point=self.entry_point.address,
        )
        account.initialize([(k.key_id, k.key_type) for k in keys])
        self.host.deploy(account.address, account)
        self.host.fund(account.address, funding)
        return account

    def signing_hash(self, op: UserOperation) -> bytes:
        if op.nonce_key == REPLAYABLE_NONCE_KEY:
            return get_user_op_hash_without_chain_id(op, self.entry_point.address)
        return self.entry_point.get_user_op_hash(op)

    def user_op(self, account: KeyringAccount, call_data: bytes, key=None, nonce_key: int = 0) -> UserOperation:
        op = UserOperation(
            sender=account.address,
            nonce=self.entry_point.get_nonce(account.address, nonce_key),
            call_data=call_data,
        )
        if key is not None:
            op.signature = self.wrap(key, self.signing_hash(op))
        return op

    def deploy(self, address: str, contract) -> str:
        self.host.deploy(address, contract)
        return address.lower()


# ==================== Fixtures ====================

@pytest.fixture
def host():
    return Host(chain_id=TEST_CHAIN_ID)


@pytest.fixture
def registry():
    return InMemoryKeyRegistry()


@pytest.fixture
def verifier():
    return MerkleBindingVerifier()


@pytest.fixture
def entry_point(host):
    return EntryPoint(host=host, address=DEFAULT_ENTRY_POINT)


@pytest.fixture
def keyring(host, registry, verifier, entry_point):
    return Keyring(host=host, registry=registry, verifier=verifier, entry_point=entry_point)


@pytest.fixture
def owner_key(keyring):
    """EOA owner bound under key id 1."""
    return keyring.eoa_key(1)


@pytest.fixture
def passkey(keyring):
    """Passkey owner bound under key id 2."""
    return keyring.passkey(2)


@pytest.fixture
def account(keyring, owner_key, passkey):
    """Deployed, funded account owned by the EOA key and the passkey."""
    return keyring.account([owner_key, passkey])


@pytest.fixture
def recorder(keyring):
    contract = Recorder()
    keyring.deploy("0x" + "11" * 20, contract)
    return contract


@pytest.fixture
def recorder_address():
    return "0x" + "11" * 20


@pytest.fixture
def reverter(keyring):
    contract = Reverter()
    keyring.deploy("0x" + "22" * 20, contract)
    return contract


@pytest.fixture
def reverter_address():
    return "0x" + "22" * 20


@pytest.fixture
def contract_signer():
    return ContractSigner()
