"""
Signature dispatch for keyring accounts.

A wrapped signature names the owner key id and carries a payload with the
raw signature, the public key being used, and a key-binding proof. The
dispatcher:

1. resolves the key type from the owner registry (unknown id → hard failure)
2. verifies the raw signature with the verifier registered for that type
3. verifies that the presented public key is bound to the key id under the
   key registry's current root

Steps 2 and 3 are soft: either failing yields False. The root is read on
every call; a stale binding must never authenticate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Optional

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

from .. import webauthn
from ..crypto_utils import public_key_to_address
from ..keystore import BindingVerifier, KeyRegistry, public_key_commitment
from ..signature_checker import is_valid_signature_now
from .errors import MalformedSignature, UnknownKey
from .owner_registry import KeyType, OwnerRegistry

if TYPE_CHECKING:
    from ..vm.host import Host

logger = logging.getLogger(__name__)

WRAPPER_TYPES = ["(uint256,bytes)"]
PAYLOAD_TYPES = ["bytes", "uint256", "uint256", "bytes"]


@dataclass(frozen=True)
class SignaturePayload:
    raw_signature: bytes
    public_key_x: int
    public_key_y: int
    binding_proof: bytes

    def encode(self) -> bytes:
        return encode(
            PAYLOAD_TYPES,
            [self.raw_signature, self.public_key_x, self.public_key_y, self.binding_proof],
        )


@dataclass(frozen=True)
class WrappedSignature:
    key_id: int
    payload: bytes

    def encode(self) -> bytes:
        return encode(WRAPPER_TYPES, [(self.key_id, self.payload)])

    @classmethod
    def decode(cls, data: bytes) -> "WrappedSignature":
        try:
            ((key_id, payload),) = decode(WRAPPER_TYPES, data)
        except DecodingError as e:
            raise MalformedSignature() from e
        return cls(key_id=key_id, payload=payload)

    def decode_payload(self) -> SignaturePayload:
        try:
            raw, x, y, proof = decode(PAYLOAD_TYPES, self.payload)
        except DecodingError as e:
            raise MalformedSignature() from e
        return SignaturePayload(raw, x, y, proof)


# (hash, x, y, raw_signature, host) -> bool
KeyVerifier = Callable[[bytes, int, int, bytes, Optional["Host"]], bool]


def verify_eoa(hash_: bytes, x: int, y: int, raw_signature: bytes, host: Optional["Host"]) -> bool:
    """secp256k1 signature by the address derived from (x, y), or its ERC-1271 code."""
    return is_valid_signature_now(public_key_to_address(x, y), hash_, raw_signature, host)


def verify_passkey(hash_: bytes, x: int, y: int, raw_signature: bytes, host: Optional["Host"]) -> bool:
    """WebAuthn assertion over challenge = abi.encode(hash), user verification not required."""
    return webauthn.verify_encoded(
        challenge=hash_,
        require_user_verification=False,
        encoded_auth=raw_signature,
        x=x,
        y=y,
    )


KEY_VERIFIERS: Dict[KeyType, KeyVerifier] = {
    KeyType.EOA: verify_eoa,
    KeyType.PASSKEY: verify_passkey,
}


@dataclass
class SignatureDispatcher:
    """Verifies wrapped signatures for one account's owner registry."""

    owners: OwnerRegistry
    key_registry: KeyRegistry
    binding_verifier: BindingVerifier
    host: Optional["Host"] = None
    account: str = ""

    def verify(self, hash_: bytes, signature: bytes) -> bool:
        """
        Check ``signature`` (an encoded WrappedSignature) over ``hash_``.

        Returns:
            True if the raw signature and the key binding are both valid

        Raises:
            MalformedSignature: Wrapper or payload is not decodable
            UnknownKey: The key id is not a registered owner
        """
        wrapped = WrappedSignature.decode(signature)

        key_type = self.owners.owner_type(wrapped.key_id)
        if key_type is KeyType.NONE:
            logger.warning(
                "Signature references unregistered key",
                extra={
                    "event": "account.signature_validation_failed",
                    "account": self.account[:16] or "unknown",
                    "reason": "unknown_key",
                    "key_id": hex(wrapped.key_id)[:18],
                },
            )
            raise UnknownKey(wrapped.key_id)

        payload = wrapped.decode_payload()

        verifier = KEY_VERIFIERS[key_type]
        if not verifier(hash_, payload.public_key_x, payload.public_key_y, payload.raw_signature, self.host):
            logger.warning(
                "Signature validation failed: invalid signature",
                extra={
                    "event": "account.signature_validation_failed",
                    "account": self.account[:16] or "unknown",
                    "reason": "raw_signature_invalid",
                    "key_type": key_type.name,
                },
            )
            return False

        root = self.key_registry.current_root()
        public_inputs = [
            wrapped.key_id,
            root,
            public_key_commitment(payload.public_key_x, payload.public_key_y),
        ]
        if not self.binding_verifier.verify(payload.binding_proof, public_inputs):
            logger.warning(
                "Signature validation failed: key binding not proven",
                extra={
                    "event": "account.signature_validation_failed",
                    "account": self.account[:16] or "unknown",
                    "reason": "binding_proof_invalid",
                    "key_id": hex(wrapped.key_id)[:18],
                    "root": hex(root)[:18],
                },
            )
            return False

        logger.debug(
            "Signature validation succeeded",
            extra={
                "event": "account.signature_validation_success",
                "account": self.account[:16] or "unknown",
                "key_type": key_type.name,
            },
        )
        return True
