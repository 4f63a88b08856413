"""
WebAuthn (passkey) assertion verification.

An assertion is verified against a 32-byte challenge and a P-256 public
key. The checks follow the WebAuthn Level 2 assertion procedure as far as
it is meaningful without a relying-party context:

1. clientDataJSON contains ``"type":"webauthn.get"`` at ``type_index``
2. clientDataJSON contains ``"challenge":"<base64url(challenge)>"`` at
   ``challenge_index``
3. authenticator data has the User Present flag, and User Verified when
   required
4. the signature verifies over
   ``authenticatorData || sha256(clientDataJSON)`` (SHA-256, P-256, low-S)

Origin and RP id hash are intentionally not checked: passkeys bound to any
relying party may sign for the account.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from dataclasses import dataclass

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

from .constants import (
    AUTH_DATA_FLAGS_OFFSET,
    AUTH_DATA_FLAGS_UP,
    AUTH_DATA_FLAGS_UV,
    AUTH_DATA_MIN_LENGTH,
)
from .crypto_utils import verify_p256

logger = logging.getLogger(__name__)

EXPECTED_TYPE = b'"type":"webauthn.get"'

# ABI layout of an encoded assertion. clientDataJSON is a Solidity
# string; its ABI encoding is identical to bytes.
WEBAUTHN_AUTH_TYPES = ["(bytes,bytes,uint256,uint256,uint256,uint256)"]


@dataclass(frozen=True)
class WebAuthnAuth:
    """A passkey assertion as produced by navigator.credentials.get()."""

    authenticator_data: bytes
    client_data_json: bytes
    challenge_index: int
    type_index: int
    r: int
    s: int

    def encode(self) -> bytes:
        return encode(
            WEBAUTHN_AUTH_TYPES,
            [(
                self.authenticator_data,
                self.client_data_json,
                self.challenge_index,
                self.type_index,
                self.r,
                self.s,
            )],
        )

    @classmethod
    def decode(cls, data: bytes) -> "WebAuthnAuth":
        """
        Raises:
            DecodingError: If ``data`` is not a valid encoded assertion
        """
        (fields,) = decode(WEBAUTHN_AUTH_TYPES, data)
        return cls(*fields)


def encode_challenge(challenge: bytes) -> str:
    """Unpadded base64url, as browsers put it in clientDataJSON."""
    return base64.urlsafe_b64encode(challenge).rstrip(b"=").decode("ascii")


def verify(
    challenge: bytes,
    require_user_verification: bool,
    auth: WebAuthnAuth,
    x: int,
    y: int,
) -> bool:
    client_data = auth.client_data_json

    type_end = auth.type_index + len(EXPECTED_TYPE)
    if client_data[auth.type_index:type_end] != EXPECTED_TYPE:
        return _fail("type_mismatch")

    expected_challenge = f'"challenge":"{encode_challenge(challenge)}"'.encode()
    challenge_end = auth.challenge_index + len(expected_challenge)
    if client_data[auth.challenge_index:challenge_end] != expected_challenge:
        return _fail("challenge_mismatch")

    auth_data = auth.authenticator_data
    if len(auth_data) < AUTH_DATA_MIN_LENGTH:
        return _fail("authenticator_data_too_short")

    flags = auth_data[AUTH_DATA_FLAGS_OFFSET]
    if not flags & AUTH_DATA_FLAGS_UP:
        return _fail("user_not_present")
    if require_user_verification and not flags & AUTH_DATA_FLAGS_UV:
        return _fail("user_not_verified")

    message = auth_data + hashlib.sha256(client_data).digest()
    if not verify_p256(x, y, message, auth.r, auth.s):
        return _fail("signature_invalid")
    return True


def verify_encoded(
    challenge: bytes,
    require_user_verification: bool,
    encoded_auth: bytes,
    x: int,
    y: int,
) -> bool:
    """Decode an ABI-encoded assertion and verify it; undecodable → False."""
    try:
        auth = WebAuthnAuth.decode(encoded_auth)
    except DecodingError:
        return _fail("assertion_malformed")
    return verify(challenge, require_user_verification, auth, x, y)


def _fail(reason: str) -> bool:
    logger.debug(
        "WebAuthn assertion rejected",
        extra={"event": "webauthn.verification_failed", "reason": reason},
    )
    return False
