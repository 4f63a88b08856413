"""Utility helpers for secp256k1/P-256 keys, keccak hashing and signatures."""

from __future__ import annotations

import hashlib
from typing import Optional

from Crypto.Hash import keccak
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)
from ecdsa import SECP256k1, SigningKey, VerifyingKey
from ecdsa.ecdsa import InvalidPointError
from ecdsa.numbertheory import SquareRootError
from ecdsa.util import MalformedSignature, sigdecode_string

_CURVE = ec.SECP256K1()
_CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

_P256_CURVE = ec.SECP256R1()
P256_ORDER = int("FFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551", 16)


def keccak256(data: bytes) -> bytes:
    """Compute keccak256 hash (same as Ethereum)."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def _normalize_private_value(value: int) -> int:
    normalized = value % _CURVE_ORDER
    if normalized == 0:
        normalized = 1
    return normalized


def _private_key_to_hex(private_key: ec.EllipticCurvePrivateKey) -> str:
    return private_key.private_numbers().private_value.to_bytes(32, "big").hex()


def _public_key_to_hex(public_key: ec.EllipticCurvePublicKey) -> str:
    numbers = public_key.public_numbers()
    return (numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big")).hex()


def generate_secp256k1_keypair_hex() -> tuple[str, str]:
    private_key = ec.generate_private_key(_CURVE)
    return _private_key_to_hex(private_key), _public_key_to_hex(private_key.public_key())


def deterministic_keypair_from_seed(seed: bytes) -> tuple[str, str]:
    if len(seed) < 32:
        seed = seed.ljust(32, b"\x00")
    private_value = _normalize_private_value(int.from_bytes(seed[:32], "big"))
    private_key = ec.derive_private_key(private_value, _CURVE)
    return _private_key_to_hex(private_key), _public_key_to_hex(private_key.public_key())


def public_key_coordinates(public_hex: str) -> tuple[int, int]:
    """Split a 64-byte uncompressed public key (hex, no prefix) into (x, y)."""
    raw = bytes.fromhex(public_hex)
    if len(raw) != 64:
        raise ValueError("Public key hex must be 64 bytes (uncompressed without prefix).")
    return int.from_bytes(raw[:32], "big"), int.from_bytes(raw[32:], "big")


def public_key_to_address(x: int, y: int) -> str:
    """
    Derive the 20-byte account address controlled by a secp256k1 key.

    The address is the low 160 bits of keccak256(x || y), each coordinate
    encoded as a 32-byte big-endian word.
    """
    digest = keccak256(x.to_bytes(32, "big") + y.to_bytes(32, "big"))
    return "0x" + digest[-20:].hex()


def _validate_signature_range(r: int, s: int) -> None:
    """
    Ensure signature components fall within the curve order.

    Raises:
        ValueError: If either component is out of range.
    """
    if not (1 <= r < _CURVE_ORDER):
        raise ValueError("Signature r component out of range.")
    if not (1 <= s < _CURVE_ORDER):
        raise ValueError("Signature s component out of range.")


def canonicalize_signature_components(r: int, s: int) -> tuple[int, int]:
    """
    Normalize signature components to canonical low-S form.

    Args:
        r: Signature r component
        s: Signature s component

    Returns:
        Tuple of canonical (r, s)
    """
    _validate_signature_range(r, s)
    if s > _CURVE_ORDER // 2:
        s = _CURVE_ORDER - s
    return r, s


def is_canonical_signature(r: int, s: int) -> bool:
    """
    Check whether signature components are already canonical.

    Returns:
        True if components fall within range and have low-S form.
    """
    try:
        _validate_signature_range(r, s)
    except ValueError:
        return False
    return s <= _CURVE_ORDER // 2


def sign_hash_recoverable(private_hex: str, digest: bytes) -> bytes:
    """
    Sign a 32-byte digest and return a 65-byte ``r || s || v`` signature.

    ``v`` is 27 or 28 depending on the parity of the ephemeral point, so
    the signer's address can be recovered from the signature alone.
    """
    if len(digest) != 32:
        raise ValueError("Digest must be 32 bytes.")
    private_value = _normalize_private_value(int(private_hex, 16))
    signing_key = SigningKey.from_secret_exponent(private_value, curve=SECP256k1)
    r, s = signing_key.sign_digest_deterministic(
        digest,
        hashfunc=hashlib.sha256,
        sigencode=lambda r, s, order: (r, s),
    )
    r, s = canonicalize_signature_components(r, s)
    compact = r.to_bytes(32, "big") + s.to_bytes(32, "big")

    expected = signing_key.get_verifying_key().to_string()
    candidates = VerifyingKey.from_public_key_recovery_with_digest(
        compact, digest, curve=SECP256k1, sigdecode=sigdecode_string
    )
    for recovery_id, candidate in enumerate(candidates):
        if candidate.to_string() == expected:
            return compact + bytes([27 + recovery_id])
    raise RuntimeError("Unable to determine recovery id for signature")


def recover_public_key(digest: bytes, signature: bytes) -> Optional[tuple[int, int]]:
    """
    Recover the secp256k1 public key that produced ``signature`` over ``digest``.

    Returns None for any signature that is not a canonical 65-byte
    ``r || s || v`` encoding or that does not recover to a valid point.
    """
    if len(digest) != 32 or len(signature) != 65:
        return None
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64]
    if v not in (27, 28) or not is_canonical_signature(r, s):
        return None
    try:
        candidates = VerifyingKey.from_public_key_recovery_with_digest(
            signature[:64], digest, curve=SECP256k1, sigdecode=sigdecode_string
        )
    except (SquareRootError, InvalidPointError, MalformedSignature, ValueError):
        return None
    if len(candidates) <= v - 27:
        return None
    raw = candidates[v - 27].to_string()
    return int.from_bytes(raw[:32], "big"), int.from_bytes(raw[32:], "big")


def recover_address(digest: bytes, signature: bytes) -> Optional[str]:
    """Recover the signer address for a 65-byte signature, or None."""
    public_key = recover_public_key(digest, signature)
    if public_key is None:
        return None
    return public_key_to_address(*public_key)


# ==================== P-256 (passkeys) ====================

def generate_p256_keypair_hex() -> tuple[str, str]:
    private_key = ec.generate_private_key(_P256_CURVE)
    return _private_key_to_hex(private_key), _public_key_to_hex(private_key.public_key())


def sign_p256(private_hex: str, message: bytes) -> tuple[int, int]:
    """Sign ``message`` (hashed with SHA-256) with a P-256 key, low-S form."""
    private_key = ec.derive_private_key(int(private_hex, 16), _P256_CURVE)
    r, s = decode_dss_signature(private_key.sign(message, ec.ECDSA(hashes.SHA256())))
    if s > P256_ORDER // 2:
        s = P256_ORDER - s
    return r, s


def verify_p256(x: int, y: int, message: bytes, r: int, s: int) -> bool:
    """
    Verify a P-256 ECDSA signature over SHA-256(message).

    High-S signatures and points off the curve are rejected.
    """
    if not (0 < r < P256_ORDER) or not (0 < s <= P256_ORDER // 2):
        return False
    try:
        public_key = ec.EllipticCurvePublicNumbers(x, y, _P256_CURVE).public_key()
    except ValueError:
        return False
    try:
        public_key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
        return True
    except InvalidSignature:
        return False
