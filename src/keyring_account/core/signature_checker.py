"""
Signature validity checks for externally owned and contract signers.

``is_valid_signature_now`` accepts a signature when either:
- ECDSA recovery over the hash yields ``signer``; or
- ``signer`` is a contract on the host whose ERC-1271
  ``is_valid_signature(hash, signature)`` returns the magic value.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .constants import ERC1271_MAGIC_VALUE
from .crypto_utils import recover_address
from .vm.exceptions import VMExecutionError

if TYPE_CHECKING:
    from .vm.host import Host

logger = logging.getLogger(__name__)


def is_valid_signature_now(
    signer: str,
    hash_: bytes,
    signature: bytes,
    host: Optional["Host"] = None,
) -> bool:
    recovered = recover_address(hash_, signature)
    if recovered is not None and recovered == signer.lower():
        return True
    return is_valid_erc1271_signature_now(signer, hash_, signature, host)


def is_valid_erc1271_signature_now(
    signer: str,
    hash_: bytes,
    signature: bytes,
    host: Optional["Host"] = None,
) -> bool:
    """
    Ask a contract signer whether ``signature`` is valid for ``hash_``.

    A signer without code, without an ERC-1271 entry point, or whose check
    reverts is treated as "not valid", matching a failed static call.
    """
    if host is None:
        return False
    contract = host.code_at(signer)
    check = getattr(contract, "is_valid_signature", None)
    if check is None:
        return False
    try:
        result = check(hash_, signature)
    except VMExecutionError as e:
        logger.debug(
            "ERC-1271 check reverted",
            extra={
                "event": "signature_checker.erc1271_reverted",
                "signer": signer[:10],
                "error": str(e),
            },
        )
        return False
    return result == ERC1271_MAGIC_VALUE
