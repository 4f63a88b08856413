"""
Replay protection for user operations.

Each operation is either chain-bound or replayable across chains, and the
nonce key must agree with the call data:

- call data targets executeWithoutChainIdValidation ⇔ nonce key is
  REPLAYABLE_NONCE_KEY
- replayable operations are signed over a hash without the chain id and
  may only carry account-management calls (owner changes, upgrades)

Without the two-way check a chain-bound operation could be replayed on
another chain by reusing the replayable nonce namespace, or the reverse.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable

from ..abi import split_call
from ..constants import REPLAYABLE_NONCE_KEY
from .errors import InvalidNonceKey, SelectorNotAllowed
from .selectors import (
    ADD_OWNER_SELECTOR,
    EXECUTE_WITHOUT_CHAIN_ID_VALIDATION_SELECTOR,
    REMOVE_LAST_OWNER_SELECTOR,
    REMOVE_OWNER_SELECTOR,
    UPGRADE_TO_AND_CALL_SELECTOR,
)
from .user_operation import (
    UserOperation,
    get_user_op_hash_without_chain_id,
)

logger = logging.getLogger(__name__)

# Calls allowed through the replayable path
REPLAYABLE_SELECTORS = frozenset({
    ADD_OWNER_SELECTOR,
    REMOVE_OWNER_SELECTOR,
    REMOVE_LAST_OWNER_SELECTOR,
    UPGRADE_TO_AND_CALL_SELECTOR,
})


class ReplayClass(Enum):
    CHAIN_BOUND = "chain_bound"
    REPLAYABLE = "replayable"


def can_skip_chain_id_validation(selector: bytes) -> bool:
    return bytes(selector) in REPLAYABLE_SELECTORS


def classify(user_op: UserOperation) -> ReplayClass:
    """
    Classify ``user_op`` and enforce the nonce-key rule.

    Raises:
        InvalidNonceKey: The nonce key does not match the call data's path
    """
    selector, _ = split_call(user_op.call_data)
    key = user_op.nonce_key

    if selector == EXECUTE_WITHOUT_CHAIN_ID_VALIDATION_SELECTOR:
        if key != REPLAYABLE_NONCE_KEY:
            _reject_nonce_key(user_op, key, "replayable_call_with_chain_bound_key")
        return ReplayClass.REPLAYABLE

    if key == REPLAYABLE_NONCE_KEY:
        _reject_nonce_key(user_op, key, "chain_bound_call_with_replayable_key")
    return ReplayClass.CHAIN_BOUND


def hash_to_validate(user_op: UserOperation, user_op_hash: bytes, entry_point: str) -> bytes:
    """
    Hash the account must check the signature against.

    Chain-bound operations use the entry point's hash unchanged; replayable
    ones are re-hashed without the chain id.
    """
    if classify(user_op) is ReplayClass.REPLAYABLE:
        return get_user_op_hash_without_chain_id(user_op, entry_point)
    return user_op_hash


def require_replayable_selectors(calls: Iterable[bytes]) -> None:
    """
    Raises:
        SelectorNotAllowed: First call whose selector is not allow-listed
    """
    for call in calls:
        selector, _ = split_call(call)
        if not can_skip_chain_id_validation(selector):
            logger.warning(
                "Replayable call rejected",
                extra={
                    "event": "replay_policy.selector_not_allowed",
                    "selector": selector.hex(),
                },
            )
            raise SelectorNotAllowed(selector.ljust(4, b"\x00"))


def _reject_nonce_key(user_op: UserOperation, key: int, reason: str) -> None:
    logger.warning(
        "UserOp rejected: invalid nonce key",
        extra={
            "event": "replay_policy.invalid_nonce_key",
            "sender": user_op.sender[:16],
            "nonce_key": key,
            "reason": reason,
        },
    )
    raise InvalidNonceKey(key)
