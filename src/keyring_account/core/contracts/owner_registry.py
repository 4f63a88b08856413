"""
Owner registry for keyring accounts.

Owners are opaque 256-bit key identifiers naming keys held in an external
key registry. The account never stores public keys: a key id stays the
same across rotations, only the registry's binding changes.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterable, List, Tuple

from .errors import (
    AlreadyOwner,
    CannotRemoveLastOwner,
    Initialized,
    InvalidKeyType,
    NoOwners,
    NotLastOwner,
    NotOwner,
)
from ..vm.exceptions import VMExecutionError

logger = logging.getLogger(__name__)

MAX_KEY_ID = (1 << 256) - 1


class KeyType(IntEnum):
    """Signature algorithm of an owner key. NONE means "not an owner"."""
    NONE = 0
    EOA = 1
    PASSKEY = 2


@dataclass(frozen=True)
class OwnerEntry:
    key_id: int
    key_type: KeyType


@dataclass
class OwnerEvent:
    """Ownership change, kept for off-chain indexers."""

    event_type: str  # "AddOwner" or "RemoveOwner"
    key_id: int
    key_type: KeyType
    timestamp: float = field(default_factory=time.time)


@dataclass
class OwnerRegistry:
    """
    Mapping of key id -> key type plus a live owner count.

    Invariant: once initialized the registry never drops to zero owners
    except through remove_last_owner.
    """

    owners_by_key: Dict[int, KeyType] = field(default_factory=dict)
    count: int = 0
    events: List[OwnerEvent] = field(default_factory=list)

    # ==================== Queries ====================

    def owner_type(self, key_id: int) -> KeyType:
        return self.owners_by_key.get(key_id, KeyType.NONE)

    def is_owner(self, key_id: int) -> bool:
        return self.owner_type(key_id) is not KeyType.NONE

    def owner_count(self) -> int:
        return self.count

    def owners(self) -> List[OwnerEntry]:
        return [OwnerEntry(k, t) for k, t in self.owners_by_key.items()]

    # ==================== Mutations ====================

    def initialize(self, owners: Iterable[Tuple[int, int]]) -> None:
        """
        Register the initial owner set.

        Raises:
            Initialized: If any owner is already registered
            NoOwners: If ``owners`` is empty
        """
        if self.count != 0:
            raise Initialized()
        owners = list(owners)
        if not owners:
            raise NoOwners()
        state = self.snapshot_state()
        try:
            for key_id, key_type in owners:
                self.add_owner(key_id, key_type)
        except VMExecutionError:
            self.restore_state(state)
            raise

    def add_owner(self, key_id: int, key_type: int) -> None:
        if not 0 <= key_id <= MAX_KEY_ID:
            raise VMExecutionError("Key id out of uint256 range")
        try:
            key_type = KeyType(key_type)
        except ValueError:
            raise InvalidKeyType(int(key_type) & 0xFF) from None
        if key_type is KeyType.NONE:
            raise InvalidKeyType(int(key_type))
        if self.is_owner(key_id):
            raise AlreadyOwner(key_id)

        self.owners_by_key[key_id] = key_type
        self.count += 1
        self._emit("AddOwner", key_id, key_type)

    def remove_owner(self, key_id: int) -> None:
        key_type = self._require_owner(key_id)
        if self.count == 1:
            raise CannotRemoveLastOwner(key_id)
        self._remove(key_id, key_type)

    def remove_last_owner(self, key_id: int) -> None:
        """
        Remove the only remaining owner, leaving the registry empty.

        This can brick the account and must only be reachable through an
        explicitly authorized path.
        """
        key_type = self._require_owner(key_id)
        if self.count != 1:
            raise NotLastOwner(self.count)
        self._remove(key_id, key_type)

    # ==================== Storage Snapshots ====================

    def snapshot_state(self) -> tuple:
        return dict(self.owners_by_key), self.count, len(self.events)

    def restore_state(self, state: tuple) -> None:
        owners, count, event_count = state
        self.owners_by_key = dict(owners)
        self.count = count
        del self.events[event_count:]

    # ==================== Internal ====================

    def _require_owner(self, key_id: int) -> KeyType:
        key_type = self.owner_type(key_id)
        if key_type is KeyType.NONE:
            raise NotOwner(key_id)
        return key_type

    def _remove(self, key_id: int, key_type: KeyType) -> None:
        del self.owners_by_key[key_id]
        self.count -= 1
        self._emit("RemoveOwner", key_id, key_type)

    def _emit(self, event_type: str, key_id: int, key_type: KeyType) -> None:
        self.events.append(OwnerEvent(event_type, key_id, key_type))
        logger.info(
            "Owner registry changed",
            extra={
                "event": f"owners.{event_type.lower()}",
                "key_id": hex(key_id)[:18],
                "key_type": key_type.name,
                "owner_count": self.count,
            },
        )
