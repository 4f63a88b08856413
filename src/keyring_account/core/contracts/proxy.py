"""
Contract Upgradability - UUPS code pointer.

Keyring accounts are deployed behind a UUPS (EIP-1822) proxy: the proxy
holds only the implementation pointer, and the authorization check lives
in the implementation. Swapping the pointer never touches account storage
such as the owner registry.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from ..vm.exceptions import VMExecutionError

logger = logging.getLogger(__name__)

@dataclass
class UpgradeHistory:
    """Record of an upgrade event."""
    from_implementation: str
    to_implementation: str
    timestamp: float
    upgrader: str
    version: int


@dataclass
class UUPSProxy:
    """
    UUPS (Universal Upgradeable Proxy Standard) - EIP-1822.

    Key characteristics:
    - Upgrade logic in implementation, not proxy
    - Implementation must include the upgrade mechanism
    - Risk: if the upgrade function is removed, the proxy is stuck
    """

    address: str = ""
    implementation: str = ""

    # Version tracking
    version: int = 0
    upgrade_history: list[UpgradeHistory] = field(default_factory=list)

    def upgrade_to(
        self,
        caller: str,
        new_implementation: str,
        authorize_upgrade: Callable[[str, str], None],
    ) -> bool:
        """
        Upgrade to new implementation.

        Args:
            caller: Message sender
            new_implementation: New implementation address
            authorize_upgrade: Implementation's authorization hook; raises
                when the upgrade is not permitted

        Returns:
            True if successful
        """
        authorize_upgrade(caller, new_implementation)

        if not new_implementation:
            raise VMExecutionError("Invalid implementation address")

        old_implementation = self.implementation
        self.implementation = new_implementation.lower()
        self.version += 1

        self.upgrade_history.append(UpgradeHistory(
            from_implementation=old_implementation,
            to_implementation=self.implementation,
            timestamp=time.time(),
            upgrader=caller,
            version=self.version,
        ))

        logger.info(
            "UUPS proxy upgraded",
            extra={
                "event": "uups.upgraded",
                "proxy": self.address[:10],
                "new_impl": self.implementation[:10],
                "version": self.version,
            }
        )

        return True

    def get_implementation(self) -> str:
        """Get current implementation."""
        return self.implementation

    def snapshot_state(self) -> tuple:
        return self.implementation, self.version, len(self.upgrade_history)

    def restore_state(self, state: tuple) -> None:
        self.implementation, self.version, history_length = state
        del self.upgrade_history[history_length:]
