"""
In-process host chain used to run account contracts.

The host owns native balances and the address -> contract table, and
implements call frames: each call snapshots world state, and a failing
call restores the snapshot before re-raising the callee's revert payload
as ExecutionReverted. Nested frames therefore give all-or-nothing batches.

Contracts are plain objects exposing::

    call(host, caller, value, data) -> bytes

and optionally ``snapshot_state()`` / ``restore_state(state)`` so their
storage takes part in rollbacks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from .. import config
from .exceptions import ExecutionReverted, InsufficientBalanceError, VMExecutionError

logger = logging.getLogger(__name__)


class HostedContract(Protocol):
    def call(self, host: "Host", caller: str, value: int, data: bytes) -> bytes:
        ...


@dataclass
class WorldSnapshot:
    """Saved balances, deployed code and per-contract storage."""
    balances: Dict[str, int]
    contracts: Dict[str, Any]
    storage: Dict[str, Any]


@dataclass
class Host:
    """Minimal EVM-like world state: chain id, balances, deployed code."""

    chain_id: int = field(default_factory=lambda: config.CHAIN_ID)
    balances: Dict[str, int] = field(default_factory=dict)
    contracts: Dict[str, Any] = field(default_factory=dict)

    call_depth: int = 0
    # Must stay reachable below the interpreter recursion limit
    max_call_depth: int = 64

    # ==================== State ====================

    def deploy(self, address: str, contract: Any) -> None:
        """Place ``contract`` at ``address``."""
        address = self._normalize(address)
        if address in self.contracts:
            raise VMExecutionError(f"Address {address} already has code")
        self.contracts[address] = contract
        logger.debug(
            "Contract deployed",
            extra={"event": "host.deploy", "address": address[:10]},
        )

    def code_at(self, address: str) -> Optional[Any]:
        return self.contracts.get(self._normalize(address))

    def balance_of(self, address: str) -> int:
        return self.balances.get(self._normalize(address), 0)

    def fund(self, address: str, amount: int) -> None:
        address = self._normalize(address)
        self.balances[address] = self.balances.get(address, 0) + amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Move native value; raises InsufficientBalanceError on overdraft."""
        if amount < 0:
            raise VMExecutionError("Negative transfer amount")
        if amount == 0:
            return
        sender = self._normalize(sender)
        recipient = self._normalize(recipient)
        available = self.balances.get(sender, 0)
        if amount > available:
            raise InsufficientBalanceError(
                f"Insufficient balance: {sender[:10]} has {available}, needs {amount}"
            )
        self.balances[sender] = available - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount

    # ==================== Call Frames ====================

    def call(self, caller: str, target: str, value: int, data: bytes) -> bytes:
        """
        Execute a message call from ``caller`` to ``target``.

        Args:
            caller: msg.sender seen by the callee
            target: Callee address
            value: Native value transferred with the call
            data: Call data

        Returns:
            Return data from the callee (empty for plain transfers)

        Raises:
            ExecutionReverted: The callee failed; state is rolled back and
                ``revert_data`` is the callee's payload unchanged
        """
        if self.call_depth >= self.max_call_depth:
            raise ExecutionReverted(b"", "max call depth exceeded")

        snapshot = self.snapshot()
        self.call_depth += 1
        try:
            self.transfer(caller, target, value)
            contract = self.code_at(target)
            if contract is None:
                return b""
            return contract.call(self, self._normalize(caller), value, bytes(data))
        except VMExecutionError as e:
            self.restore(snapshot)
            logger.debug(
                "Call reverted",
                extra={
                    "event": "host.call_reverted",
                    "caller": caller[:10],
                    "target": target[:10],
                    "revert_data": e.revert_data.hex()[:72],
                },
            )
            if isinstance(e, ExecutionReverted):
                raise
            raise ExecutionReverted(e.revert_data, str(e)) from e
        except RecursionError as e:
            self.restore(snapshot)
            raise ExecutionReverted(b"", "call stack too deep") from e
        finally:
            self.call_depth -= 1

    def snapshot(self) -> WorldSnapshot:
        storage = {}
        for address, contract in self.contracts.items():
            snapshot_state = getattr(contract, "snapshot_state", None)
            if snapshot_state is not None:
                storage[address] = snapshot_state()
        return WorldSnapshot(
            balances=dict(self.balances),
            contracts=dict(self.contracts),
            storage=storage,
        )

    def restore(self, snapshot: WorldSnapshot) -> None:
        self.balances = dict(snapshot.balances)
        self.contracts = dict(snapshot.contracts)
        for address, state in snapshot.storage.items():
            contract = self.contracts.get(address)
            if contract is not None:
                contract.restore_state(state)

    @staticmethod
    def _normalize(address: str) -> str:
        return address.lower()
