"""
Execution error hierarchy for hosted contracts.

Every failure raised by contract code derives from VMExecutionError so
callers can catch contract failures separately from programming errors.
Failures carry ``revert_data``: the exact bytes a caller observes when the
call reverts, which lets a batch executor propagate a callee's failure
byte-for-byte.
"""

from __future__ import annotations

from eth_abi import encode

from ..abi import function_selector

# Error(string), the default Solidity revert payload
ERROR_STRING_SELECTOR = function_selector("Error(string)")


class VMExecutionError(Exception):
    """Base exception for all contract execution failures."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    @property
    def revert_data(self) -> bytes:
        """Revert payload seen by the caller (Error(string) encoding)."""
        return ERROR_STRING_SELECTOR + encode(["string"], [self.message])


class ExecutionReverted(VMExecutionError):
    """
    Raised by the host when a call frame reverts.

    Wraps the callee's revert payload unchanged. Re-raising an
    ExecutionReverted must never alter ``revert_data``.
    """

    def __init__(self, revert_data: bytes, message: str = "") -> None:
        super().__init__(message or f"execution reverted: 0x{revert_data.hex()}")
        self._revert_data = bytes(revert_data)

    @property
    def revert_data(self) -> bytes:
        return self._revert_data


class InsufficientBalanceError(VMExecutionError):
    """Raised when a value transfer exceeds the sender's balance."""
    pass
