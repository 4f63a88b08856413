"""In-process execution host and contract error hierarchy."""

from .exceptions import ExecutionReverted, InsufficientBalanceError, VMExecutionError
from .host import Host, WorldSnapshot

__all__ = [
    "ExecutionReverted",
    "Host",
    "InsufficientBalanceError",
    "VMExecutionError",
    "WorldSnapshot",
]
