"""
Keyring Account Contracts.

This module provides:
- KeyringAccount: ERC-4337 smart account owned by key ids
- EntryPoint: UserOperation validation and execution
- AccountFactory: Deterministic account deployment
- Owner registry, signature dispatch and replay policy
- UUPS upgrade pointer
"""

from .account_abstraction import (
    AccountFactory,
    Call,
    EntryPoint,
    ExecutionResult,
    FailedOp,
    KeyringAccount,
    ValidationResult,
)
from .errors import (
    AccountError,
    AlreadyOwner,
    CannotRemoveLastOwner,
    Initialized,
    InvalidImplementation,
    InvalidKeyType,
    InvalidNonceKey,
    MalformedSignature,
    NoOwners,
    NotLastOwner,
    NotOwner,
    SelectorNotAllowed,
    Unauthorized,
    UnknownKey,
    UnknownSelector,
)
from .owner_registry import KeyType, OwnerEntry, OwnerEvent, OwnerRegistry
from .proxy import UUPSProxy
from .replay_policy import ReplayClass
from .signature_dispatcher import SignatureDispatcher, SignaturePayload, WrappedSignature
from .user_operation import UserOperation

__all__ = [
    # Account Abstraction
    "KeyringAccount",
    "EntryPoint",
    "AccountFactory",
    "UserOperation",
    "Call",
    "ValidationResult",
    "ExecutionResult",
    "FailedOp",
    # Owners
    "KeyType",
    "OwnerEntry",
    "OwnerEvent",
    "OwnerRegistry",
    # Signatures
    "SignatureDispatcher",
    "SignaturePayload",
    "WrappedSignature",
    # Replay Protection
    "ReplayClass",
    # Proxy Patterns
    "UUPSProxy",
    # Errors
    "AccountError",
    "AlreadyOwner",
    "CannotRemoveLastOwner",
    "Initialized",
    "InvalidImplementation",
    "InvalidKeyType",
    "InvalidNonceKey",
    "MalformedSignature",
    "NoOwners",
    "NotLastOwner",
    "NotOwner",
    "SelectorNotAllowed",
    "Unauthorized",
    "UnknownKey",
    "UnknownSelector",
]
