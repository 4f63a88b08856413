"""
Account Abstraction Implementation (ERC-4337 Style) with keyring owners.

Provides a smart contract wallet whose owners are opaque key ids held in an
external key registry:
- Multi-owner management by key id (EOA and passkey keys)
- Signature dispatch with mandatory key-binding proofs
- Cross-chain replayable account-management operations
- UUPS upgrades gated to self-calls

This implementation follows ERC-4337 architecture:
- UserOperation: Struct representing user intent
- EntryPoint: Singleton contract handling UserOps
- KeyringAccount: User's smart contract wallet
- AccountFactory: Deterministic counterfactual deployment

Security features:
- Caller role guards on every entry point
- Nonce-key / call-data agreement for replay protection
- Hard failures for malformed or unknown signatures, soft failures for
  wrong signatures
- All-or-nothing batch execution
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from eth_abi import encode
from eth_abi.exceptions import DecodingError

from .. import config
from ..abi import decode_args, split_call
from ..constants import (
    EIP712_DOMAIN_NAME,
    EIP712_DOMAIN_VERSION,
    ERC1271_INVALID_VALUE,
    ERC1271_MAGIC_VALUE,
    SIG_VALIDATION_FAILED,
    SIG_VALIDATION_SUCCESS,
    TEMPLATE_KEY_ID,
)
from ..crypto_utils import keccak256
from ..keystore import BindingVerifier, InMemoryKeyRegistry, KeyRegistry, MerkleBindingVerifier
from ..vm.exceptions import ExecutionReverted, InsufficientBalanceError, VMExecutionError
from ..vm.host import Host
from . import replay_policy
from . import selectors
from .errors import InvalidImplementation, MalformedSignature, Unauthorized, UnknownKey, UnknownSelector
from .owner_registry import KeyType, OwnerEntry, OwnerRegistry
from .proxy import UUPSProxy
from .signature_dispatcher import SignatureDispatcher
from .user_operation import (
    UserOperation,
    get_user_op_hash,
    make_nonce,
    nonce_key,
    nonce_sequence,
)

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

DOMAIN_TYPEHASH = keccak256(
    b"EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
MESSAGE_TYPEHASH = keccak256(b"KeyringSmartWalletMessage(bytes32 hash)")


def _is_address(value: str) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def _derive_address(label: str) -> str:
    addr_hash = keccak256(f"{label}:{time.time()}:{time.perf_counter_ns()}".encode())
    return f"0x{addr_hash[-20:].hex()}"


@dataclass(frozen=True)
class Call:
    """One call of a batch."""
    target: str
    value: int
    data: bytes


@dataclass
class ValidationResult:
    """Result of UserOp validation."""
    valid: bool
    sig_failed: bool = False
    prefund: int = 0  # Required prefund
    user_op_hash: bytes = b""


@dataclass
class ExecutionResult:
    """Result of UserOp execution."""
    success: bool
    actual_gas_used: int
    revert_data: bytes = b""
    user_op_hash: bytes = b""


@dataclass
class KeyringAccount:
    """
    Smart account owned by key ids.

    Caller roles:
    - entry point only: validate_user_op, execute_without_chain_id_validation
    - entry point or self: execute, execute_batch
    - self only: owner management, upgrade_to_and_call

    The account never stores public keys. Every signature check proves the
    presented key is bound to the owner key id under the key registry's
    current root.
    """

    address: str = ""
    host: Host = field(default_factory=Host, repr=False, compare=False)
    key_registry: KeyRegistry = field(default_factory=InMemoryKeyRegistry)
    binding_verifier: BindingVerifier = field(default_factory=MerkleBindingVerifier)
    entry_point: str = field(default_factory=lambda: config.ENTRY_POINT_ADDRESS)
    implementation: str = ""

    # Implementation artifacts are seeded so they can never be initialized
    template: bool = False

    owners: OwnerRegistry = field(default_factory=OwnerRegistry)
    proxy: UUPSProxy = field(init=False)
    dispatcher: SignatureDispatcher = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Initialize account."""
        if not self.address:
            self.address = _derive_address("keyring_account")
        self.address = self.address.lower()
        self.entry_point = self.entry_point.lower()

        self.proxy = UUPSProxy(address=self.address, implementation=self.implementation.lower())
        self.dispatcher = SignatureDispatcher(
            owners=self.owners,
            key_registry=self.key_registry,
            binding_verifier=self.binding_verifier,
            host=self.host,
            account=self.address,
        )

        if self.template:
            # Reserved key id: the key registry never binds it, so it can
            # never authenticate, and initialize() always fails.
            self.owners.add_owner(TEMPLATE_KEY_ID, KeyType.EOA)

    # ==================== IAccount Interface (ERC-4337) ====================

    def validate_user_op(
        self,
        caller: str,
        user_op: UserOperation,
        user_op_hash: bytes,
        missing_account_funds: int,
    ) -> int:
        """
        Validate UserOperation signature and pay prefund.

        Args:
            caller: Must be the entry point
            user_op: The UserOperation to validate
            user_op_hash: Chain-bound hash computed by the entry point
            missing_account_funds: Amount to pay to the entry point

        Returns:
            SIG_VALIDATION_SUCCESS or SIG_VALIDATION_FAILED

        Raises:
            Unauthorized: Caller is not the entry point
            InvalidNonceKey: Nonce key disagrees with the call data
            MalformedSignature: Signature cannot be decoded
            UnknownKey: Signature names a key id that is not an owner
        """
        self._require_entry_point(caller)

        hash_ = replay_policy.hash_to_validate(user_op, user_op_hash, self.entry_point)
        valid = self.dispatcher.verify(hash_, user_op.signature)

        self._pay_prefund(caller, missing_account_funds)

        if not valid:
            return SIG_VALIDATION_FAILED

        logger.info(
            "UserOp signature validation succeeded",
            extra={
                "event": "account.user_op_validated",
                "account": self.address[:16],
                "nonce_key": user_op.nonce_key,
            }
        )
        return SIG_VALIDATION_SUCCESS

    # ==================== Execution ====================

    def execute(self, caller: str, target: str, value: int, data: bytes) -> bytes:
        """
        Execute a call from this account.

        Returns:
            Return data from the call

        Raises:
            Unauthorized: Caller is neither the entry point nor the account
            ExecutionReverted: The callee reverted; payload is the callee's
        """
        self._require_entry_point_or_self(caller)
        return self._call(target, value, data)

    def execute_batch(
        self,
        caller: str,
        calls: Iterable[Union[Call, Tuple[str, int, bytes]]],
    ) -> List[bytes]:
        """
        Execute calls in order; any failure reverts the whole batch.

        Raises:
            ExecutionReverted: First failing call's payload, unchanged
        """
        self._require_entry_point_or_self(caller)
        calls = [c if isinstance(c, Call) else Call(*c) for c in calls]
        return self._call_all([(c.target, c.value, c.data) for c in calls])

    def execute_without_chain_id_validation(self, caller: str, calls: Sequence[bytes]) -> List[bytes]:
        """
        Execute self-calls of a replayable operation.

        Every call must target an allow-listed account-management selector;
        the allow-list is checked for the whole batch before any call runs.

        Raises:
            Unauthorized: Caller is not the entry point
            SelectorNotAllowed: A call's selector is not allow-listed
        """
        self._require_entry_point(caller)
        replay_policy.require_replayable_selectors(calls)
        return self._call_all([(self.address, 0, bytes(c)) for c in calls])

    # ==================== Owner Management ====================

    def initialize(self, owners: Iterable[Tuple[int, int]]) -> None:
        """
        Register the initial owners (key id, key type).

        Raises:
            Initialized: The account already has owners
        """
        self.owners.initialize(owners)
        logger.info(
            "Account initialized",
            extra={
                "event": "account.initialized",
                "account": self.address[:16],
                "owner_count": self.owners.owner_count(),
            }
        )

    def add_owner(self, caller: str, key_id: int, key_type: int) -> None:
        self._require_self(caller)
        self.owners.add_owner(key_id, key_type)

    def remove_owner(self, caller: str, key_id: int) -> None:
        self._require_self(caller)
        self.owners.remove_owner(key_id)

    def remove_last_owner(self, caller: str, key_id: int) -> None:
        """Remove the final owner. Leaves the account without any signer."""
        self._require_self(caller)
        self.owners.remove_last_owner(key_id)
        logger.warning(
            "Last owner removed",
            extra={
                "event": "account.last_owner_removed",
                "account": self.address[:16],
                "key_id": hex(key_id)[:18],
            }
        )

    def owner_type(self, key_id: int) -> KeyType:
        return self.owners.owner_type(key_id)

    def is_owner(self, key_id: int) -> bool:
        return self.owners.is_owner(key_id)

    def owner_count(self) -> int:
        return self.owners.owner_count()

    def list_owners(self) -> List[OwnerEntry]:
        return self.owners.owners()

    # ==================== Upgrades ====================

    def upgrade_to_and_call(self, caller: str, new_implementation: str, data: bytes = b"") -> None:
        """
        Point the account at a new implementation, then optionally self-call ``data``.

        Raises:
            Unauthorized: Caller is not the account itself
            InvalidImplementation: No code at ``new_implementation``
        """
        self.proxy.upgrade_to(caller, new_implementation, self._authorize_upgrade)
        self.implementation = self.proxy.get_implementation()
        if data:
            self._call(self.address, 0, data)

    def get_implementation(self) -> str:
        return self.proxy.get_implementation()

    def _authorize_upgrade(self, caller: str, new_implementation: str) -> None:
        self._require_self(caller)
        if not _is_address(new_implementation):
            raise VMExecutionError("Invalid implementation address")
        if self.host.code_at(new_implementation) is None:
            raise InvalidImplementation(new_implementation)

    # ==================== ERC-1271 ====================

    def is_valid_signature(self, hash_: bytes, signature: bytes) -> bytes:
        """
        ERC-1271 check over the replay-safe wrapping of ``hash_``.

        Returns:
            ERC1271_MAGIC_VALUE if valid, ERC1271_INVALID_VALUE otherwise
        """
        try:
            valid = self.dispatcher.verify(self.replay_safe_hash(hash_), signature)
        except (MalformedSignature, UnknownKey) as e:
            logger.info(
                "ERC-1271 signature rejected",
                extra={
                    "event": "account.erc1271_rejected",
                    "account": self.address[:16],
                    "error": str(e),
                }
            )
            return ERC1271_INVALID_VALUE
        return ERC1271_MAGIC_VALUE if valid else ERC1271_INVALID_VALUE

    def domain_separator(self) -> bytes:
        return keccak256(encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [
                DOMAIN_TYPEHASH,
                keccak256(EIP712_DOMAIN_NAME.encode()),
                keccak256(EIP712_DOMAIN_VERSION.encode()),
                self.host.chain_id,
                self.address,
            ],
        ))

    def replay_safe_hash(self, hash_: bytes) -> bytes:
        """EIP-712 hash binding ``hash_`` to this account and chain."""
        struct_hash = keccak256(encode(["bytes32", "bytes32"], [MESSAGE_TYPEHASH, hash_]))
        return keccak256(b"\x19\x01" + self.domain_separator() + struct_hash)

    # ==================== Hosted Contract Interface ====================

    def call(self, host: Host, caller: str, value: int, data: bytes) -> bytes:
        """
        ABI entry point used by the host for message calls.

        Empty call data is a plain value transfer and always succeeds.
        """
        if not data:
            return b""
        selector, payload = split_call(data)
        entry = self._abi_handlers().get(selector)
        if entry is None:
            raise UnknownSelector(selector.ljust(4, b"\x00"))
        signature, handler = entry
        try:
            args = decode_args(signature, payload)
        except DecodingError as e:
            raise VMExecutionError(f"Invalid calldata for {signature}: {e}") from e
        result = handler(caller, *args)
        return result if isinstance(result, bytes) else b""

    def _abi_handlers(self) -> Dict[bytes, Tuple[str, Callable[..., Any]]]:
        return {
            selectors.EXECUTE_SELECTOR: (selectors.EXECUTE, self.execute),
            selectors.EXECUTE_BATCH_SELECTOR: (selectors.EXECUTE_BATCH, self.execute_batch),
            selectors.EXECUTE_WITHOUT_CHAIN_ID_VALIDATION_SELECTOR: (
                selectors.EXECUTE_WITHOUT_CHAIN_ID_VALIDATION,
                self.execute_without_chain_id_validation,
            ),
            selectors.INITIALIZE_SELECTOR: (
                selectors.INITIALIZE,
                lambda caller, owners: self.initialize(owners),
            ),
            selectors.ADD_OWNER_SELECTOR: (selectors.ADD_OWNER, self.add_owner),
            selectors.REMOVE_OWNER_SELECTOR: (selectors.REMOVE_OWNER, self.remove_owner),
            selectors.REMOVE_LAST_OWNER_SELECTOR: (selectors.REMOVE_LAST_OWNER, self.remove_last_owner),
            selectors.UPGRADE_TO_AND_CALL_SELECTOR: (
                selectors.UPGRADE_TO_AND_CALL,
                lambda caller, impl, data: self.upgrade_to_and_call(caller, impl.lower(), data),
            ),
        }

    def snapshot_state(self) -> tuple:
        return self.owners.snapshot_state(), self.proxy.snapshot_state(), self.implementation

    def restore_state(self, state: tuple) -> None:
        owners_state, proxy_state, self.implementation = state
        self.owners.restore_state(owners_state)
        self.proxy.restore_state(proxy_state)

    # ==================== Internal ====================

    def _call(self, target: str, value: int, data: bytes) -> bytes:
        return self.host.call(self.address, target.lower(), value, data)

    def _call_all(self, calls: List[Tuple[str, int, bytes]]) -> List[bytes]:
        snapshot = self.host.snapshot()
        results = []
        try:
            for target, value, data in calls:
                results.append(self._call(target, value, data))
        except VMExecutionError as e:
            self.host.restore(snapshot)
            logger.warning(
                "Batch reverted",
                extra={
                    "event": "account.batch_reverted",
                    "account": self.address[:16],
                    "failed_index": len(results),
                    "calls": len(calls),
                    "revert_data": e.revert_data.hex()[:72],
                }
            )
            raise
        return results

    def _pay_prefund(self, recipient: str, amount: int) -> None:
        """Best-effort payment; sufficiency is checked by the entry point."""
        if amount <= 0:
            return
        try:
            self.host.transfer(self.address, recipient, amount)
        except InsufficientBalanceError as e:
            logger.warning(
                "Prefund payment failed",
                extra={
                    "event": "account.prefund_failed",
                    "account": self.address[:16],
                    "amount": amount,
                    "error": str(e),
                }
            )

    def _require_entry_point(self, caller: str) -> None:
        if caller.lower() != self.entry_point:
            self._unauthorized(caller, "entry_point")

    def _require_entry_point_or_self(self, caller: str) -> None:
        if caller.lower() not in (self.entry_point, self.address):
            self._unauthorized(caller, "entry_point_or_self")

    def _require_self(self, caller: str) -> None:
        if caller.lower() != self.address:
            self._unauthorized(caller, "self")

    def _unauthorized(self, caller: str, required_role: str) -> None:
        logger.warning(
            "Unauthorized caller",
            extra={
                "event": "account.unauthorized",
                "account": self.address[:16],
                "caller": caller[:16],
                "required_role": required_role,
            }
        )
        raise Unauthorized()


class FailedOp(VMExecutionError):
    """Bundle rejected: a UserOp failed validation (ERC-4337 FailedOp)."""

    def __init__(self, op_index: int, reason: str) -> None:
        super().__init__(f"FailedOp({op_index}, {reason})")
        self.op_index = op_index
        self.reason = reason


@dataclass
class EntryPoint:
    """
    ERC-4337 EntryPoint (orchestrator).

    The singleton that:
    - Receives UserOperations from bundlers
    - Enforces 2D nonces (key, sequence)
    - Validates through the account and collects prefunds
    - Executes operations and pays the beneficiary
    """

    host: Host = field(default_factory=Host)
    address: str = field(default_factory=lambda: config.ENTRY_POINT_ADDRESS)

    # Deposits (for gas prepayment)
    deposits: Dict[str, int] = field(default_factory=dict)

    # (sender, nonce key) -> next sequence
    nonce_sequences: Dict[Tuple[str, int], int] = field(default_factory=dict)

    # Statistics
    total_ops_processed: int = 0
    total_gas_used: int = 0

    def __post_init__(self) -> None:
        self.address = self.address.lower()

    # ==================== Main Entry Point ====================

    def handle_ops(self, ops: List[UserOperation], beneficiary: str) -> List[ExecutionResult]:
        """
        Handle a batch of UserOperations.

        All ops are validated first; any validation failure rejects the
        whole bundle with FailedOp and leaves no trace. Execution failures
        are reported per op.

        Args:
            ops: List of UserOperations
            beneficiary: Address to receive gas payment

        Returns:
            List of execution results
        """
        saved = self._snapshot()
        try:
            validated = [self._validate_op(i, op) for i, op in enumerate(ops)]
        except FailedOp as e:
            self._restore(saved)
            logger.warning(
                "Bundle rejected",
                extra={
                    "event": "entrypoint.op_failed",
                    "op_index": e.op_index,
                    "reason": e.reason,
                }
            )
            raise
        except Exception:
            self._restore(saved)
            raise

        results = []
        collected = 0
        for op, (op_hash, prefund) in zip(ops, validated):
            result, cost = self._execute_op(op, op_hash, prefund)
            results.append(result)
            collected += cost

        self.host.transfer(self.address, beneficiary, collected)
        self.total_ops_processed += len(ops)
        return results

    def simulate_validation(self, op: UserOperation) -> ValidationResult:
        """
        Run validation for ``op`` and discard every state change.

        A wrong signature is reported through ``sig_failed``; malformed
        input, unknown keys and nonce-key violations raise FailedOp.
        """
        saved = self._snapshot()
        try:
            op_hash = self.get_user_op_hash(op)
            code, prefund = self._run_account_validation(0, op, op_hash)
            return ValidationResult(
                valid=code == SIG_VALIDATION_SUCCESS,
                sig_failed=code == SIG_VALIDATION_FAILED,
                prefund=prefund,
                user_op_hash=op_hash,
            )
        finally:
            self._restore(saved)

    def get_user_op_hash(self, op: UserOperation) -> bytes:
        return get_user_op_hash(op, self.address, self.host.chain_id)

    def get_nonce(self, sender: str, key: int = 0) -> int:
        """Next full nonce (key || sequence) for ``sender`` under ``key``."""
        return make_nonce(key, self.nonce_sequences.get((sender.lower(), key), 0))

    # ==================== Deposit Management ====================

    def deposit_to(self, payer: str, account: str, amount: int) -> None:
        """
        Move ``amount`` from ``payer`` to the entry point, credited to ``account``.

        Raises:
            InsufficientBalanceError: ``payer`` cannot cover ``amount``
        """
        self.host.transfer(payer, self.address, amount)
        self._credit(account, amount)
        logger.info(
            "Deposit received",
            extra={
                "event": "entrypoint.deposited",
                "account": account[:10],
                "amount": amount,
            }
        )

    def balance_of(self, account: str) -> int:
        return self.deposits.get(account.lower(), 0)

    def get_stats(self) -> Dict:
        return {
            "total_ops_processed": self.total_ops_processed,
            "total_gas_used": self.total_gas_used,
        }

    # ==================== Internal ====================

    def _credit(self, account: str, amount: int) -> None:
        self.deposits[account.lower()] = self.deposits.get(account.lower(), 0) + amount

    def _validate_op(self, index: int, op: UserOperation) -> Tuple[bytes, int]:
        op_hash = self.get_user_op_hash(op)
        self._validate_and_update_nonce(index, op)
        code, prefund = self._run_account_validation(index, op, op_hash)
        if code != SIG_VALIDATION_SUCCESS:
            raise FailedOp(index, "AA24 signature error")

        sender = op.sender.lower()
        if self.deposits.get(sender, 0) < prefund:
            raise FailedOp(index, "AA21 didn't pay prefund")
        self.deposits[sender] -= prefund
        return op_hash, prefund

    def _run_account_validation(self, index: int, op: UserOperation, op_hash: bytes) -> Tuple[int, int]:
        account = self.host.code_at(op.sender)
        if account is None or not hasattr(account, "validate_user_op"):
            raise FailedOp(index, "AA20 account not deployed")

        sender = op.sender.lower()
        prefund = op.required_prefund()
        missing = max(0, prefund - self.deposits.get(sender, 0))

        balance_before = self.host.balance_of(self.address)
        try:
            code = account.validate_user_op(self.address, op, op_hash, missing)
        except VMExecutionError as e:
            raise FailedOp(index, f"AA23 reverted: {e}") from e
        received = self.host.balance_of(self.address) - balance_before
        self._credit(sender, received)
        return code, prefund

    def _validate_and_update_nonce(self, index: int, op: UserOperation) -> None:
        slot = (op.sender.lower(), nonce_key(op.nonce))
        expected = self.nonce_sequences.get(slot, 0)
        if nonce_sequence(op.nonce) != expected:
            logger.warning(
                "UserOp validation failed: nonce mismatch",
                extra={
                    "event": "entrypoint.validation_failed",
                    "sender": op.sender[:16],
                    "reason": "nonce_mismatch",
                    "expected": expected,
                    "got": nonce_sequence(op.nonce),
                }
            )
            raise FailedOp(index, "AA25 invalid account nonce")
        self.nonce_sequences[slot] = expected + 1

    def _execute_op(self, op: UserOperation, op_hash: bytes, prefund: int) -> Tuple[ExecutionResult, int]:
        success = True
        revert_data = b""
        try:
            if op.call_data:
                self.host.call(self.address, op.sender, 0, op.call_data)
        except ExecutionReverted as e:
            success = False
            revert_data = e.revert_data
            logger.warning(
                "UserOp execution reverted",
                extra={
                    "event": "entrypoint.user_op_revert_reason",
                    "sender": op.sender[:16],
                    "revert_data": revert_data.hex()[:72],
                }
            )

        # Simplified gas accounting
        gas_used = op.pre_verification_gas + op.verification_gas_limit + op.call_gas_limit // 2
        cost = min(gas_used * op.max_fee_per_gas, prefund)
        self._credit(op.sender, prefund - cost)
        self.total_gas_used += gas_used

        logger.info(
            "UserOp processed",
            extra={
                "event": "entrypoint.op_processed",
                "sender": op.sender[:10],
                "success": success,
                "gas_used": gas_used,
            }
        )
        return ExecutionResult(
            success=success,
            actual_gas_used=gas_used,
            revert_data=revert_data,
            user_op_hash=op_hash,
        ), cost

    def _snapshot(self) -> tuple:
        return (
            self.host.snapshot(),
            dict(self.deposits),
            dict(self.nonce_sequences),
            self.total_gas_used,
        )

    def _restore(self, saved: tuple) -> None:
        world, deposits, nonces, gas = saved
        self.host.restore(world)
        self.deposits = deposits
        self.nonce_sequences = nonces
        self.total_gas_used = gas


@dataclass
class AccountFactory:
    """
    Factory for deploying keyring accounts.

    Provides deterministic addresses for counterfactual deployment. The
    factory owns the implementation template, which is seeded at
    construction so it can never be initialized as a live account.
    """

    host: Host = field(default_factory=Host)
    key_registry: KeyRegistry = field(default_factory=InMemoryKeyRegistry)
    binding_verifier: BindingVerifier = field(default_factory=MerkleBindingVerifier)
    entry_point: str = field(default_factory=lambda: config.ENTRY_POINT_ADDRESS)
    address: str = ""
    implementation: Optional[KeyringAccount] = None

    def __post_init__(self) -> None:
        if not self.address:
            self.address = _derive_address("account_factory")
        self.address = self.address.lower()
        if self.implementation is None:
            self.implementation = KeyringAccount(
                host=self.host,
                key_registry=self.key_registry,
                binding_verifier=self.binding_verifier,
                entry_point=self.entry_point,
                template=True,
            )
            self.host.deploy(self.implementation.address, self.implementation)

    def get_address(self, owners: Sequence[Tuple[int, int]], nonce: int) -> str:
        """Deterministic account address for ``owners`` and ``nonce``."""
        salt = keccak256(encode(
            ["(uint256,uint8)[]", "uint256"],
            [[(k, int(t)) for k, t in owners], nonce],
        ))
        addr_hash = keccak256(
            b"\xff" + bytes.fromhex(self.address[2:]) + salt
            + keccak256(bytes.fromhex(self.implementation.address[2:]))
        )
        return f"0x{addr_hash[-20:].hex()}"

    def create_account(self, owners: Sequence[Tuple[int, int]], nonce: int = 0) -> KeyringAccount:
        """
        Deploy and initialize an account, or return the existing one.

        Raises:
            NoOwners: ``owners`` is empty
            AlreadyOwner: ``owners`` repeats a key id
        """
        address = self.get_address(owners, nonce)
        existing = self.host.code_at(address)
        if existing is not None:
            return existing

        account = KeyringAccount(
            address=address,
            host=self.host,
            key_registry=self.key_registry,
            binding_verifier=self.binding_verifier,
            entry_point=self.entry_point,
            implementation=self.implementation.address,
        )
        account.initialize(owners)
        self.host.deploy(address, account)

        logger.info(
            "Account created",
            extra={
                "event": "factory.account_created",
                "address": address[:10],
                "owners": len(owners),
            }
        )
        return account
