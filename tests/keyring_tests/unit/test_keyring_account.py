"""
Comprehensive tests for KeyringAccount.

These tests verify that:
- Each entry point enforces its caller role
- validate_user_op returns success/failure codes and pays the prefund
- Single and batch execution propagate callee failures verbatim and
  roll back the whole batch
- Owner management and upgrades are reachable only through self-calls
- The replayable path rejects disallowed selectors before running anything
- ERC-1271 signatures are bound to the account and chain
"""

import hashlib

import pytest

from keyring_account.core.abi import encode_call, function_selector
from keyring_account.core.constants import (
    ERC1271_INVALID_VALUE,
    ERC1271_MAGIC_VALUE,
    REPLAYABLE_NONCE_KEY,
    SIG_VALIDATION_FAILED,
    SIG_VALIDATION_SUCCESS,
)
from keyring_account.core.contracts import selectors
from keyring_account.core.contracts.account_abstraction import Call, KeyringAccount
from keyring_account.core.contracts.errors import (
    CannotRemoveLastOwner,
    Initialized,
    InvalidImplementation,
    InvalidNonceKey,
    MalformedSignature,
    SelectorNotAllowed,
    Unauthorized,
    UnknownKey,
    UnknownSelector,
)
from keyring_account.core.contracts.owner_registry import KeyType
from keyring_account.core.contracts.user_operation import get_user_op_hash
from keyring_account.core.vm.exceptions import ExecutionReverted, VMExecutionError

STRANGER = "0x" + "99" * 20


def add_owner_call(key_id, key_type=KeyType.EOA):
    return encode_call(selectors.ADD_OWNER, [key_id, int(key_type)])


def remove_owner_call(key_id):
    return encode_call(selectors.REMOVE_OWNER, [key_id])


def remove_last_owner_call(key_id):
    return encode_call(selectors.REMOVE_LAST_OWNER, [key_id])


@pytest.fixture
def ep(entry_point):
    return entry_point.address


@pytest.fixture
def implementation(keyring):
    impl = KeyringAccount(
        host=keyring.host,
        key_registry=keyring.registry,
        binding_verifier=keyring.verifier,
        template=True,
    )
    keyring.host.deploy(impl.address, impl)
    return impl


class TestExecutionGate:

    @pytest.mark.security
    def test_validate_user_op_requires_entry_point(self, account, keyring, owner_key):
        op = keyring.user_op(account, b"", key=owner_key)

        with pytest.raises(Unauthorized):
            account.validate_user_op(STRANGER, op, keyring.signing_hash(op), 0)
        with pytest.raises(Unauthorized):
            account.validate_user_op(account.address, op, keyring.signing_hash(op), 0)

    @pytest.mark.security
    def test_execute_requires_entry_point_or_self(self, account, ep, recorder, recorder_address):
        with pytest.raises(Unauthorized):
            account.execute(STRANGER, recorder_address, 0, b"")

        account.execute(ep, recorder_address, 0, b"from entry point")
        account.execute(account.address, recorder_address, 0, b"from self")

        assert [c[2] for c in recorder.calls] == [b"from entry point", b"from self"]

    @pytest.mark.security
    def test_execute_batch_requires_entry_point_or_self(self, account, recorder_address):
        with pytest.raises(Unauthorized):
            account.execute_batch(STRANGER, [Call(recorder_address, 0, b"")])

    @pytest.mark.security
    def test_replayable_execution_requires_entry_point(self, account):
        with pytest.raises(Unauthorized):
            account.execute_without_chain_id_validation(account.address, [add_owner_call(5)])

    @pytest.mark.security
    @pytest.mark.parametrize("caller_name", ["entry_point", "stranger"])
    def test_owner_management_requires_self(self, account, ep, caller_name):
        caller = ep if caller_name == "entry_point" else STRANGER

        with pytest.raises(Unauthorized):
            account.add_owner(caller, 5, KeyType.EOA)
        with pytest.raises(Unauthorized):
            account.remove_owner(caller, 1)
        with pytest.raises(Unauthorized):
            account.remove_last_owner(caller, 1)

        assert account.owner_count() == 2

    @pytest.mark.security
    def test_upgrade_requires_self(self, account, ep, implementation):
        with pytest.raises(Unauthorized):
            account.upgrade_to_and_call(ep, implementation.address)

        assert account.get_implementation() == ""

    def test_unauthorized_revert_data(self, account):
        with pytest.raises(Unauthorized) as exc_info:
            account.execute(STRANGER, STRANGER, 0, b"")

        assert exc_info.value.revert_data == function_selector("Unauthorized()")

    def test_caller_comparison_ignores_case(self, account, ep, recorder_address):
        account.execute(ep.upper().replace("0X", "0x"), recorder_address, 0, b"")


class TestValidateUserOp:

    def test_valid_eoa_signature(self, account, keyring, ep, owner_key):
        op = keyring.user_op(account, b"", key=owner_key)

        assert account.validate_user_op(ep, op, keyring.signing_hash(op), 0) == SIG_VALIDATION_SUCCESS

    def test_valid_passkey_signature(self, account, keyring, ep, passkey):
        op = keyring.user_op(account, b"", key=passkey)

        assert account.validate_user_op(ep, op, keyring.signing_hash(op), 0) == SIG_VALIDATION_SUCCESS

    def test_wrong_signature_is_soft_failure(self, account, keyring, ep, owner_key):
        op = keyring.user_op(account, b"")
        op.signature = keyring.wrap(owner_key, hashlib.sha256(b"something else").digest())

        assert account.validate_user_op(ep, op, keyring.signing_hash(op), 0) == SIG_VALIDATION_FAILED

    def test_signature_for_other_chain_fails(self, account, keyring, ep, owner_key):
        op = keyring.user_op(account, b"")
        op.signature = keyring.wrap(owner_key, get_user_op_hash(op, ep, 1))

        assert account.validate_user_op(ep, op, keyring.signing_hash(op), 0) == SIG_VALIDATION_FAILED

    def test_unknown_key_is_hard_failure(self, account, keyring, ep):
        stranger = keyring.eoa_key(42)
        op = keyring.user_op(account, b"", key=stranger)

        with pytest.raises(UnknownKey):
            account.validate_user_op(ep, op, keyring.signing_hash(op), 0)

    def test_malformed_signature_is_hard_failure(self, account, keyring, ep):
        op = keyring.user_op(account, b"")
        op.signature = b"\x00" * 3

        with pytest.raises(MalformedSignature):
            account.validate_user_op(ep, op, keyring.signing_hash(op), 0)

    def test_nonce_key_violation_is_hard_failure(self, account, keyring, ep, owner_key):
        op = keyring.user_op(account, b"", key=owner_key, nonce_key=REPLAYABLE_NONCE_KEY)

        with pytest.raises(InvalidNonceKey):
            account.validate_user_op(ep, op, keyring.signing_hash(op), 0)

    def test_prefund_paid_to_entry_point(self, account, keyring, ep, owner_key):
        op = keyring.user_op(account, b"", key=owner_key)
        before = keyring.host.balance_of(account.address)

        account.validate_user_op(ep, op, keyring.signing_hash(op), 1_000)

        assert keyring.host.balance_of(account.address) == before - 1_000
        assert keyring.host.balance_of(ep) == 1_000

    def test_prefund_paid_on_soft_failure(self, account, keyring, ep, owner_key):
        op = keyring.user_op(account, b"")
        op.signature = keyring.wrap(owner_key, bytes(32))

        result = account.validate_user_op(ep, op, keyring.signing_hash(op), 1_000)

        assert result == SIG_VALIDATION_FAILED
        assert keyring.host.balance_of(ep) == 1_000

    def test_prefund_failure_not_reported(self, keyring, ep, owner_key):
        account = keyring.account([owner_key], funding=10)
        op = keyring.user_op(account, b"", key=owner_key)

        result = account.validate_user_op(ep, op, keyring.signing_hash(op), 1_000)

        assert result == SIG_VALIDATION_SUCCESS
        assert keyring.host.balance_of(account.address) == 10

    def test_no_prefund_on_hard_failure(self, account, keyring, ep):
        op = keyring.user_op(account, b"")
        op.signature = b""
        before = keyring.host.balance_of(account.address)

        with pytest.raises(MalformedSignature):
            account.validate_user_op(ep, op, keyring.signing_hash(op), 1_000)

        assert keyring.host.balance_of(account.address) == before


class TestExecution:

    def test_execute_forwards_value_and_data(self, account, keyring, ep, recorder, recorder_address):
        result = account.execute(ep, recorder_address, 250, b"payload")

        assert result == b"recorded"
        assert recorder.calls == [(account.address, 250, b"payload")]
        assert keyring.host.balance_of(recorder_address) == 250

    def test_execute_propagates_revert_payload(self, account, ep, reverter, reverter_address):
        with pytest.raises(ExecutionReverted) as exc_info:
            account.execute(ep, reverter_address, 0, b"")

        assert exc_info.value.revert_data == reverter.revert_data

    def test_batch_runs_in_order(self, account, ep, recorder, recorder_address):
        account.execute_batch(ep, [
            Call(recorder_address, 0, b"first"),
            (recorder_address, 0, b"second"),
        ])

        assert [c[2] for c in recorder.calls] == [b"first", b"second"]

    def test_failing_batch_is_atomic(self, account, keyring, ep, recorder, recorder_address, reverter, reverter_address):
        balance_before = keyring.host.balance_of(account.address)

        with pytest.raises(ExecutionReverted) as exc_info:
            account.execute_batch(ep, [
                Call(recorder_address, 100, b"first"),
                Call(reverter_address, 0, b"second"),
                Call(recorder_address, 0, b"third"),
            ])

        assert exc_info.value.revert_data == reverter.revert_data
        assert recorder.calls == []
        assert keyring.host.balance_of(account.address) == balance_before
        assert keyring.host.balance_of(recorder_address) == 0

    def test_later_calls_see_earlier_mutations(self, account, ep):
        """An owner added earlier in a batch is visible to the next call."""
        account.execute_batch(ep, [
            Call(account.address, 0, add_owner_call(5)),
            Call(account.address, 0, remove_owner_call(5)),
        ])

        assert not account.is_owner(5)
        assert [e.event_type for e in account.owners.events[-2:]] == ["AddOwner", "RemoveOwner"]


class TestOwnerManagement:

    def test_self_call_adds_owner(self, account, ep):
        account.execute(ep, account.address, 0, add_owner_call(5, KeyType.PASSKEY))

        assert account.owner_type(5) is KeyType.PASSKEY
        assert account.owner_count() == 3

    def test_cannot_remove_last_owner_through_ordinary_path(self, account, ep):
        account.execute(ep, account.address, 0, remove_owner_call(2))

        with pytest.raises(ExecutionReverted) as exc_info:
            account.execute(ep, account.address, 0, remove_owner_call(1))

        assert exc_info.value.revert_data[:4] == CannotRemoveLastOwner.selector()
        assert account.owner_count() == 1

    def test_remove_last_owner_empties_registry(self, account, ep):
        account.execute_batch(ep, [
            Call(account.address, 0, remove_owner_call(2)),
            Call(account.address, 0, remove_last_owner_call(1)),
        ])

        assert account.owner_count() == 0
        assert account.list_owners() == []

    def test_initialize_only_once(self, account):
        with pytest.raises(Initialized):
            account.initialize([(9, KeyType.EOA)])

    def test_template_cannot_be_initialized(self, implementation):
        with pytest.raises(Initialized):
            implementation.initialize([(1, KeyType.EOA)])


class TestReplayableExecution:

    def test_runs_allowed_calls(self, account, ep):
        account.execute_without_chain_id_validation(ep, [
            add_owner_call(5),
            remove_owner_call(2),
        ])

        assert account.is_owner(5)
        assert not account.is_owner(2)

    @pytest.mark.security
    def test_disallowed_selector_leaves_registry_unchanged(self, account, ep, recorder, recorder_address):
        transfer = encode_call(selectors.EXECUTE, [recorder_address, 1, b""])
        before = account.owners.snapshot_state()

        with pytest.raises(SelectorNotAllowed) as exc_info:
            account.execute_without_chain_id_validation(ep, [add_owner_call(5), transfer])

        assert exc_info.value.args_values == (function_selector(selectors.EXECUTE),)
        assert account.owners.snapshot_state() == before
        assert recorder.calls == []

    def test_failing_inner_call_rolls_back_batch(self, account, ep):
        with pytest.raises(ExecutionReverted):
            account.execute_without_chain_id_validation(ep, [
                add_owner_call(5),
                remove_owner_call(404),
            ])

        assert not account.is_owner(5)

    def test_reachable_through_abi(self, account, keyring, ep):
        data = encode_call(selectors.EXECUTE_WITHOUT_CHAIN_ID_VALIDATION, [[add_owner_call(6)]])

        keyring.host.call(ep, account.address, 0, data)

        assert account.is_owner(6)


class TestUpgrades:

    def test_self_call_upgrades(self, account, ep, implementation):
        data = encode_call(selectors.UPGRADE_TO_AND_CALL, [implementation.address, b""])

        account.execute(ep, account.address, 0, data)

        assert account.get_implementation() == implementation.address
        assert account.proxy.version == 1
        assert account.owner_count() == 2

    def test_upgrade_and_call_runs_follow_up(self, account, ep, implementation):
        data = encode_call(selectors.UPGRADE_TO_AND_CALL, [implementation.address, add_owner_call(7)])

        account.execute(ep, account.address, 0, data)

        assert account.get_implementation() == implementation.address
        assert account.is_owner(7)

    def test_upgrade_to_address_without_code_rejected(self, account, ep):
        data = encode_call(selectors.UPGRADE_TO_AND_CALL, [STRANGER, b""])

        with pytest.raises(ExecutionReverted) as exc_info:
            account.execute(ep, account.address, 0, data)

        assert exc_info.value.revert_data[:4] == InvalidImplementation.selector()
        assert account.get_implementation() == ""

    def test_failed_follow_up_reverts_upgrade(self, account, ep, implementation):
        data = encode_call(selectors.UPGRADE_TO_AND_CALL, [implementation.address, remove_owner_call(404)])

        with pytest.raises(ExecutionReverted):
            account.execute(ep, account.address, 0, data)

        assert account.get_implementation() == ""
        assert account.proxy.upgrade_history == []

    def test_malformed_implementation_address_rejected(self, account, implementation):
        with pytest.raises(VMExecutionError):
            account.upgrade_to_and_call(account.address, "not-an-address")


class TestAbiDispatch:

    def test_plain_value_transfer_accepted(self, account, keyring, ep):
        keyring.host.fund(ep, 500)
        before = keyring.host.balance_of(account.address)

        assert keyring.host.call(ep, account.address, 500, b"") == b""
        assert keyring.host.balance_of(account.address) == before + 500

    def test_execute_through_abi_returns_callee_data(self, account, keyring, ep, recorder, recorder_address):
        data = encode_call(selectors.EXECUTE, [recorder_address, 0, b"abi"])

        assert keyring.host.call(ep, account.address, 0, data) == b"recorded"
        assert recorder.calls[-1][2] == b"abi"

    def test_unknown_selector_rejected(self, account, keyring, ep):
        with pytest.raises(ExecutionReverted) as exc_info:
            keyring.host.call(ep, account.address, 0, b"\x12\x34\x56\x78")

        assert exc_info.value.revert_data == UnknownSelector(b"\x12\x34\x56\x78").revert_data

    def test_undecodable_arguments_rejected(self, account, keyring, ep):
        with pytest.raises(ExecutionReverted):
            keyring.host.call(ep, account.address, 0, function_selector(selectors.EXECUTE) + b"\x01")

    def test_gate_applies_to_abi_calls(self, account, keyring):
        keyring.host.fund(STRANGER, 1)

        with pytest.raises(ExecutionReverted) as exc_info:
            keyring.host.call(STRANGER, account.address, 0, add_owner_call(5))

        assert exc_info.value.revert_data == Unauthorized().revert_data


class TestErc1271:

    MESSAGE = hashlib.sha256(b"sign in with keyring").digest()

    def test_replay_safe_signature_accepted(self, account, keyring, owner_key):
        signature = keyring.wrap(owner_key, account.replay_safe_hash(self.MESSAGE))

        assert account.is_valid_signature(self.MESSAGE, signature) == ERC1271_MAGIC_VALUE

    def test_raw_hash_signature_rejected(self, account, keyring, owner_key):
        signature = keyring.wrap(owner_key, self.MESSAGE)

        assert account.is_valid_signature(self.MESSAGE, signature) == ERC1271_INVALID_VALUE

    def test_signature_not_valid_for_sibling_account(self, account, keyring, owner_key):
        sibling = keyring.account([owner_key])
        signature = keyring.wrap(owner_key, account.replay_safe_hash(self.MESSAGE))

        assert sibling.is_valid_signature(self.MESSAGE, signature) == ERC1271_INVALID_VALUE

    def test_unknown_key_returns_invalid_value(self, account, keyring):
        stranger = keyring.eoa_key(77)
        signature = keyring.wrap(stranger, account.replay_safe_hash(self.MESSAGE))

        assert account.is_valid_signature(self.MESSAGE, signature) == ERC1271_INVALID_VALUE

    @pytest.mark.parametrize("signature", [b"", b"\x01" * 31, b"\xff" * 96])
    def test_malformed_signature_returns_invalid_value(self, account, signature):
        assert account.is_valid_signature(self.MESSAGE, signature) == ERC1271_INVALID_VALUE

    def test_domain_separator_bound_to_chain(self, account):
        separator = account.domain_separator()
        account.host.chain_id += 1

        assert account.domain_separator() != separator
