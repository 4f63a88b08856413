"""
Keyring Account - ERC-4337 smart wallet owned by keyring key ids.

Main Components:
- Owner registry: key id -> key type (EOA or passkey)
- Signature dispatch: per-key-type verification plus key-binding proofs
- Replay policy: chain-bound vs cross-chain replayable operations
- Execution: role-gated single and batched calls with atomic rollback
"""

__version__ = "0.1.0"
__author__ = "Keyring Account Development Team"

__all__ = []
