"""
Keyring Account Core Module

Core functionality for keyring accounts including:
- Hosted contracts (account, entry point, factory)
- Key registry and binding proofs
- ECDSA, P-256 and WebAuthn verification
- Configuration and structured logging
"""

__all__ = []
