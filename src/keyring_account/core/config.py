"""
Keyring Account Configuration

Settings are read from environment variables with the ``KEYRING_`` prefix.
Supports testnet and mainnet with separate defaults.
"""

from __future__ import annotations

import logging
import os
from enum import Enum

from .constants import DEFAULT_ENTRY_POINT

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    TESTNET = "testnet"
    MAINNET = "mainnet"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


_DEFAULT_CHAIN_IDS = {
    NetworkType.TESTNET: 84532,
    NetworkType.MAINNET: 8453,
}


def _get_network(env_var: str = "KEYRING_NETWORK") -> NetworkType:
    raw = os.getenv(env_var, "testnet").strip().lower()
    try:
        return NetworkType(raw)
    except ValueError:
        raise ConfigurationError(
            f"{env_var} must be one of {[n.value for n in NetworkType]}, got {raw!r}"
        ) from None


def _get_int(env_var: str, default: int) -> int:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw, 0)
    except ValueError:
        raise ConfigurationError(f"{env_var} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"{env_var} must be non-negative, got {value}")
    return value


def _get_address(env_var: str, default: str) -> str:
    raw = os.getenv(env_var, "").strip() or default
    body = raw[2:] if raw.lower().startswith("0x") else ""
    if len(body) != 40:
        raise ConfigurationError(f"{env_var} must be a 20-byte hex address, got {raw!r}")
    try:
        bytes.fromhex(body)
    except ValueError:
        raise ConfigurationError(f"{env_var} must be a 20-byte hex address, got {raw!r}") from None
    return raw.lower()


# Get network type from environment variable
NETWORK = _get_network()

CHAIN_ID = _get_int("KEYRING_CHAIN_ID", _DEFAULT_CHAIN_IDS[NETWORK])
ENTRY_POINT_ADDRESS = _get_address("KEYRING_ENTRY_POINT", DEFAULT_ENTRY_POINT)

LOG_LEVEL = os.getenv("KEYRING_LOG_LEVEL", "INFO").strip().upper()
LOG_FILE = os.getenv("KEYRING_LOG_FILE", "").strip() or None
ENVIRONMENT = os.getenv("KEYRING_ENVIRONMENT", NETWORK.value).strip()

if LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
    raise ConfigurationError(f"KEYRING_LOG_LEVEL is not a logging level: {LOG_LEVEL!r}")

if NETWORK is NetworkType.MAINNET and CHAIN_ID == _DEFAULT_CHAIN_IDS[NetworkType.TESTNET]:
    logger.warning(
        "Mainnet network configured with the testnet chain id",
        extra={"event": "config.chain_id_mismatch", "chain_id": CHAIN_ID},
    )
