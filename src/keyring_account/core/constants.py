"""
Protocol constants for keyring accounts.

These values are part of the signed-data and wire formats and must not be
changed through configuration.
"""

# ERC-4337 v0.6 EntryPoint singleton
DEFAULT_ENTRY_POINT = "0x5ff137d4b0fdcd49dca30c7cf57e578a026d2789"

# validateUserOp return codes
SIG_VALIDATION_SUCCESS = 0
SIG_VALIDATION_FAILED = 1

# Nonce layout: key (high 192 bits) || sequence (low 64 bits)
NONCE_SEQUENCE_BITS = 64
NONCE_SEQUENCE_MASK = (1 << NONCE_SEQUENCE_BITS) - 1
MAX_NONCE_KEY = (1 << 192) - 1

# Nonce key reserved for operations replayable across chains
REPLAYABLE_NONCE_KEY = 8453

# ERC-1271
ERC1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")
ERC1271_INVALID_VALUE = bytes.fromhex("ffffffff")

# EIP-712 domain for replay-safe message hashes
EIP712_DOMAIN_NAME = "Keyring Smart Wallet"
EIP712_DOMAIN_VERSION = "1"

# BN254 scalar field; public-key commitments are reduced into it
SNARK_SCALAR_FIELD = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)

# Key id reserved for the uninitializable implementation template
TEMPLATE_KEY_ID = 0

# WebAuthn authenticator data flags
AUTH_DATA_FLAGS_UP = 0x01
AUTH_DATA_FLAGS_UV = 0x04
AUTH_DATA_FLAGS_OFFSET = 32
AUTH_DATA_MIN_LENGTH = 37
