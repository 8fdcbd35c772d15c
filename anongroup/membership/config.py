"""
⚠️ DRAFT — requires crypto review before production use

Protocol configuration for anonymous membership proofs.

This is a PROTOTYPE implementation for testing and validation.
DO NOT use in production without security audit.

Constants here are shared by the circuit input builders and verifiers. Any
change to them is a breaking change for proofs produced with the bundled
circuit artifacts.
"""

# ============================================================================
# FIELD PARAMETERS
# ============================================================================

# The circuits run over the BN254 scalar field (Noir default).
FIELD_NAME = "bn254"
FIELD_MODULUS = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)
FIELD_MODULUS_BITS = 254

# Public inputs are rendered as 32-byte big-endian hex strings ("0x" + 64).
FIELD_HEX_CHARS = 64

# ============================================================================
# RSA / LIMB ENCODING
# ============================================================================

# Provider JWT signing keys (RS256).
RSA_MODULUS_BITS = 2048
RSA_PUBLIC_EXPONENT = 65537

# 18 limbs of 120 bits = 2160 bits. Oversized on purpose so the same layout
# hosts the Barrett reduction parameter, which is slightly wider than 2048.
LIMB_BITS = 120
LIMB_COUNT = 18

# ============================================================================
# SHA-256 PRECOMPUTATION
# ============================================================================

SHA256_BLOCK_BYTES = 64

# Maximum signed-data tail the circuits hash in-circuit.
MAX_PARTIAL_DATA_LENGTH = 640

# Length of the selector slice used to locate the precompute boundary.
PRECOMPUTE_SELECTOR_LENGTH = 12

# Organization claims the circuits accept as the group id.
GROUP_CLAIM_KEYS = ("hd", "tid", "https://slack.com/team_id")
NONCE_CLAIM_KEY = "nonce"

# ============================================================================
# EPHEMERAL KEYS
# ============================================================================

EPHEMERAL_KEY_BITS = 2048
EPHEMERAL_PUBKEY_SHIFT = 3  # 256-bit pubkey digest >> 3 fits the field
EPHEMERAL_KEY_TTL_SECONDS = 28 * 24 * 3600
EPHEMERAL_SALT_BITS = 253

COMMITMENT_DOMAIN_SEPARATOR = b"ANONGROUP_V1_EPHEMERAL_KEY_COMMITMENT"
MESSAGE_DOMAIN_SEPARATOR = b"ANONGROUP_V1_MESSAGE"

# ============================================================================
# TIMEOUTS
# ============================================================================

SIGN_IN_TIMEOUT_SECONDS = 120.0
PROOF_TIMEOUT_SECONDS = 300.0
VERIFY_TIMEOUT_SECONDS = 60.0
JWKS_HTTP_TIMEOUT_SECONDS = 10.0
JWKS_CACHE_TTL_SECONDS = 300.0

# ============================================================================
# SERIALIZATION
# ============================================================================

SERIALIZATION_FORMAT = "CBOR"
RECORD_VERSION = 1  # Increment for breaking changes

MAX_PROOF_BYTES = 64 * 1024
MAX_PROOF_ARGS_BYTES = 4096
MAX_RECORD_BYTES = MAX_PROOF_BYTES + MAX_PROOF_ARGS_BYTES + 4096

# ============================================================================
# DISPLAY
# ============================================================================

LOGO_URL_TEMPLATE = "https://img.logo.dev/{group_id}"

# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert LIMB_BITS * LIMB_COUNT >= RSA_MODULUS_BITS + 8, "Limb layout too small"
    assert LIMB_BITS < FIELD_MODULUS_BITS, "Limb must fit a field element"
    assert MAX_PARTIAL_DATA_LENGTH % SHA256_BLOCK_BYTES == 0, (
        "Partial data length must be block aligned"
    )
    assert 256 - EPHEMERAL_PUBKEY_SHIFT < FIELD_MODULUS_BITS, (
        "Shifted ephemeral pubkey must fit the field"
    )
    assert EPHEMERAL_SALT_BITS < FIELD_MODULUS_BITS, "Salt must fit the field"
    assert EPHEMERAL_KEY_BITS >= 2048, "Ephemeral key too small"
    assert SIGN_IN_TIMEOUT_SECONDS > 0 and PROOF_TIMEOUT_SECONDS > 0
    return True


# Auto-validate on import
validate_config()
