"""
⚠️ DRAFT — requires crypto review before production use

Custom exceptions for the membership protocol.

These exceptions provide structured error handling for proof generation,
proof verification, key handling and registry interaction.
"""


class MembershipProtocolError(Exception):
    """Base exception for membership protocol errors."""

    pass


# ============================================================================
# PROOF GENERATION
# ============================================================================


class ProofGenerationError(MembershipProtocolError):
    """Error during proof generation."""

    pass


class InvalidTokenError(ProofGenerationError):
    """Identity token is not a well-formed three-segment JWT."""

    pass


class NonceMismatchError(ProofGenerationError):
    """Token nonce does not equal the expected ephemeral-key commitment.

    Treated as a potential tamper/CSRF signal.
    """

    pass


class MissingGroupClaimError(ProofGenerationError):
    """The token carries no organization claim (personal account)."""

    pass


class SignInError(ProofGenerationError):
    """The identity provider sign-in flow failed."""

    pass


class SignInTimeoutError(SignInError):
    """The identity provider sign-in flow did not finish in time."""

    pass


class ConstraintError(ProofGenerationError):
    """Circuit inputs do not satisfy the circuit constraints."""

    pass


# ============================================================================
# PROOF VERIFICATION
# ============================================================================


class ProofVerificationError(MembershipProtocolError):
    """Error during proof verification."""

    pass


# ============================================================================
# CONFIGURATION / TRUST
# ============================================================================


class ConfigurationError(MembershipProtocolError):
    """Configuration error."""

    pass


class KeyResolutionError(ConfigurationError):
    """The provider signing key set could not be fetched or parsed."""

    pass


class SigningKeyNotFoundError(KeyResolutionError):
    """No provider signing key matches the requested key id."""

    pass


class CircuitVersionError(ConfigurationError):
    """Unknown circuit version, or proof/verifier version mismatch."""

    pass


class UnknownProviderError(ConfigurationError):
    """Identity provider name is not registered."""

    pass


# ============================================================================
# CRYPTOGRAPHY
# ============================================================================


class CryptographicError(MembershipProtocolError):
    """Cryptographic operation error."""

    pass


class LimbOverflowError(CryptographicError):
    """Value does not fit the requested limb layout."""

    pass


# ============================================================================
# CLIENT STATE
# ============================================================================


class MembershipStateError(MembershipProtocolError):
    """Operation not allowed in the current membership state."""

    pass


class NotRegisteredError(MembershipStateError):
    """No registered ephemeral key is available."""

    pass


class EphemeralKeyExpiredError(MembershipStateError):
    """The ephemeral key expired; re-registration is required."""

    pass


# ============================================================================
# REGISTRY
# ============================================================================


class RegistryError(MembershipProtocolError):
    """The membership registry or message store failed."""

    pass


class RegistrationRejectedError(RegistryError):
    """The registry refused a membership registration."""

    pass


class MessageRejectedError(RegistryError):
    """The message store refused a message."""

    pass


class MessageNotFoundError(RegistryError):
    """Requested message does not exist or is not visible to the caller."""

    pass
