"""Anonymous organization-membership proofs with ephemeral-key messaging."""

__version__ = "0.3.0"
