"""
Identity providers keyed by name.

The set is closed; proofs name their provider and verifiers dispatch on it.
"""
from __future__ import annotations

from typing import Any, Dict, Type

from ..membership.exceptions import UnknownProviderError
from .base import OAuthIdentityProvider, TokenSource, client_id_env_var
from .google import GoogleOAuthProvider
from .jwks import JwksClient, StaticKeySet
from .microsoft import MicrosoftOAuthProvider
from .slack import SlackOAuthProvider

PROVIDERS: Dict[str, Type[OAuthIdentityProvider]] = {
    GoogleOAuthProvider.provider_name: GoogleOAuthProvider,
    MicrosoftOAuthProvider.provider_name: MicrosoftOAuthProvider,
    SlackOAuthProvider.provider_name: SlackOAuthProvider,
}


def get_provider_class(name: str) -> Type[OAuthIdentityProvider]:
    """
    Raises:
        UnknownProviderError: If ``name`` is not registered
    """
    try:
        return PROVIDERS[name]
    except KeyError:
        options = ", ".join(sorted(PROVIDERS))
        raise UnknownProviderError(
            f"Unknown identity provider {name!r}. Valid options: {options}"
        ) from None


def get_provider(name: str, **kwargs: Any) -> OAuthIdentityProvider:
    """Instantiate the provider registered as ``name``."""
    return get_provider_class(name)(**kwargs)


__all__ = [
    "PROVIDERS",
    "get_provider",
    "get_provider_class",
    "client_id_env_var",
    "OAuthIdentityProvider",
    "TokenSource",
    "GoogleOAuthProvider",
    "MicrosoftOAuthProvider",
    "SlackOAuthProvider",
    "JwksClient",
    "StaticKeySet",
]
