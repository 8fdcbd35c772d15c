"""Microsoft Entra ID: the organization is the tenant id (``tid``)."""

from __future__ import annotations

from typing import Dict

from .base import OAuthIdentityProvider


class MicrosoftOAuthProvider(OAuthIdentityProvider):
    provider_name = "microsoft-oauth"
    group_claim = "tid"
    jwks_url = "https://login.microsoftonline.com/common/discovery/v2.0/keys"
    authorize_endpoint = (
        "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
    )
    scope = "openid profile email"
    missing_group_message = (
        "You can use this app with a Microsoft account that is part of an "
        "organization."
    )

    def _extra_authorization_params(self) -> Dict[str, str]:
        return {"response_mode": "fragment"}
