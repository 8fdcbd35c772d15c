"""Google Workspace: the organization is the hosted domain (``hd``)."""

from .base import OAuthIdentityProvider


class GoogleOAuthProvider(OAuthIdentityProvider):
    provider_name = "google-oauth"
    group_claim = "hd"
    jwks_url = "https://www.googleapis.com/oauth2/v3/certs"
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    scope = "openid email"
    slug = "domain"
    missing_group_message = (
        "You can use this app with a Google account that is part of an "
        "organization."
    )
