"""Slack: the organization is the workspace (team) id."""

from __future__ import annotations

from typing import Dict

from .base import OAuthIdentityProvider


class SlackOAuthProvider(OAuthIdentityProvider):
    provider_name = "slack-oauth"
    group_claim = "https://slack.com/team_id"
    jwks_url = "https://slack.com/openid/connect/keys"
    authorize_endpoint = "https://slack.com/openid/connect/authorize"
    scope = "openid email"
    missing_group_message = "Your Slack account did not report a workspace."

    def _extra_authorization_params(self) -> Dict[str, str]:
        # Slack only issues identity tokens through the code flow.
        return {"response_type": "code"}
