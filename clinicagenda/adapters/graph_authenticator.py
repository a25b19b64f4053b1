"""
Microsoft Graph authentication using MSAL (client credentials flow).
"""

from __future__ import annotations

import logging
from typing import Optional

import msal

from ..domain.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class GraphAuthenticator:
    """
    Acquires app-only tokens for Microsoft Graph.

    MSAL keeps issued tokens in its in-memory cache and returns them until
    they are close to expiry.
    """

    SCOPES = ["https://graph.microsoft.com/.default"]

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        client_secret: str,
        authority_url: Optional[str] = None,
    ):
        """
        Args:
            client_id: Azure AD application (client) ID
            tenant_id: Azure AD tenant ID
            client_secret: Application secret
            authority_url: Optional custom authority URL
        """
        if not client_secret:
            raise AuthenticationError("Graph client secret is not configured")

        self.client_id = client_id
        self.authority = authority_url or f"https://login.microsoftonline.com/{tenant_id}"
        self.app = msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential=client_secret,
            authority=self.authority,
        )

    def get_access_token(self) -> str:
        """
        Return a valid access token.

        Raises:
            AuthenticationError: If MSAL cannot issue a token
        """
        result = self.app.acquire_token_for_client(scopes=self.SCOPES) or {}

        if "access_token" not in result:
            error = result.get("error_description") or result.get("error") or "unknown error"
            logger.error("Token request for client %s failed: %s", self.client_id, error)
            raise AuthenticationError(f"Graph authentication failed: {error}")

        return result["access_token"]
