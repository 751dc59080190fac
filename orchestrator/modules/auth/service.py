"""
Static bearer-token authentication for the orchestrator API.

A single shared key (ORCH_API_KEY) guards every /v1 route. When no key is
configured all requests are let through and a warning is logged once.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("orchestrator.auth")


@dataclass
class AuthResult:
    """Standardized authentication result."""

    ok: bool
    identity: Optional[str]
    error: Optional[str] = None


class BearerTokenAuth:
    def __init__(self, api_key: Optional[str] = None):
        """
        Initialize bearer auth.

        Args:
            api_key: Shared secret. None or empty disables authentication.
        """
        self._api_key = api_key or None
        if self._api_key is None:
            logger.warning("ORCH_API_KEY is not set; API authentication is disabled")

    @property
    def enabled(self) -> bool:
        return self._api_key is not None

    def authenticate(self, authorization: Optional[str]) -> AuthResult:
        """
        Check an Authorization header value.

        Args:
            authorization: Raw header, expected as "Bearer <key>"

        Returns:
            AuthResult with ok=False and an error message on failure
        """
        if not self.enabled:
            return AuthResult(ok=True, identity="anonymous")

        if not authorization:
            return AuthResult(ok=False, identity=None, error="Missing Authorization header")

        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return AuthResult(ok=False, identity=None, error="Expected Bearer token")

        if not secrets.compare_digest(token.strip().encode(), self._api_key.encode()):
            logger.warning("Rejected request with invalid API key")
            return AuthResult(ok=False, identity=None, error="Invalid API key")

        return AuthResult(ok=True, identity="api_key")
