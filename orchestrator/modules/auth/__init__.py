"""
Authentication Module - Black Box Interface

Purpose: Validate the caller's bearer token
Interface: BearerTokenAuth.authenticate() -> AuthResult
Hidden: Token comparison, header parsing

Can be replaced with another scheme (per-user keys, OIDC) without affecting
other modules.
"""

from .service import AuthResult, BearerTokenAuth

__all__ = ["AuthResult", "BearerTokenAuth"]
