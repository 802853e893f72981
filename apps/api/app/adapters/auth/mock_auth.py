"""Deterministic verifier for local runs and tests."""

from app.adapters.auth.base import AuthVerificationError, TokenVerifier
from app.schemas.auth import DEFAULT_ROLE, AuthPrincipal

_TOKEN_PREFIX = "test"


class MockTokenVerifier(TokenVerifier):
    """Accepts ``test:<owner_id>`` and ``test:<owner_id>:<role>`` tokens."""

    provider_name = "mock"

    def verify_token(self, token: str) -> AuthPrincipal:
        prefix, _, remainder = token.partition(":")
        if prefix != _TOKEN_PREFIX or not remainder:
            raise AuthVerificationError("Invalid bearer token", reason="malformed_token")

        owner_id, _, role = remainder.partition(":")
        owner_id = owner_id.strip()
        role = role.strip() if role else DEFAULT_ROLE
        if not owner_id:
            raise AuthVerificationError("Bearer token missing user identity", reason="missing_identity")
        if ":" in role or not role:
            raise AuthVerificationError("Invalid bearer token", reason="malformed_token")

        return AuthPrincipal(user_id=owner_id, role=role)


__all__ = ["MockTokenVerifier"]
