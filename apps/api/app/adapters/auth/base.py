"""Caller identity verification interfaces."""

from abc import ABC, abstractmethod

from app.schemas.auth import AuthPrincipal


class AuthVerificationError(Exception):
    """Raised when a bearer token does not resolve to a job owner.

    ``reason`` is a short machine token safe to log; the message may be returned
    to the caller.
    """

    def __init__(self, message: str, *, reason: str = "invalid_token") -> None:
        super().__init__(message)
        self.reason = reason


class TokenVerifier(ABC):
    """Maps a bearer token onto the owner that jobs, segments and allowance are keyed by."""

    provider_name: str = "unknown"

    @abstractmethod
    def verify_token(self, token: str) -> AuthPrincipal:
        """Verify token and return the owning principal."""


__all__ = ["AuthVerificationError", "TokenVerifier"]
