"""Firebase ID token verifier."""

from __future__ import annotations

import logging

from app.adapters.auth.base import AuthVerificationError, TokenVerifier
from app.schemas.auth import DEFAULT_ROLE, AuthPrincipal

logger = logging.getLogger(__name__)


class FirebaseTokenVerifier(TokenVerifier):
    """Verifies Firebase ID tokens; the Firebase ``uid`` becomes the job owner id.

    ``audience`` and ``project_id`` are optional extra checks on top of the
    signature and revocation checks done by ``firebase_admin``.
    """

    provider_name = "firebase"

    def __init__(self, project_id: str | None, audience: str | None) -> None:
        self._project_id = project_id
        self._audience = audience

    def verify_token(self, token: str) -> AuthPrincipal:
        try:
            import firebase_admin
            from firebase_admin import auth as firebase_auth
        except ImportError as exc:  # pragma: no cover - depends on optional package
            raise AuthVerificationError("Firebase auth verifier is unavailable", reason="verifier_unavailable") from exc

        if not firebase_admin._apps:
            logger.info("auth.firebase_initialized project_configured=%s", self._project_id is not None)
            firebase_admin.initialize_app()

        try:
            decoded = firebase_auth.verify_id_token(token, check_revoked=True)
        except Exception as exc:  # pragma: no cover - provider exception surface
            raise AuthVerificationError("Invalid bearer token", reason="signature_or_revocation") from exc

        self._check_claims(decoded)

        owner_id = str(decoded.get("uid") or decoded.get("sub") or "").strip()
        if not owner_id:
            raise AuthVerificationError("Bearer token missing user identity", reason="missing_identity")
        role = str(decoded.get("role") or DEFAULT_ROLE).strip()
        return AuthPrincipal(user_id=owner_id, role=role)

    def _check_claims(self, decoded: dict) -> None:
        audience = str(decoded.get("aud", ""))
        if self._audience and audience != self._audience:
            raise AuthVerificationError("Invalid bearer token audience", reason="audience_mismatch")

        if self._project_id:
            issuer = str(decoded.get("iss", ""))
            if self._project_id not in issuer and audience != self._project_id:
                raise AuthVerificationError("Invalid bearer token issuer", reason="issuer_mismatch")


__all__ = ["FirebaseTokenVerifier"]
