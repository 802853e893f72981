"""HMAC-signed artifact URLs."""

from __future__ import annotations

from collections.abc import Callable
import hashlib
import hmac
import time
from urllib.parse import quote, urlencode

from app.adapters.storage.base import ArtifactStorage

_PASSTHROUGH_SCHEMES = ("http://", "https://")


class HmacSignedUrlStorage(ArtifactStorage):
    """Signs ``<base_url>/<ref>?expires=..&signature=..`` with a shared secret.

    References that are already absolute http(s) URLs are returned unchanged.
    """

    def __init__(
        self,
        *,
        base_url: str,
        signing_secret: str,
        ttl_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._secret = signing_secret.encode("utf-8")
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def signed_url(self, ref: str) -> str:
        if ref.startswith(_PASSTHROUGH_SCHEMES):
            return ref

        expires = int(self._clock()) + self._ttl_seconds
        path = quote(ref, safe="/:")
        signature = self.sign(path, expires)
        return f"{self._base_url}/{path}?{urlencode({'expires': expires, 'signature': signature})}"

    def sign(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def verify(self, path: str, expires: int, signature: str) -> bool:
        if expires < int(self._clock()):
            return False
        return hmac.compare_digest(self.sign(path, expires), signature)


__all__ = ["HmacSignedUrlStorage"]
