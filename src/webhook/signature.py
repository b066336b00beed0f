"""LINE webhook signature verification.

``x-line-signature`` is base64(HMAC-SHA256(raw body, channel secret)).
"""

from __future__ import annotations

import base64
import hashlib
import hmac


class SignatureVerifier:
    """Verifies webhook bodies against the channel secret."""

    def __init__(self, channel_secret: str) -> None:
        self._secret = channel_secret.encode()

    def sign(self, body: bytes) -> str:
        digest = hmac.new(self._secret, body, hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def verify(self, body: bytes, signature: str | None) -> bool:
        """Return True only if signature matches the body.

        Constant-time comparison via hmac.compare_digest. Never raises.
        """
        if not signature:
            return False
        expected = self.sign(body).encode()
        return hmac.compare_digest(expected, signature.encode("utf-8", "replace"))
