"""
Join tokens for the realtime channel.

A client may only join the event scope of the user it authenticated as over
HTTP. The HTTP side (already holding a verified user id) asks for a short-lived
token, and the websocket server checks it before joining. Format:

    <user_id>.<expires_at_unix>.<hex hmac-sha256>
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 300
_SIGNATURE = re.compile(r"\A[0-9a-f]{64}\Z")


class JoinTokenSigner:
    def __init__(
        self,
        secret: str,
        ttl_s: int = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("A join token secret is required")
        self._key = secret.encode("utf-8")
        self.ttl_s = ttl_s
        self._clock = clock

    def issue(self, user_id: str) -> str:
        expires = int(self._clock()) + self.ttl_s
        body = f"{user_id}.{expires}"
        return f"{body}.{self._sign(body)}"

    def verify(self, token: str) -> Optional[str]:
        """Return the user id the token was issued for, or None if invalid or expired."""
        if not isinstance(token, str):
            return None
        parts = token.rsplit(".", 2)
        if len(parts) != 3:
            return None
        user_id, expires_raw, signature = parts
        body = f"{user_id}.{expires_raw}"
        if not _SIGNATURE.match(signature) or not hmac.compare_digest(signature, self._sign(body)):
            logger.warning("Rejected join token with bad signature")
            return None
        try:
            expires = int(expires_raw)
        except ValueError:
            return None
        if expires < self._clock():
            logger.info("Rejected expired join token for user %s", user_id)
            return None
        return user_id or None

    def _sign(self, body: str) -> str:
        return hmac.new(self._key, body.encode("utf-8", "surrogatepass"), hashlib.sha256).hexdigest()
