"""Random session token generation."""

import base64
import logging
import math
import secrets

from .errors import EntropyFailure

logger = logging.getLogger("session_auth.tokens")

DEFAULT_TOKEN_BYTES = 48


class TokenGenerator:
    """Produce URL-safe base64 tokens of a fixed length.

    Padding is kept so every token is exactly :attr:`length` characters,
    which fixed-width storage (``CHAR(n)`` columns) relies on.
    """

    def __init__(self, num_bytes: int = DEFAULT_TOKEN_BYTES) -> None:
        if num_bytes <= 0:
            raise ValueError("num_bytes must be > 0")
        self.num_bytes = num_bytes

    @property
    def length(self) -> int:
        return 4 * math.ceil(self.num_bytes / 3)

    def generate(self) -> str:
        try:
            raw = secrets.token_bytes(self.num_bytes)
        except (OSError, NotImplementedError) as exc:
            logger.error("Random source failed while generating session token: %s", exc)
            raise EntropyFailure("Unable to obtain random bytes for session token") from exc
        if len(raw) != self.num_bytes:
            raise EntropyFailure(f"Random source returned {len(raw)} of {self.num_bytes} bytes")
        return base64.urlsafe_b64encode(raw).decode("ascii")


__all__ = ["DEFAULT_TOKEN_BYTES", "TokenGenerator"]
