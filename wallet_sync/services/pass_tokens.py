"""Per-pass authentication tokens.

Each pass carries its own secret, embedded in the signed pass file. Devices
echo it back as ``Authorization: ApplePass <token>`` on every call that can
change or reveal registration state for that pass.
"""
import hmac
import logging
import secrets
from typing import Optional

from .registration_store import RegistrationStore

logger = logging.getLogger(__name__)

# Compared against when the pass is unknown, so both failure paths do the same work
_ABSENT_TOKEN = secrets.token_urlsafe(32)


def parse_authorization(header: Optional[str], scheme: str = "ApplePass") -> Optional[str]:
    """Extract the token from an ``<scheme> <token>`` Authorization header."""
    if not header:
        return None
    parts = header.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != scheme.lower():
        return None
    token = parts[1].strip()
    return token or None


class PassTokenAuthority:
    """Issues and verifies per-pass authentication tokens."""

    def __init__(self, store: RegistrationStore):
        self._store = store

    @staticmethod
    def issue() -> str:
        """Generate a fresh high-entropy token for a new pass."""
        return secrets.token_urlsafe(32)

    async def verify(self, presented_token: Optional[str], pass_type_id: str, serial_number: str) -> bool:
        """Check a presented token against the pass's stored token.

        Returns False, never raises, when the pass is unknown or the token is wrong.
        """
        stored = await self._store.get_pass_token(pass_type_id, serial_number)
        expected = stored if stored is not None else _ABSENT_TOKEN
        presented = presented_token or ""
        matches = hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))
        if not (matches and stored is not None):
            logger.debug(f"Token verification failed for pass {pass_type_id}/{serial_number}")
            return False
        return True
