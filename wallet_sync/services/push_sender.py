"""Push notification sender for Wallet pass updates via APNs.

Wallet passes are refreshed with empty background pushes addressed to the
pass type identifier topic. All sends share one HTTP/2 connection.
"""
import enum
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

import httpx
import jwt
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from ..errors import GatewayDeliveryError, SigningMaterialMissing

logger = logging.getLogger(__name__)

APNS_SANDBOX = "https://api.sandbox.push.apple.com"
APNS_PRODUCTION = "https://api.push.apple.com"

EMPTY_PAYLOAD = b"{}"


@dataclass
class PushConfig:
    """APNs configuration."""
    enabled: bool = False
    key_path: str = ""  # Path to .p8 key file
    private_key: str = ""  # .p8 contents, alternative to key_path
    key_id: str = ""
    team_id: str = ""
    use_sandbox: bool = False
    request_timeout: float = 10.0


class DeliveryOutcome(str, enum.Enum):
    DELIVERED = "delivered"
    REJECTED = "rejected"
    TRANSPORT_ERROR = "transport_error"
    NOT_ATTEMPTED = "not_attempted"


@dataclass
class DeliveryResult:
    """Outcome of one push."""
    push_token: str
    topic: str
    outcome: DeliveryOutcome
    status_code: Optional[int] = None
    reason: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        return self.outcome == DeliveryOutcome.DELIVERED


class PushGateway(Protocol):
    """Outbound push transport."""

    async def send(self, push_token: str, topic: str, credential: str) -> DeliveryResult:
        ...

    async def aclose(self) -> None:
        ...


class ApnsTokenSigner:
    """Builds the short-lived ES256 provider token APNs authenticates with."""

    def __init__(
        self,
        key_id: Optional[str],
        team_id: Optional[str],
        private_key: Optional[str] = None,
        key_path: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._key_id = key_id
        self._team_id = team_id
        self._private_key = private_key
        self._key_path = key_path
        self._clock = clock

    @classmethod
    def from_config(cls, config: PushConfig) -> "ApnsTokenSigner":
        return cls(
            key_id=config.key_id,
            team_id=config.team_id,
            private_key=config.private_key,
            key_path=config.key_path,
        )

    def _load_pem(self) -> Optional[str]:
        if self._private_key:
            # Environment variables often carry the PEM with literal \n
            return self._private_key.replace("\\n", "\n")
        if self._key_path:
            path = Path(self._key_path)
            if path.exists():
                return path.read_text(encoding="utf-8")
            logger.warning(f"APNs key file not found: {self._key_path}")
        return None

    def sign(self) -> str:
        """Return a signed JWT with iss=team id, iat=now and kid=key id.

        Raises:
            SigningMaterialMissing: key id, team id or key is missing or unreadable
        """
        if not self._key_id or not self._team_id:
            raise SigningMaterialMissing("APNs key id and team id are required")
        pem = self._load_pem()
        if not pem:
            raise SigningMaterialMissing("APNs private key is not configured")

        try:
            key = load_pem_private_key(pem.encode("utf-8"), password=None)
        except (ValueError, TypeError) as e:
            raise SigningMaterialMissing(f"APNs private key could not be loaded: {e}") from e

        return jwt.encode(
            {"iss": self._team_id, "iat": int(self._clock())},
            key,
            algorithm="ES256",
            headers={"kid": self._key_id},
        )


class ApnsGateway:
    """Sends empty background pushes over one multiplexed HTTP/2 client."""

    def __init__(
        self,
        use_sandbox: bool = False,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        base_url = APNS_SANDBOX if use_sandbox else APNS_PRODUCTION
        self._client = client or httpx.AsyncClient(http2=True, base_url=base_url, timeout=timeout)
        logger.info(f"APNs gateway configured (sandbox={use_sandbox})")

    @classmethod
    def from_config(cls, config: PushConfig) -> "ApnsGateway":
        return cls(use_sandbox=config.use_sandbox, timeout=config.request_timeout)

    async def send(self, push_token: str, topic: str, credential: str) -> DeliveryResult:
        """Send one pass-update push.

        Raises:
            GatewayDeliveryError: the request never got an APNs response
        """
        headers = {
            "authorization": f"bearer {credential}",
            "apns-topic": topic,
            "apns-push-type": "background",
            "apns-priority": "5",
        }
        try:
            response = await self._client.post(f"/3/device/{push_token}", content=EMPTY_PAYLOAD, headers=headers)
        except httpx.HTTPError as e:
            raise GatewayDeliveryError(f"APNs request failed for token {push_token[:16]}...: {e}") from e

        if response.status_code == 200:
            logger.debug(f"Push notification sent to {push_token[:16]}...")
            return DeliveryResult(push_token, topic, DeliveryOutcome.DELIVERED, status_code=200)

        try:
            body = response.json()
            reason = body.get("reason") if isinstance(body, dict) else None
        except ValueError:
            reason = response.text or None
        logger.warning(
            f"Push notification failed: {response.status_code} {reason} "
            f"(token: {push_token[:16]}...)"
        )
        return DeliveryResult(
            push_token, topic, DeliveryOutcome.REJECTED,
            status_code=response.status_code, reason=reason,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
