"""Registration service - the device update protocol on top of the store."""
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import AuthError, ValidationError
from .pass_tokens import PassTokenAuthority
from .registration_store import RegistrationStore, UpdatedPasses

logger = logging.getLogger(__name__)

# Range of the BigInteger last_updated column
BIGINT_MIN = -(2 ** 63)
BIGINT_MAX = 2 ** 63 - 1


@dataclass
class SubscribeResult:
    created: bool


@dataclass
class UnsubscribeResult:
    deleted: bool


def parse_updated_since(value: Optional[str]) -> Optional[int]:
    """Parse ``passesUpdatedSince``; anything that is not an integer means "all"."""
    if value is None:
        return None
    try:
        since = int(value.strip())
    except ValueError:
        logger.debug(f"Ignoring unparsable passesUpdatedSince={value!r}")
        return None
    if not BIGINT_MIN <= since <= BIGINT_MAX:
        logger.debug(f"Ignoring out-of-range passesUpdatedSince={value!r}")
        return None
    return since


class RegistrationService:
    """Subscribe, unsubscribe, poll and mark-updated operations.

    Every mutating call is checked against the pass's own token before any
    write. A configured bootstrap token lets a device register for a pass
    that has not been recorded yet; the pass is then created with that token.
    """

    def __init__(
        self,
        store: RegistrationStore,
        tokens: PassTokenAuthority,
        bootstrap_token: Optional[str] = None,
    ):
        self._store = store
        self._tokens = tokens
        self._bootstrap_token = bootstrap_token

    def _is_bootstrap_token(self, presented_token: Optional[str]) -> bool:
        if not self._bootstrap_token or not presented_token:
            return False
        return hmac.compare_digest(presented_token.encode("utf-8"), self._bootstrap_token.encode("utf-8"))

    async def _require_token(self, presented_token: Optional[str], pass_type_id: str, serial_number: str):
        if not await self._tokens.verify(presented_token, pass_type_id, serial_number):
            raise AuthError(f"rejected token for {pass_type_id}/{serial_number}")

    async def subscribe(
        self,
        pass_type_id: str,
        serial_number: str,
        device_library_id: str,
        push_token: Optional[str],
        presented_token: Optional[str],
    ) -> SubscribeResult:
        """Register a device for updates to a pass.

        Raises:
            ValidationError: push token missing
            AuthError: presented token does not match the pass
        """
        if not push_token or not push_token.strip():
            raise ValidationError("pushToken required")

        verified = await self._tokens.verify(presented_token, pass_type_id, serial_number)
        bootstrapping = not verified and self._is_bootstrap_token(presented_token)
        if not (verified or bootstrapping):
            raise AuthError(f"rejected token for {pass_type_id}/{serial_number}")

        async with self._store.transaction() as session:
            device, device_created = await self._store.upsert_device(
                session, device_library_id, push_token.strip()
            )
            wallet_pass, pass_created = await self._store.upsert_pass(
                session, pass_type_id, serial_number, presented_token
            )
            if bootstrapping and not pass_created and not hmac.compare_digest(
                wallet_pass.authentication_token.encode("utf-8"), presented_token.encode("utf-8")
            ):
                # Pass was issued with its own token; the bootstrap token only creates passes.
                # A concurrent bootstrap that created it first stored the same token.
                raise AuthError(f"bootstrap token used for existing pass {pass_type_id}/{serial_number}")
            created = await self._store.upsert_registration(session, device, wallet_pass)

        if device_created:
            logger.info(f"New device registered: {device_library_id}")
        logger.info(
            f"[Register] device={device_library_id} pass={pass_type_id}/{serial_number} "
            f"push_token={push_token[:16]}... created={created}"
        )
        return SubscribeResult(created=created)

    async def unsubscribe(
        self,
        pass_type_id: str,
        serial_number: str,
        device_library_id: str,
        presented_token: Optional[str],
    ) -> UnsubscribeResult:
        """Remove a device's registration for a pass."""
        await self._require_token(presented_token, pass_type_id, serial_number)
        deleted = await self._store.remove_registration(device_library_id, pass_type_id, serial_number)
        logger.info(
            f"[Unregister] device={device_library_id} pass={pass_type_id}/{serial_number} deleted={deleted}"
        )
        return UnsubscribeResult(deleted=deleted)

    async def list_updated(
        self,
        pass_type_id: str,
        device_library_id: str,
        passes_updated_since: Optional[str] = None,
    ) -> Optional[UpdatedPasses]:
        """Serial numbers of the device's passes updated since the given tag.

        Returns None if the device has no registrations at all.
        """
        since = parse_updated_since(passes_updated_since)
        return await self._store.list_updated_passes(device_library_id, pass_type_id, since)

    async def mark_updated(
        self,
        pass_type_id: str,
        serial_number: str,
        presented_token: Optional[str],
    ) -> bool:
        """Bump a pass's timestamp after its content was regenerated."""
        await self._require_token(presented_token, pass_type_id, serial_number)
        touched = await self._store.touch_pass(pass_type_id, serial_number)
        logger.info(f"[Touch] pass={pass_type_id}/{serial_number} touched={touched}")
        return touched
