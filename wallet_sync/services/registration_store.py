"""Registration store - devices, passes and the registrations between them.

Natural-key writes go through ``INSERT ... ON CONFLICT DO NOTHING`` followed by
a read, so two callers racing to create the same device, pass or registration
end up sharing one row instead of tripping the unique index. Every public
operation runs in its own transaction; the ``upsert_*`` helpers take the
session of a surrounding ``transaction()`` so callers can compose them.
"""
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, List, Optional, Tuple

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import StoreUnavailable, ValidationError
from ..models import Device, Registration, WalletPass
from ..utils.db_utils import is_transient_error, retry_on_lock

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class PushTarget:
    """One push to send during a sweep."""
    push_token: str
    pass_type_id: str  # APNs topic


@dataclass
class UpdatedPasses:
    """Serial numbers changed since a device last asked."""
    serial_numbers: List[str] = field(default_factory=list)
    last_updated: Optional[int] = None


class RegistrationStore:
    """Persistence for the device update protocol."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        dialect: str = "sqlite",
        clock: Callable[[], int] = now_ms,
    ):
        self._session_factory = session_factory
        self._dialect = dialect
        self._clock = clock

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Run a unit of work; commit on success, roll back on error."""
        try:
            async with self._session_factory() as session:
                try:
                    yield session
                except BaseException:
                    await session.rollback()
                    raise
                await retry_on_lock(session.commit)
        except (OperationalError, InterfaceError, IntegrityError) as e:
            if is_transient_error(e):
                logger.warning(f"Registration store busy: {e}")
            else:
                logger.error(f"Registration store unavailable: {e}")
            raise StoreUnavailable("Registration store unavailable") from e

    def _insert(self, model):
        if self._dialect == "postgresql":
            return postgresql.insert(model)
        return sqlite.insert(model)

    def _bumped_timestamp(self):
        # Strictly increasing even when the clock has not moved since the last bump
        now = self._clock()
        return case(
            (WalletPass.last_updated >= now, WalletPass.last_updated + 1),
            else_=now,
        )

    async def _get_device(self, session: AsyncSession, device_library_id: str) -> Optional[Device]:
        result = await session.execute(
            select(Device)
            .where(Device.device_library_id == device_library_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_pass(
        self, session: AsyncSession, pass_type_id: str, serial_number: str
    ) -> Optional[WalletPass]:
        result = await session.execute(
            select(WalletPass)
            .where(
                WalletPass.pass_type_id == pass_type_id,
                WalletPass.serial_number == serial_number,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert_device(
        self, session: AsyncSession, device_library_id: str, push_token: str
    ) -> Tuple[Device, bool]:
        """Create the device or overwrite its push token.

        Returns:
            Tuple of (device, is_new)
        """
        if not device_library_id:
            raise ValidationError("deviceLibraryIdentifier required")

        result = await session.execute(
            self._insert(Device)
            .values(device_library_id=device_library_id, push_token=push_token)
            .on_conflict_do_nothing(index_elements=["device_library_id"])
        )
        is_new = result.rowcount == 1
        if not is_new:
            await session.execute(
                update(Device)
                .where(Device.device_library_id == device_library_id)
                .values(push_token=push_token)
                .execution_options(synchronize_session=False)
            )

        device = await self._get_device(session, device_library_id)
        return device, is_new

    async def upsert_pass(
        self,
        session: AsyncSession,
        pass_type_id: str,
        serial_number: str,
        initial_token: str,
    ) -> Tuple[WalletPass, bool]:
        """Fetch the pass, creating it with ``initial_token`` if absent.

        An existing pass keeps the token it was created with.

        Returns:
            Tuple of (wallet_pass, is_new)
        """
        result = await session.execute(
            self._insert(WalletPass)
            .values(
                pass_type_id=pass_type_id,
                serial_number=serial_number,
                authentication_token=initial_token,
                last_updated=self._clock(),
            )
            .on_conflict_do_nothing(index_elements=["pass_type_id", "serial_number"])
        )
        wallet_pass = await self._get_pass(session, pass_type_id, serial_number)
        return wallet_pass, result.rowcount == 1

    async def upsert_registration(
        self, session: AsyncSession, device: Device, wallet_pass: WalletPass
    ) -> bool:
        """Link device and pass. Returns True only if the link is new."""
        result = await session.execute(
            self._insert(Registration)
            .values(device_id=device.id, pass_id=wallet_pass.id)
            .on_conflict_do_nothing(index_elements=["device_id", "pass_id"])
        )
        return result.rowcount == 1

    async def remove_registration(
        self, device_library_id: str, pass_type_id: str, serial_number: str
    ) -> bool:
        """Delete a registration; drop the device once it has none left.

        Returns False when the device, pass or registration does not exist.
        """
        async with self.transaction() as session:
            device = await self._get_device(session, device_library_id)
            if device is None:
                return False

            wallet_pass = await self._get_pass(session, pass_type_id, serial_number)
            if wallet_pass is None:
                return False

            result = await session.execute(
                delete(Registration)
                .where(
                    Registration.device_id == device.id,
                    Registration.pass_id == wallet_pass.id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return False

            remaining = select(Registration.id).where(Registration.device_id == Device.id).exists()
            gc_result = await session.execute(
                delete(Device)
                .where(Device.id == device.id, ~remaining)
                .execution_options(synchronize_session=False)
            )
            if gc_result.rowcount:
                logger.info(f"Device {device_library_id} has no registrations left, removed")
            return True

    async def touch_pass(self, pass_type_id: str, serial_number: str) -> bool:
        """Bump one pass's last_updated. Returns False if the pass is unknown."""
        async with self.transaction() as session:
            result = await session.execute(
                update(WalletPass)
                .where(
                    WalletPass.pass_type_id == pass_type_id,
                    WalletPass.serial_number == serial_number,
                )
                .values(last_updated=self._bumped_timestamp())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    async def touch_all_passes(self) -> int:
        """Bump every pass's last_updated. Returns the number of passes touched."""
        async with self.transaction() as session:
            result = await session.execute(
                update(WalletPass)
                .values(last_updated=self._bumped_timestamp())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def list_updated_passes(
        self,
        device_library_id: str,
        pass_type_id: str,
        since: Optional[int] = None,
    ) -> Optional[UpdatedPasses]:
        """Serial numbers of the device's passes of one type updated after ``since``.

        Returns None when the device has no registrations at all, and an empty
        UpdatedPasses when it has some but none changed.
        """
        async with self.transaction() as session:
            registered = await session.scalar(
                select(func.count(Registration.id))
                .join(Device, Registration.device_id == Device.id)
                .where(Device.device_library_id == device_library_id)
            )
            if not registered:
                return None

            query = (
                select(WalletPass.serial_number, WalletPass.last_updated)
                .join(Registration, Registration.pass_id == WalletPass.id)
                .join(Device, Registration.device_id == Device.id)
                .where(
                    Device.device_library_id == device_library_id,
                    WalletPass.pass_type_id == pass_type_id,
                )
                .order_by(WalletPass.serial_number)
            )
            if since is not None:
                query = query.where(WalletPass.last_updated > since)

            rows = (await session.execute(query)).all()

        if not rows:
            return UpdatedPasses()
        return UpdatedPasses(
            serial_numbers=[row.serial_number for row in rows],
            last_updated=max(row.last_updated for row in rows),
        )

    async def get_pass_token(self, pass_type_id: str, serial_number: str) -> Optional[str]:
        async with self.transaction() as session:
            result = await session.execute(
                select(WalletPass.authentication_token).where(
                    WalletPass.pass_type_id == pass_type_id,
                    WalletPass.serial_number == serial_number,
                )
            )
            return result.scalar_one_or_none()

    async def get_pass(self, pass_type_id: str, serial_number: str) -> Optional[WalletPass]:
        async with self.transaction() as session:
            return await self._get_pass(session, pass_type_id, serial_number)

    async def get_device(self, device_library_id: str) -> Optional[Device]:
        async with self.transaction() as session:
            return await self._get_device(session, device_library_id)

    async def list_push_targets(self) -> List[PushTarget]:
        """One target per distinct (push token, pass type) among registrations.

        Registrations are deduplicated on purpose: a device holding several
        passes of one type needs a single push on that topic, after which it
        polls for every changed serial number.
        """
        async with self.transaction() as session:
            result = await session.execute(
                select(Device.push_token, WalletPass.pass_type_id)
                .join(Registration, Registration.device_id == Device.id)
                .join(WalletPass, Registration.pass_id == WalletPass.id)
                .distinct()
                .order_by(WalletPass.pass_type_id, Device.push_token)
            )
            return [PushTarget(push_token=row.push_token, pass_type_id=row.pass_type_id) for row in result.all()]

    async def counts(self) -> dict:
        """Row counts for devices, passes and registrations."""
        async with self.transaction() as session:
            devices = await session.scalar(select(func.count(Device.id)))
            passes = await session.scalar(select(func.count(WalletPass.id)))
            registrations = await session.scalar(select(func.count(Registration.id)))
        return {
            "devices": devices or 0,
            "passes": passes or 0,
            "registrations": registrations or 0,
        }
