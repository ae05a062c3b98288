"""Pass issuance - the seam between pass generation and registration tracking.

Building and signing the .pkpass archive is done by an external generator; this
module records issued passes and hands the generator the token to embed.
"""
import logging
from typing import Optional, Protocol

from ..errors import PassGenerationUnavailable
from .pass_tokens import PassTokenAuthority
from .registration_store import RegistrationStore

logger = logging.getLogger(__name__)


class PassGenerator(Protocol):
    """External collaborator that produces signed .pkpass archives."""

    async def generate(self, pass_type_id: str, serial_number: str, authentication_token: str) -> bytes:
        ...


class PassIssuer:
    """Records issued passes and renders their latest version."""

    def __init__(
        self,
        store: RegistrationStore,
        tokens: PassTokenAuthority,
        generator: Optional[PassGenerator] = None,
    ):
        self._store = store
        self._tokens = tokens
        self._generator = generator

    @property
    def can_render(self) -> bool:
        return self._generator is not None

    async def create_pass(self, pass_type_id: str, serial_number: str, token: str) -> None:
        """Record a pass issued with ``token``. An already recorded pass keeps its token."""
        async with self._store.transaction() as session:
            wallet_pass, is_new = await self._store.upsert_pass(session, pass_type_id, serial_number, token)
        if is_new:
            logger.info(f"Pass issued: {pass_type_id}/{serial_number}")
        elif wallet_pass.authentication_token != token:
            logger.warning(f"Pass {pass_type_id}/{serial_number} already issued, keeping original token")

    async def get_or_create_token(self, pass_type_id: str, serial_number: str) -> str:
        """Token to embed in the pass, issuing one the first time the pass is seen."""
        async with self._store.transaction() as session:
            wallet_pass, is_new = await self._store.upsert_pass(
                session, pass_type_id, serial_number, self._tokens.issue()
            )
        if is_new:
            logger.info(f"Pass issued: {pass_type_id}/{serial_number}")
        return wallet_pass.authentication_token

    async def render(self, pass_type_id: str, serial_number: str) -> bytes:
        """Latest signed .pkpass for a pass, via the external generator."""
        if self._generator is None:
            raise PassGenerationUnavailable("Pass generation is not configured")
        token = await self.get_or_create_token(pass_type_id, serial_number)
        return await self._generator.generate(pass_type_id, serial_number, token)
