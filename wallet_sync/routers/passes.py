"""Pass endpoints: latest pass download and update notification."""
import logging
from email.utils import formatdate
from typing import Optional

from fastapi import APIRouter, Depends, Response

from ..dependencies import get_pass_issuer, get_pass_token, get_registration_service, get_token_authority
from ..errors import AuthError
from ..schemas.registration import PassUpdatedResponse
from ..services.pass_issuer import PassIssuer
from ..services.pass_tokens import PassTokenAuthority
from ..services.registration_service import RegistrationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["passes"])

PKPASS_MEDIA_TYPE = "application/vnd.apple.pkpass"


@router.get("/v1/passes/{passTypeIdentifier}/{serialNumber}")
async def get_latest_pass(
    passTypeIdentifier: str,
    serialNumber: str,
    pass_token: Optional[str] = Depends(get_pass_token),
    issuer: PassIssuer = Depends(get_pass_issuer),
    tokens: PassTokenAuthority = Depends(get_token_authority),
):
    """Return the latest version of a pass, built by the pass generator."""
    if not await tokens.verify(pass_token, passTypeIdentifier, serialNumber):
        raise AuthError(f"rejected token for {passTypeIdentifier}/{serialNumber}")

    logger.info(f"[Update] Generating fresh pass for {passTypeIdentifier}/{serialNumber}")
    content = await issuer.render(passTypeIdentifier, serialNumber)
    return Response(
        content=content,
        media_type=PKPASS_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{serialNumber}.pkpass"',
            "Last-Modified": formatdate(usegmt=True),
        },
    )


@router.post(
    "/api/passes/{passTypeIdentifier}/{serialNumber}/updated",
    response_model=PassUpdatedResponse,
)
async def mark_pass_updated(
    passTypeIdentifier: str,
    serialNumber: str,
    pass_token: Optional[str] = Depends(get_pass_token),
    registrations: RegistrationService = Depends(get_registration_service),
):
    """Mark a pass as changed so registered devices fetch it on their next poll."""
    updated = await registrations.mark_updated(passTypeIdentifier, serialNumber, pass_token)
    return PassUpdatedResponse(updated=updated)
