"""Device registration endpoints of the Wallet web service protocol."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from ..dependencies import get_pass_token, get_registration_service
from ..schemas.registration import (
    DeviceRegistrationRequest,
    RegistrationMessage,
    SerialNumbersResponse,
)
from ..services.registration_service import RegistrationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/devices", tags=["devices"])


@router.post(
    "/{deviceLibraryIdentifier}/registrations/{passTypeIdentifier}/{serialNumber}",
    response_model=RegistrationMessage,
    status_code=201,
    responses={200: {"model": RegistrationMessage}},
)
async def register_device(
    deviceLibraryIdentifier: str,
    passTypeIdentifier: str,
    serialNumber: str,
    request: Optional[DeviceRegistrationRequest] = None,
    pass_token: Optional[str] = Depends(get_pass_token),
    registrations: RegistrationService = Depends(get_registration_service),
):
    """Register a device to receive push notifications for a pass.

    201 when the registration is new, 200 when it already existed.
    """
    result = await registrations.subscribe(
        pass_type_id=passTypeIdentifier,
        serial_number=serialNumber,
        device_library_id=deviceLibraryIdentifier,
        push_token=request.pushToken if request else None,
        presented_token=pass_token,
    )
    if result.created:
        return JSONResponse({"message": "Registration created"}, status_code=201)
    return JSONResponse({"message": "Registration already exists"}, status_code=200)


@router.get(
    "/{deviceLibraryIdentifier}/registrations/{passTypeIdentifier}",
    response_model=SerialNumbersResponse,
    responses={204: {"description": "No matching passes"}},
)
async def list_updated_passes(
    deviceLibraryIdentifier: str,
    passTypeIdentifier: str,
    passesUpdatedSince: Optional[str] = None,
    registrations: RegistrationService = Depends(get_registration_service),
):
    """Serial numbers of the device's passes updated since ``passesUpdatedSince``."""
    updated = await registrations.list_updated(
        pass_type_id=passTypeIdentifier,
        device_library_id=deviceLibraryIdentifier,
        passes_updated_since=passesUpdatedSince,
    )
    if updated is None or not updated.serial_numbers:
        return Response(status_code=204)

    return SerialNumbersResponse(
        serialNumbers=updated.serial_numbers,
        lastUpdated=str(updated.last_updated),
    )


@router.delete(
    "/{deviceLibraryIdentifier}/registrations/{passTypeIdentifier}/{serialNumber}",
    response_model=RegistrationMessage,
)
async def unregister_device(
    deviceLibraryIdentifier: str,
    passTypeIdentifier: str,
    serialNumber: str,
    pass_token: Optional[str] = Depends(get_pass_token),
    registrations: RegistrationService = Depends(get_registration_service),
):
    """Unregister a device from a pass. Succeeds whether or not it was registered."""
    result = await registrations.unsubscribe(
        pass_type_id=passTypeIdentifier,
        serial_number=serialNumber,
        device_library_id=deviceLibraryIdentifier,
        presented_token=pass_token,
    )
    message = "Registration deleted" if result.deleted else "No registration found"
    return RegistrationMessage(message=message)
