"""
Error taxonomy for the registration and push subsystem.

Protocol-facing errors carry the HTTP status the API layer answers with, so
routes stay thin and store-level detail never reaches a device.
"""
from __future__ import annotations

STATUS_BAD_REQUEST = 400
STATUS_UNAUTHORIZED = 401
STATUS_SERVICE_UNAVAILABLE = 503

MSG_UNAUTHORIZED = "Unauthorized"


class WalletSyncError(Exception):
    """Base class for service errors."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(WalletSyncError):
    """A required request field is missing or malformed."""

    status_code = STATUS_BAD_REQUEST


class AuthError(WalletSyncError):
    """Per-pass credential missing or mismatched.

    Always reported with the same message whatever the cause, so callers
    cannot tell an unknown pass from a wrong token.
    """

    status_code = STATUS_UNAUTHORIZED

    def __init__(self, message: str = MSG_UNAUTHORIZED):
        super().__init__(MSG_UNAUTHORIZED)
        self.reason = message


class StoreUnavailable(WalletSyncError):
    """The backing database could not complete the operation."""

    status_code = STATUS_SERVICE_UNAVAILABLE


class PassGenerationUnavailable(WalletSyncError):
    """No pass generator is configured for rendering .pkpass files."""

    status_code = STATUS_SERVICE_UNAVAILABLE


class GatewayDeliveryError(WalletSyncError):
    """A single push could not be handed to the gateway."""


class SigningMaterialMissing(WalletSyncError):
    """APNs signing key, key id or team id is missing or unusable."""
