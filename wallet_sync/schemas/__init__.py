"""Pydantic schemas for API request/response models."""
from .registration import (
    DeviceRegistrationRequest,
    RegistrationMessage,
    SerialNumbersResponse,
    DeviceLogRequest,
    PassUpdatedResponse,
)
from .status import StatusOverview

__all__ = [
    "DeviceRegistrationRequest",
    "RegistrationMessage",
    "SerialNumbersResponse",
    "DeviceLogRequest",
    "PassUpdatedResponse",
    "StatusOverview",
]
