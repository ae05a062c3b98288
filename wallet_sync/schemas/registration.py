"""Wallet web service protocol schemas.

Field names follow the Apple Wallet protocol, so they are camelCase on the wire.
"""
from typing import List, Optional
from pydantic import BaseModel


class DeviceRegistrationRequest(BaseModel):
    """Body of a device registration."""
    pushToken: Optional[str] = None


class RegistrationMessage(BaseModel):
    """Plain acknowledgement returned by register and unregister."""
    message: str


class SerialNumbersResponse(BaseModel):
    """Passes changed since the device's last update tag."""
    serialNumbers: List[str]
    lastUpdated: str


class DeviceLogRequest(BaseModel):
    """Error messages Wallet reports from the device."""
    logs: List[str] = []


class PassUpdatedResponse(BaseModel):
    """Result of marking a pass as updated."""
    updated: bool
