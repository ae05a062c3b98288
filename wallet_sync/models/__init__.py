"""Database models."""
from .device import Device
from .wallet_pass import WalletPass
from .registration import Registration

__all__ = ["Device", "WalletPass", "Registration"]
