"""Device model - Wallet-holding devices that receive pass update pushes."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..database import Base


class Device(Base):
    """A device identified by the library identifier Wallet assigns it."""

    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_library_id = Column(String, unique=True, nullable=False, index=True)
    push_token = Column(String, nullable=False)  # overwritten on every registration
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    registrations = relationship(
        "Registration",
        back_populates="device",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
