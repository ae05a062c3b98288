"""Registration model - which devices listen for which passes."""
from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base


class Registration(Base):
    """Link between a device and a pass it wants update pushes for."""

    __tablename__ = "registrations"
    __table_args__ = (
        UniqueConstraint("device_id", "pass_id", name="uq_registrations_device_pass"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False, index=True)
    pass_id = Column(Integer, ForeignKey("passes.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    device = relationship("Device", back_populates="registrations")
    wallet_pass = relationship("WalletPass", back_populates="registrations")
