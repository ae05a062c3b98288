"""WalletPass model - issued passes tracked for updates."""
from datetime import datetime
from sqlalchemy import BigInteger, Column, Integer, String, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base


class WalletPass(Base):
    """An issued pass, identified by pass type and serial number."""

    __tablename__ = "passes"
    __table_args__ = (
        UniqueConstraint("pass_type_id", "serial_number", name="uq_passes_type_serial"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    pass_type_id = Column(String, nullable=False)
    serial_number = Column(String, nullable=False, index=True)
    authentication_token = Column(String, nullable=False)  # never rotated
    last_updated = Column(BigInteger, nullable=False)  # epoch milliseconds
    created_at = Column(DateTime, default=datetime.utcnow)

    registrations = relationship(
        "Registration",
        back_populates="wallet_pass",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
