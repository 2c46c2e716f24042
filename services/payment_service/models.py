import enum
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, Numeric, String
from shared.config.database import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELED = "CANCELED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    # Echoed back by Click in every callback as merchant_trans_id
    merchant_trans_id = Column(String(128), nullable=False, unique=True)
    gateway_payment_id = Column(String(64), nullable=True)
    status = Column(String(32), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def payment_status(self) -> PaymentStatus:
        return PaymentStatus(self.status)
