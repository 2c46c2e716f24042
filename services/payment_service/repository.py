from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import ConcurrentModification
from .models import Payment, PaymentStatus


class PaymentRepository:
    """Durable store of payments keyed by id and merchant_trans_id."""

    @staticmethod
    async def create_payment(db: AsyncSession, payment: Payment):
        db.add(payment)
        await db.commit()
        await db.refresh(payment)
        return payment

    @staticmethod
    async def get_by_id(db: AsyncSession, payment_id: int) -> Optional[Payment]:
        result = await db.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_by_merchant_trans_id(db: AsyncSession, merchant_trans_id: str) -> Optional[Payment]:
        result = await db.execute(
            select(Payment)
            .where(Payment.merchant_trans_id == merchant_trans_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def conditional_update_status(
        db: AsyncSession,
        payment_id: int,
        expected_status: PaymentStatus,
        new_status: PaymentStatus,
        gateway_payment_id: Optional[str] = None,
    ) -> Payment:
        """Single guarded UPDATE: only applies while the row still has expected_status.

        Raises ConcurrentModification when no row matched.
        """
        values = {
            "status": new_status.value,
            "updated_at": datetime.now(timezone.utc),
        }
        if gateway_payment_id is not None:
            values["gateway_payment_id"] = str(gateway_payment_id)

        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == expected_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.commit()

        if result.rowcount != 1:
            raise ConcurrentModification(payment_id, expected_status)

        return await PaymentRepository.get_by_id(db, payment_id)
