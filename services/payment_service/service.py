import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.click_service.client import ClickApiClient
from services.click_service.schemas import GatewayPaymentStatus

from .exceptions import ConcurrentModification, PaymentNotFound, ReversalNotAllowed
from .models import Payment, PaymentStatus
from .repository import PaymentRepository
from .schemas import PaymentCreate
from .state_machine import PaymentStateMachine

logger = structlog.get_logger(__name__)

CLICK_PAYMENT_SUCCESSFUL = 1


def map_gateway_status(payment_status: Optional[int]) -> Optional[PaymentStatus]:
    """Local status implied by Click's payment_status; None means "leave as is"."""
    if payment_status == CLICK_PAYMENT_SUCCESSFUL:
        return PaymentStatus.PAID
    return None


@dataclass
class SyncResult:
    gateway: GatewayPaymentStatus
    payment: Payment
    changed: bool


class PaymentService:

    @staticmethod
    async def create_payment(db: AsyncSession, data: PaymentCreate) -> Payment:
        payment = Payment(
            user_id=data.user_id,
            amount=data.amount,
            merchant_trans_id=str(uuid.uuid4()),
            status=PaymentStatus.PENDING.value,
        )
        payment = await PaymentRepository.create_payment(db, payment)
        logger.info("payment_created", payment_id=payment.id,
                    merchant_trans_id=payment.merchant_trans_id, amount=str(payment.amount))
        return payment

    @staticmethod
    async def get_payment(db: AsyncSession, payment_id: int) -> Payment:
        payment = await PaymentRepository.get_by_id(db, payment_id)
        if not payment:
            raise PaymentNotFound(payment_id)
        return payment

    @staticmethod
    async def sync_status(db: AsyncSession, payment_id: int, gateway: ClickApiClient) -> SyncResult:
        """Reconcile a payment with Click when callbacks never arrived.

        Gateway failures propagate untouched; the payment is only changed
        through the same guarded transition COMPLETE uses.
        """
        payment = await PaymentService.get_payment(db, payment_id)
        remote = await gateway.query_status(payment.merchant_trans_id, payment.created_at)

        target = map_gateway_status(remote.payment_status)
        if target is None or payment.payment_status.is_terminal:
            logger.info("payment_sync_unchanged", payment_id=payment.id, status=payment.status,
                        gateway_status=remote.payment_status)
            return SyncResult(gateway=remote, payment=payment, changed=False)

        try:
            payment = await PaymentStateMachine.transition(
                db, payment.id, target, gateway_payment_id=remote.payment_id
            )
        except ConcurrentModification:
            # A callback got there first
            payment = await PaymentService.get_payment(db, payment_id)
            return SyncResult(gateway=remote, payment=payment, changed=False)

        return SyncResult(gateway=remote, payment=payment, changed=True)

    @staticmethod
    async def sync_by_merchant_trans_id(
        db: AsyncSession, merchant_trans_id: str, gateway: ClickApiClient
    ) -> Optional[SyncResult]:
        """Sync triggered from the return URL; None when the payment is unknown."""
        payment = await PaymentRepository.get_by_merchant_trans_id(db, merchant_trans_id)
        if payment is None:
            logger.info("payment_sync_skipped", merchant_trans_id=merchant_trans_id, reason="unknown payment")
            return None
        return await PaymentService.sync_status(db, payment.id, gateway)

    @staticmethod
    async def reverse_payment(db: AsyncSession, payment_id: int, gateway: ClickApiClient):
        payment = await PaymentService.get_payment(db, payment_id)
        if not payment.gateway_payment_id:
            raise ReversalNotAllowed("Cannot reverse without gateway_payment_id (sync status first)")
        if payment.payment_status is not PaymentStatus.PAID:
            raise ReversalNotAllowed(f"Only PAID payments can be reversed (status is {payment.status})")

        ack = await gateway.reverse(payment.gateway_payment_id)

        try:
            payment = await PaymentStateMachine.transition(
                db, payment.id, PaymentStatus.CANCELED, expected=PaymentStatus.PAID
            )
        except ConcurrentModification as e:
            logger.error("payment_reversal_unrecorded", payment_id=payment.id,
                         gateway_payment_id=payment.gateway_payment_id, ack=ack)
            raise ReversalNotAllowed("Payment changed while the reversal was in flight") from e

        logger.info("payment_reversed", payment_id=payment.id,
                    gateway_payment_id=payment.gateway_payment_id)
        return ack, payment
