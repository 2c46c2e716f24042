from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.observability import payment_transition_conflicts_total, payment_transitions_total

from .exceptions import ConcurrentModification, InvalidTransition
from .models import Payment, PaymentStatus
from .repository import PaymentRepository

logger = structlog.get_logger(__name__)

# PENDING is the only state callbacks and sync may leave. PAID -> CANCELED is
# reserved for an operator reversal acknowledged by Click.
ALLOWED_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.CANCELED, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.CANCELED},
    PaymentStatus.CANCELED: set(),
    PaymentStatus.FAILED: set(),
}


class PaymentStateMachine:

    @staticmethod
    async def transition(
        db: AsyncSession,
        payment_id: int,
        target: PaymentStatus,
        gateway_payment_id: Optional[str] = None,
        expected: PaymentStatus = PaymentStatus.PENDING,
    ) -> Payment:
        """Move a payment from `expected` to `target` with one compare-and-swap update.

        Raises ConcurrentModification if the stored status is no longer
        `expected` by the time the update runs.
        """
        if target not in ALLOWED_TRANSITIONS[expected]:
            raise InvalidTransition(expected, target)

        try:
            payment = await PaymentRepository.conditional_update_status(
                db, payment_id, expected, target, gateway_payment_id
            )
        except ConcurrentModification:
            payment_transition_conflicts_total.inc()
            logger.warning(
                "payment_transition_conflict",
                payment_id=payment_id,
                expected=expected.value,
                target=target.value,
            )
            raise

        payment_transitions_total.labels(status=target.value).inc()
        logger.info(
            "payment_transitioned",
            payment_id=payment_id,
            from_status=expected.value,
            to_status=target.value,
            gateway_payment_id=payment.gateway_payment_id,
        )
        return payment
