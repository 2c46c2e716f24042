"""
Click PREPARE / COMPLETE callback handling.

Checks run in the order Click documents and stop at the first failure. Every
outcome, including rejections, is an in-body error code on an HTTP 200. The
only write is COMPLETE's status transition, done through
PaymentStateMachine's guarded update so duplicate or racing deliveries
cannot apply it twice.
"""
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.payment_service.exceptions import ConcurrentModification
from services.payment_service.models import PaymentStatus
from services.payment_service.repository import PaymentRepository
from services.payment_service.state_machine import PaymentStateMachine
from shared.config.settings import ClickSettings
from shared.observability import click_callbacks_total

from .schemas import (
    COMPLETE_REQUIRED,
    ERROR_NOTES,
    PREPARE_REQUIRED,
    ClickAction,
    ClickCallback,
    ClickError,
    ClickResponse,
)
from .signature import ClickSignatureVerifier

logger = structlog.get_logger(__name__)


class ClickCallbackService:

    def __init__(self, settings: ClickSettings, verifier: Optional[ClickSignatureVerifier] = None):
        self.settings = settings
        self.verifier = verifier or ClickSignatureVerifier(settings.secret_key)

    async def handle(self, db: AsyncSession, callback: ClickCallback) -> ClickResponse:
        """Single-endpoint variant: route on the `action` field."""
        action = callback.action_code
        if action == ClickAction.PREPARE:
            return await self.prepare(db, callback)
        if action == ClickAction.COMPLETE:
            return await self.complete(db, callback)

        logger.error("click_callback_rejected", action=callback.action, reason="unknown action")
        return self._reply("unknown", ClickError.ACTION_NOT_FOUND, callback=callback)

    def malformed(self, reason: str) -> ClickResponse:
        logger.error("click_callback_rejected", reason=reason)
        return self._reply("unknown", ClickError.BAD_REQUEST, note="Invalid request body")

    async def prepare(self, db: AsyncSession, callback: ClickCallback) -> ClickResponse:
        log = logger.bind(
            click_trans_id=callback.click_trans_id,
            merchant_trans_id=callback.merchant_trans_id,
        )
        log.info("click_prepare_received", amount=callback.amount, sign_time=callback.sign_time)

        def reject(code: ClickError, reason: str, note: Optional[str] = None, **extra) -> ClickResponse:
            log.error("click_prepare_rejected", error=int(code), reason=reason, **extra)
            return self._reply("prepare", code, callback=callback, note=note)

        missing = callback.missing(PREPARE_REQUIRED)
        if missing:
            return reject(ClickError.BAD_REQUEST, "missing parameters", missing=missing)
        if callback.amount_value is None:
            return reject(ClickError.BAD_REQUEST, "amount is not a number", note="Invalid amount format")
        if callback.service_id_value != self.settings.service_id:
            return reject(ClickError.BAD_REQUEST, "service_id mismatch", note="Invalid service_id",
                          service_id=callback.service_id)
        if callback.action_code != ClickAction.PREPARE:
            return reject(ClickError.ACTION_NOT_FOUND, "action is not PREPARE", action=callback.action)
        if not self.verifier.verify_prepare(callback):
            return reject(ClickError.SIGN_CHECK_FAILED, "signature mismatch")

        payment = await PaymentRepository.get_by_merchant_trans_id(db, callback.merchant_trans_id)
        if payment is None:
            return reject(ClickError.TRANSACTION_NOT_FOUND, "unknown merchant_trans_id")
        if payment.payment_status.is_terminal:
            return reject(ClickError.ALREADY_PAID, "payment is terminal", status=payment.status)
        if _amount(payment.amount) != callback.amount_value:
            return reject(ClickError.INVALID_AMOUNT, "amount mismatch",
                          expected=str(payment.amount), got=callback.amount)

        log.info("click_prepare_accepted", payment_id=payment.id)
        return self._reply(
            "prepare", ClickError.SUCCESS, callback=callback, merchant_prepare_id=payment.id
        )

    async def complete(self, db: AsyncSession, callback: ClickCallback) -> ClickResponse:
        log = logger.bind(
            click_trans_id=callback.click_trans_id,
            merchant_trans_id=callback.merchant_trans_id,
        )
        log.info(
            "click_complete_received",
            merchant_prepare_id=callback.merchant_prepare_id,
            amount=callback.amount,
            provider_error=callback.error,
        )

        def reject(code: ClickError, reason: str, note: Optional[str] = None, **extra) -> ClickResponse:
            log.error("click_complete_rejected", error=int(code), reason=reason, **extra)
            return self._reply("complete", code, callback=callback, note=note)

        missing = callback.missing(COMPLETE_REQUIRED)
        if missing:
            return reject(ClickError.BAD_REQUEST, "missing parameters", missing=missing)
        provider_error = callback.provider_error
        if provider_error is None:
            return reject(ClickError.BAD_REQUEST, "error is not a number", note="Invalid error value")
        if provider_error == 0 and callback.amount is not None and callback.amount_value is None:
            return reject(ClickError.BAD_REQUEST, "amount is not a number", note="Invalid amount format")
        if callback.service_id_value != self.settings.service_id:
            return reject(ClickError.BAD_REQUEST, "service_id mismatch", note="Invalid service_id",
                          service_id=callback.service_id)
        if callback.action_code != ClickAction.COMPLETE:
            return reject(ClickError.ACTION_NOT_FOUND, "action is not COMPLETE", action=callback.action)
        if not self.verifier.verify_complete(callback):
            return reject(ClickError.SIGN_CHECK_FAILED, "signature mismatch")

        payment = await PaymentRepository.get_by_merchant_trans_id(db, callback.merchant_trans_id)
        if payment is None:
            return reject(ClickError.TRANSACTION_NOT_FOUND, "unknown merchant_trans_id")
        # Same answer as not-found: do not reveal which identifier was wrong
        if callback.merchant_prepare_id_value != payment.id:
            return reject(ClickError.TRANSACTION_NOT_FOUND, "merchant_prepare_id mismatch",
                          merchant_prepare_id=callback.merchant_prepare_id, payment_id=payment.id)
        if payment.payment_status.is_terminal:
            return reject(ClickError.ALREADY_PAID, "payment is terminal", status=payment.status)

        if provider_error != 0:
            target = PaymentStatus.CANCELED if provider_error < 0 else PaymentStatus.FAILED
            try:
                await PaymentStateMachine.transition(
                    db, payment.id, target, gateway_payment_id=callback.click_trans_id
                )
            except ConcurrentModification:
                return reject(ClickError.ALREADY_PAID, "lost race to another delivery")

            log.warning("click_complete_provider_error", provider_error=provider_error,
                        payment_id=payment.id, status=target.value)
            return self._reply(
                "complete", provider_error, callback=callback,
                note="Failed", merchant_confirm_id=payment.id,
            )

        if callback.amount_value is None or _amount(payment.amount) != callback.amount_value:
            return reject(ClickError.INVALID_AMOUNT, "amount mismatch",
                          expected=str(payment.amount), got=callback.amount)

        try:
            await PaymentStateMachine.transition(
                db, payment.id, PaymentStatus.PAID, gateway_payment_id=callback.click_trans_id
            )
        except ConcurrentModification:
            return reject(ClickError.ALREADY_PAID, "lost race to another delivery")

        log.info("click_complete_accepted", payment_id=payment.id)
        return self._reply(
            "complete", ClickError.SUCCESS, callback=callback, merchant_confirm_id=payment.id
        )

    @staticmethod
    def _reply(
        action: str,
        code: int,
        callback: Optional[ClickCallback] = None,
        note: Optional[str] = None,
        **ids,
    ) -> ClickResponse:
        click_callbacks_total.labels(action=action, error=str(int(code))).inc()
        if note is None:
            note = ERROR_NOTES.get(code, "Failed")
        if callback is not None:
            ids.setdefault("click_trans_id", callback.click_trans_id_echo)
            ids.setdefault("merchant_trans_id", callback.merchant_trans_id)
        return ClickResponse(error=int(code), error_note=note, **ids)


def _amount(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))
