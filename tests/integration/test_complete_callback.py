from decimal import Decimal

import pytest

from services.click_service.schemas import ClickCallback
from services.payment_service.models import PaymentStatus

pytestmark = pytest.mark.integration


async def _complete(service, db, body):
    return await service.complete(db, ClickCallback.model_validate(body))


class TestCompleteSuccess:

    async def test_worked_example(self, callback_service, db, make_payment, complete_body, fetch_payment):
        payment = await make_payment(payment_id=42, amount="50000", merchant_trans_id="abc")
        body = complete_body(payment, click_trans_id="7", amount="50000")

        response = await _complete(callback_service, db, body)

        assert response.error == 0
        assert response.error_note == "Success"
        assert response.merchant_confirm_id == 42
        stored = await fetch_payment(42)
        assert stored.status == PaymentStatus.PAID.value
        assert stored.gateway_payment_id == "7"

    async def test_updated_at_is_refreshed(self, callback_service, db, make_payment, complete_body, fetch_payment):
        payment = await make_payment()
        before = (await fetch_payment(payment.id)).updated_at

        await _complete(callback_service, db, complete_body(payment))

        assert (await fetch_payment(payment.id)).updated_at >= before


class TestCompleteIdempotency:

    async def test_replay_is_already_processed(self, callback_service, db, make_payment, complete_body, fetch_payment):
        payment = await make_payment()
        body = complete_body(payment, click_trans_id="7")

        first = await _complete(callback_service, db, body)
        second = await _complete(callback_service, db, body)

        assert first.error == 0
        assert second.error == -4
        stored = await fetch_payment(payment.id)
        assert stored.status == PaymentStatus.PAID.value
        assert stored.gateway_payment_id == "7"

    async def test_replay_with_other_click_trans_id_keeps_first(
        self, callback_service, db, make_payment, complete_body, fetch_payment,
    ):
        payment = await make_payment()

        await _complete(callback_service, db, complete_body(payment, click_trans_id="7"))
        second = await _complete(callback_service, db, complete_body(payment, click_trans_id="8"))

        assert second.error == -4
        assert (await fetch_payment(payment.id)).gateway_payment_id == "7"

    async def test_canceled_payment_cannot_be_paid_later(
        self, callback_service, db, make_payment, complete_body, fetch_payment,
    ):
        payment = await make_payment()

        await _complete(callback_service, db, complete_body(payment, error="-9"))
        retry = await _complete(callback_service, db, complete_body(payment, error="0"))

        assert retry.error == -4
        assert (await fetch_payment(payment.id)).status == PaymentStatus.CANCELED.value


class TestProviderErrors:

    async def test_negative_error_cancels(self, callback_service, db, make_payment, complete_body, fetch_payment):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, error="-9", click_trans_id="11"))

        assert response.error == -9
        assert response.merchant_confirm_id == payment.id
        stored = await fetch_payment(payment.id)
        assert stored.status == PaymentStatus.CANCELED.value
        assert stored.gateway_payment_id == "11"

    async def test_positive_error_fails(self, callback_service, db, make_payment, complete_body, fetch_payment):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, error="5", click_trans_id="12"))

        assert response.error == 5
        stored = await fetch_payment(payment.id)
        assert stored.status == PaymentStatus.FAILED.value
        assert stored.gateway_payment_id == "12"

    async def test_provider_error_skips_amount_check(
        self, callback_service, db, make_payment, complete_body, fetch_payment,
    ):
        payment = await make_payment(amount="50000")

        response = await _complete(callback_service, db, complete_body(payment, error="-9", amount="1"))

        assert response.error == -9
        assert (await fetch_payment(payment.id)).status == PaymentStatus.CANCELED.value

    async def test_provider_error_with_non_numeric_amount(
        self, callback_service, db, make_payment, complete_body, fetch_payment,
    ):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, error="-9", amount="n/a"))

        assert response.error == -9
        assert (await fetch_payment(payment.id)).status == PaymentStatus.CANCELED.value

    async def test_provider_error_without_amount(self, callback_service, db, make_payment, complete_body):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, error="-5017", amount=None))

        assert response.error == -5017

    async def test_non_numeric_provider_error(self, callback_service, db, make_payment, complete_body, fetch_payment):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, error="bad"))

        assert response.error == -8
        assert (await fetch_payment(payment.id)).status == PaymentStatus.PENDING.value


class TestCompleteRejections:

    @pytest.mark.parametrize(
        "field", ["click_trans_id", "service_id", "merchant_trans_id", "merchant_prepare_id", "action"]
    )
    async def test_missing_field(self, callback_service, db, make_payment, complete_body, field):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, **{field: None}))

        assert response.error == -8

    async def test_wrong_service_id(self, callback_service, db, make_payment, complete_body):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, service_id="1"))

        assert response.error == -8

    async def test_prepare_action(self, callback_service, db, make_payment, complete_body):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, action="0"))

        assert response.error == -3

    async def test_tampered_signature(self, callback_service, db, make_payment, complete_body, fetch_payment):
        payment = await make_payment()
        body = complete_body(payment)
        body["sign_string"] = body["sign_string"][:-1] + ("0" if body["sign_string"][-1] != "0" else "1")

        response = await _complete(callback_service, db, body)

        assert response.error == -1
        assert (await fetch_payment(payment.id)).status == PaymentStatus.PENDING.value

    async def test_tampered_amount_breaks_signature(self, callback_service, db, make_payment, complete_body):
        payment = await make_payment(amount="50000")
        body = complete_body(payment)
        body["amount"] = "1"

        response = await _complete(callback_service, db, body)

        assert response.error == -1

    async def test_unknown_merchant_trans_id(self, callback_service, db, make_payment, complete_body):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, merchant_trans_id="nope"))

        assert response.error == -5

    @pytest.mark.parametrize("prepare_id", ["999999", "not-a-number"])
    async def test_merchant_prepare_id_mismatch_looks_like_not_found(
        self, callback_service, db, make_payment, complete_body, fetch_payment, prepare_id,
    ):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, merchant_prepare_id=prepare_id))

        assert response.error == -5
        assert response.error_note == "Payment not found"
        assert (await fetch_payment(payment.id)).status == PaymentStatus.PENDING.value

    async def test_amount_mismatch_leaves_payment_pending(
        self, callback_service, db, make_payment, complete_body, fetch_payment,
    ):
        payment = await make_payment(amount="50000")

        response = await _complete(callback_service, db, complete_body(payment, amount="40000"))

        assert response.error == -2
        stored = await fetch_payment(payment.id)
        assert stored.status == PaymentStatus.PENDING.value
        assert stored.gateway_payment_id is None
        assert Decimal(stored.amount) == Decimal("50000")

    async def test_non_numeric_amount_without_provider_error(
        self, callback_service, db, make_payment, complete_body, fetch_payment,
    ):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, amount="n/a"))

        assert response.error == -8
        assert (await fetch_payment(payment.id)).status == PaymentStatus.PENDING.value

    async def test_missing_amount_without_provider_error(self, callback_service, db, make_payment, complete_body):
        payment = await make_payment()

        response = await _complete(callback_service, db, complete_body(payment, amount=None))

        assert response.error == -2

    async def test_already_paid(self, callback_service, db, make_payment, complete_body):
        payment = await make_payment(status=PaymentStatus.PAID, gateway_payment_id="1")

        response = await _complete(callback_service, db, complete_body(payment))

        assert response.error == -4
