import enum
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator


class ClickAction(enum.IntEnum):
    PREPARE = 0
    COMPLETE = 1


class ClickError(enum.IntEnum):
    SUCCESS = 0
    SIGN_CHECK_FAILED = -1
    INVALID_AMOUNT = -2
    ACTION_NOT_FOUND = -3
    ALREADY_PAID = -4
    TRANSACTION_NOT_FOUND = -5
    BAD_REQUEST = -8


ERROR_NOTES = {
    ClickError.SUCCESS: "Success",
    ClickError.SIGN_CHECK_FAILED: "Invalid signature",
    ClickError.INVALID_AMOUNT: "Invalid amount",
    ClickError.ACTION_NOT_FOUND: "Invalid action",
    ClickError.ALREADY_PAID: "Payment already processed",
    ClickError.TRANSACTION_NOT_FOUND: "Payment not found",
    ClickError.BAD_REQUEST: "Missing required parameters",
}

PREPARE_REQUIRED = (
    "click_trans_id", "service_id", "merchant_trans_id", "amount",
    "sign_time", "sign_string", "action",
)
COMPLETE_REQUIRED = (
    "click_trans_id", "service_id", "merchant_trans_id", "merchant_prepare_id", "action",
)


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _to_decimal(value: Optional[str]) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        number = Decimal(value)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


class ClickCallback(BaseModel):
    """A PREPARE or COMPLETE request body, as sent by Click.

    Every field is kept as the exact text received because the signature is
    computed over that text. Typed views (`action_code`, `amount_value`, ...)
    return None when the field is absent or not a number.
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    click_trans_id: Optional[str] = None
    service_id: Optional[str] = None
    click_paydoc_id: Optional[str] = None
    merchant_trans_id: Optional[str] = None
    merchant_prepare_id: Optional[str] = None
    amount: Optional[str] = None
    action: Optional[str] = None
    error: Optional[str] = None
    error_note: Optional[str] = None
    sign_time: Optional[str] = None
    sign_string: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _as_text(cls, value):
        if value is None:
            return None
        if isinstance(value, bool):
            raise ValueError("boolean is not a valid Click field value")
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, str):
            try:
                value.encode("utf-8")
            except UnicodeEncodeError as e:
                raise ValueError("Click fields must be valid UTF-8 text") from e
            return value if value != "" else None
        raise ValueError("Click fields must be scalar values")

    def missing(self, names: Iterable[str]) -> List[str]:
        return [name for name in names if getattr(self, name) is None]

    @property
    def action_code(self) -> Optional[int]:
        return _to_int(self.action)

    @property
    def service_id_value(self) -> Optional[int]:
        return _to_int(self.service_id)

    @property
    def merchant_prepare_id_value(self) -> Optional[int]:
        return _to_int(self.merchant_prepare_id)

    @property
    def amount_value(self) -> Optional[Decimal]:
        return _to_decimal(self.amount)

    @property
    def provider_error(self) -> Optional[int]:
        """Click-side error code; 0 when absent, None when unparseable."""
        if self.error is None:
            return 0
        return _to_int(self.error)

    @property
    def click_trans_id_echo(self) -> Union[int, str, None]:
        value = _to_int(self.click_trans_id)
        return value if value is not None else self.click_trans_id


class ClickResponse(BaseModel):
    error: int
    error_note: str
    click_trans_id: Union[int, str, None] = None
    merchant_trans_id: Optional[str] = None
    merchant_prepare_id: Optional[int] = None
    merchant_confirm_id: Optional[int] = None


class GatewayPaymentStatus(BaseModel):
    """Body of Click's payment/status_by_mti response."""
    model_config = ConfigDict(extra="allow")

    error_code: Optional[int] = None
    error_note: Optional[str] = None
    payment_id: Optional[int] = None
    payment_status: Optional[int] = None
