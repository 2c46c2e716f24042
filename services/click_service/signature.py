"""
Click SHOP-API request signatures.

Click signs every PREPARE/COMPLETE callback with an MD5 digest over a fixed
concatenation of request fields and the merchant's secret key:

    PREPARE:  click_trans_id + service_id + SECRET_KEY + merchant_trans_id
              + amount + action + sign_time
    COMPLETE: click_trans_id + service_id + SECRET_KEY + merchant_trans_id
              + merchant_prepare_id + amount + action + sign_time

Fields are used exactly as received (no numeric reformatting), and the digest
is compared to `sign_string` as lowercase hex.
"""
import hashlib
import secrets

from .schemas import ClickCallback


def md5_signature(*parts) -> str:
    """MD5 hex digest of the concatenated parts. A None part contributes ''."""
    raw = "".join("" if part is None else str(part) for part in parts)
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


class ClickSignatureVerifier:
    """Recomputes callback signatures with the shared secret and checks them."""

    def __init__(self, secret_key: str):
        self._secret_key = secret_key

    def prepare_signature(self, callback: ClickCallback) -> str:
        return md5_signature(
            callback.click_trans_id,
            callback.service_id,
            self._secret_key,
            callback.merchant_trans_id,
            callback.amount,
            callback.action,
            callback.sign_time,
        )

    def complete_signature(self, callback: ClickCallback) -> str:
        return md5_signature(
            callback.click_trans_id,
            callback.service_id,
            self._secret_key,
            callback.merchant_trans_id,
            callback.merchant_prepare_id,
            callback.amount,
            callback.action,
            callback.sign_time,
        )

    def verify_prepare(self, callback: ClickCallback) -> bool:
        return self._matches(self.prepare_signature(callback), callback.sign_string)

    def verify_complete(self, callback: ClickCallback) -> bool:
        return self._matches(self.complete_signature(callback), callback.sign_string)

    @staticmethod
    def _matches(expected: str, supplied) -> bool:
        if not supplied:
            return False
        return secrets.compare_digest(expected.encode("utf-8"), str(supplied).encode("utf-8"))
