class PaymentError(Exception):
    """Base class for payment state errors."""


class PaymentNotFound(PaymentError):
    def __init__(self, payment_id):
        super().__init__(f"Payment {payment_id} not found")
        self.payment_id = payment_id


class ConcurrentModification(PaymentError):
    """The guarded status update matched no row.

    Either a duplicate delivery already moved the payment out of the expected
    status, or another worker won the race. Callers treat this as
    "already processed", not as a failure.
    """

    def __init__(self, payment_id, expected_status):
        super().__init__(
            f"Payment {payment_id} is no longer {expected_status.value}"
        )
        self.payment_id = payment_id
        self.expected_status = expected_status


class InvalidTransition(PaymentError):
    def __init__(self, current, target):
        super().__init__(f"Transition {current.value} -> {target.value} is not allowed")
        self.current = current
        self.target = target


class ReversalNotAllowed(PaymentError):
    pass
