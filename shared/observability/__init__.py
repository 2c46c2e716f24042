from .setup import setup_observability
from .metrics import (
    click_callbacks_total,
    click_gateway_requests_total,
    payment_transition_conflicts_total,
    payment_transitions_total,
)
