from prometheus_client import Counter

# Callback protocol
click_callbacks_total = Counter(
    "click_callbacks_total",
    "Click PREPARE/COMPLETE callbacks answered",
    ["action", "error"]  # action: 'prepare' | 'complete' | 'unknown', error: protocol code
)

# Payment state
payment_transitions_total = Counter(
    "payment_transitions_total",
    "Committed payment status transitions",
    ["status"]  # target status
)

payment_transition_conflicts_total = Counter(
    "payment_transition_conflicts_total",
    "Conditional status updates that matched no row (duplicate or racing delivery)"
)

# Outbound gateway
click_gateway_requests_total = Counter(
    "click_gateway_requests_total",
    "Requests sent to the Click merchant API",
    ["operation", "outcome"]  # outcome: 'ok', 'http_error', 'unavailable'
)
