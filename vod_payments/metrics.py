from prometheus_client import Counter

payments_total = Counter(
    "vod_payments_total", "Payments by class and status", ["payment_class", "status"]
)

withdrawals_total = Counter(
    "vod_withdrawals_total", "Withdrawals by type and status", ["type", "status"]
)

gateway_requests_total = Counter(
    "vod_gateway_requests_total",
    "Calls made to the mobile-money gateway",
    ["operation", "outcome"],
)

webhooks_total = Counter(
    "vod_webhooks_total", "Gateway webhook deliveries", ["outcome"]
)

ledger_failures_total = Counter(
    "vod_ledger_failures_total", "Ledger updates that failed after a charge succeeded"
)
