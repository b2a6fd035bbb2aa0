from prometheus_client import Counter, Gauge

earning_events_total = Counter(
    "payout_ledger_earning_events_total", "Total earning events processed", ["event_type"]
)

ledger_entries_total = Counter(
    "payout_ledger_ledger_entries_total", "Total ledger entries created", ["entry_type"]
)

payouts_requested_total = Counter(
    "payout_ledger_payouts_requested_total", "Total payout requests created", ["method"]
)

payout_transitions_total = Counter(
    "payout_ledger_payout_transitions_total",
    "Total payout status transitions applied",
    ["action", "status"],
)

payout_transition_conflicts_total = Counter(
    "payout_ledger_payout_transition_conflicts_total",
    "Transitions rejected because the payout changed concurrently",
    ["action"],
)

payout_exports_total = Counter(
    "payout_ledger_payout_exports_total", "Total payout reports generated"
)

pending_payouts_total = Gauge(
    "payout_ledger_pending_payouts_minor",
    "Amount reserved by active payouts, minor units",
    ["currency"],
)
