"""Payment validation, reconciliation, deposit and payout services."""
