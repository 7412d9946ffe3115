"""PawaPay mobile-money integration for the marketplace: deposits, payouts and webhook reconciliation."""

__version__ = "1.0.0"
