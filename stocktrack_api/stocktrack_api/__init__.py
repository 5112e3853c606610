"""StockTrack billing API: tenant subscription reconciliation against Stripe."""

__version__ = "0.1.0"
