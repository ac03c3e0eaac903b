"""Monthly collection ledger grid with derived balances and debounced persistence."""

__version__ = "0.1.0"
