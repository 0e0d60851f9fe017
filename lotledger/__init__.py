"""FIFO cost-basis ledger and corporate-action adjustment engine."""

__version__ = "0.1.0"
