"""pricekeeper - per-model price catalog with scheduled changes and audit trail."""

__version__ = "0.1.0"
