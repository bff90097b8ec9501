"""Round-based wheel game with an exactly-once balance ledger on Redis."""

__version__ = "0.1.0"
