"""bdectl - BitLocker boot-volume enablement and escrow."""

__version__ = "0.1.0"
