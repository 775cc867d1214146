"""Recovery Companion sponsor pairing and encrypted sharing core."""

__version__ = "0.1.0"
