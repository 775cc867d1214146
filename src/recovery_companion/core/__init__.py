"""Core configuration for Recovery Companion."""
