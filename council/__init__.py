"""Model council: role-based model routing and multi-model orchestration."""

__version__ = "0.1.0"
