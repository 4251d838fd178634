"""Message trigger routing and durable session state for multi-tenant chat bots."""

__version__ = "0.1.0"
