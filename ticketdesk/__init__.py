"""Database repositories, Redis locks and caching, metrics, logging and expired-reservation cleanup for event ticket reservations."""

__version__ = "0.1.0"