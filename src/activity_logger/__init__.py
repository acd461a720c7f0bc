"""Activity Logger - audit trail of user actions with search and CSV export."""

__version__ = "1.1.1"
