"""Culture Scanner: attention ranking for Polymarket markets."""

__version__ = "0.1.0"
