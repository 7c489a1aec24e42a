"""pairbridge - Pair a messaging session from the browser and export its credentials."""

__version__ = "0.1.0"
