"""RevealMatch: matchmaking and reveal-conversation engine."""

__version__ = "1.0.0"
