"""HTTP API for the RevealMatch service."""
