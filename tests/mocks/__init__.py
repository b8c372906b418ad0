"""Test doubles for the RevealMatch service."""
