"""Pushcast - web push campaign fan-out and delivery accounting service."""
