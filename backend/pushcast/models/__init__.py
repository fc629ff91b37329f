"""Database models."""
from .domain import Domain
from .push_token import PushToken
from .campaign import Campaign
from .global_stats import GlobalStats

__all__ = ["Domain", "PushToken", "Campaign", "GlobalStats"]
