"""Services for targeting, delivery, cleanup, accounting and scheduling."""
from .targeting import TargetingResolver
from .dispatcher import DeliveryDispatcher, DeliveryResult
from .reaper import TokenReaper
from .stats import StatsReconciler
from .campaign_sender import CampaignSender
from .scheduler import SchedulerService

__all__ = [
    "TargetingResolver",
    "DeliveryDispatcher",
    "DeliveryResult",
    "TokenReaper",
    "StatsReconciler",
    "CampaignSender",
    "SchedulerService",
]
