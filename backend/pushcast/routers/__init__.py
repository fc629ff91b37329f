"""API routers."""
from .campaigns import router as campaigns_router
from .subscribe import router as subscribe_router
from .track_click import router as track_click_router
from .cron import router as cron_router
from .tokens import router as tokens_router
from .domains import router as domains_router
from .analytics import router as analytics_router

__all__ = [
    "campaigns_router",
    "subscribe_router",
    "track_click_router",
    "cron_router",
    "tokens_router",
    "domains_router",
    "analytics_router",
]
