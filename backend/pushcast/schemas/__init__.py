"""Pydantic schemas for API request/response models."""
from .campaign import (
    TargetingRule,
    CampaignCreate,
    CampaignResponse,
    CampaignEnvelope,
    CampaignList,
    CampaignAction,
    DeliverySummary,
    SendResponse,
    ScheduledRunResponse,
)
from .subscription import (
    SubscribeRequest,
    SubscribeResponse,
    TokenResponse,
    TokenList,
)
from .domain import (
    DomainCreate,
    DomainResponse,
    DomainEnvelope,
    DomainList,
    DomainDeleted,
)
from .analytics import (
    AnalyticsOverview,
    AnalyticsHistory,
)

__all__ = [
    "TargetingRule",
    "CampaignCreate",
    "CampaignResponse",
    "CampaignEnvelope",
    "CampaignList",
    "CampaignAction",
    "DeliverySummary",
    "SendResponse",
    "ScheduledRunResponse",
    "SubscribeRequest",
    "SubscribeResponse",
    "TokenResponse",
    "TokenList",
    "DomainCreate",
    "DomainResponse",
    "DomainEnvelope",
    "DomainList",
    "DomainDeleted",
    "AnalyticsOverview",
    "AnalyticsHistory",
]
