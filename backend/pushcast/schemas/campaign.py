"""Campaign schemas for API."""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from ..models import Campaign


class CamelModel(BaseModel):
    """Base for payloads exchanged with the dashboard in camelCase."""
    
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class TargetingRule(CamelModel):
    """Which tokens receive a campaign."""
    domain_id: str = "all"  # 'all' or a domain id
    platform: str = "all"  # 'all', web, android, ios


class CampaignCreate(CamelModel):
    """Schema for creating a campaign. Title and message are checked by the router."""
    id: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None
    icon: Optional[str] = None
    action_url: Optional[str] = None
    targeting: Optional[TargetingRule] = None
    status: Literal["draft", "scheduled"] = "draft"
    scheduled_at: Optional[datetime] = None


class CampaignStats(CamelModel):
    total_targeted: int = 0
    total_sent: int = 0
    total_failed: int = 0
    total_clicks: int = 0


class CampaignResponse(CamelModel):
    """Campaign as returned to the dashboard."""
    id: str
    owner_id: str
    title: str
    body: str
    icon: Optional[str] = None
    action_url: str
    targeting: TargetingRule
    status: str  # draft, scheduled, processing, sent, failed
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    last_clicked_at: Optional[datetime] = None
    stats: CampaignStats
    
    @classmethod
    def from_campaign(cls, campaign: Campaign) -> "CampaignResponse":
        return cls(
            id=campaign.id,
            owner_id=campaign.owner_id,
            title=campaign.title,
            body=campaign.body,
            icon=campaign.icon,
            action_url=campaign.action_url,
            targeting=TargetingRule(
                domain_id=campaign.domain_selector,
                platform=campaign.platform_selector,
            ),
            status=campaign.status,
            error=campaign.error,
            created_at=campaign.created_at,
            scheduled_at=campaign.scheduled_at,
            sent_at=campaign.sent_at,
            processed_at=campaign.processed_at,
            last_clicked_at=campaign.last_clicked_at,
            stats=CampaignStats(
                total_targeted=campaign.total_targeted or 0,
                total_sent=campaign.total_sent or 0,
                total_failed=campaign.total_failed or 0,
                total_clicks=campaign.total_clicks or 0,
            ),
        )


class CampaignEnvelope(CamelModel):
    success: bool = True
    campaign: CampaignResponse


class CampaignList(CamelModel):
    campaigns: List[CampaignResponse]


class CampaignAction(CamelModel):
    """Body of the send and resend endpoints."""
    campaign_id: Optional[str] = None


class DeliverySummary(CamelModel):
    """Dashboard view of one dispatch pass."""
    total: int
    sent: int
    failed: int
    cleaned_up: int


class SendResponse(CamelModel):
    success: bool
    results: DeliverySummary


class ScheduledRunDetail(CamelModel):
    id: str
    status: str
    sent: Optional[int] = None
    reason: Optional[str] = None


class ScheduledRunResponse(CamelModel):
    success: bool = True
    processed: int
    details: List[ScheduledRunDetail]
