"""Analytics schemas for the dashboard."""
from typing import List
from pydantic import Field

from .campaign import CamelModel


class AnalyticsOverview(CamelModel):
    """Headline numbers; reach and clicks come from the global counters."""
    total_domains: int
    total_subscribers: int
    total_campaigns: int
    campaigns_sent: int
    total_reach: int
    total_clicks: int
    click_rate: float  # Percentage, one decimal
    new_subscribers_24h: int = Field(alias="newSubscribers24h")
    success_rate: float  # Percentage of attempted deliveries accepted


class HistoryDatasets(CamelModel):
    total_clicks: List[int]
    total_reach: List[int]
    total_subscribers: List[int]
    new_subscribers: List[int]


class AnalyticsHistory(CamelModel):
    labels: List[str]  # YYYY-MM-DD
    datasets: HistoryDatasets
