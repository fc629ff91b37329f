"""Subscription intake and token listing schemas."""
from datetime import datetime
from typing import List, Optional
from pydantic import AliasChoices, BaseModel, Field

from .campaign import CamelModel


class VisitorData(BaseModel):
    """Visitor metadata collected by the loader script."""
    ip: Optional[str] = None
    country: Optional[str] = None
    # Loader scripts send either spelling
    country_code: Optional[str] = Field(None, validation_alias=AliasChoices("country_code", "countryCode"))
    ua: Optional[str] = None
    lang: Optional[str] = None


class SubscribeRequest(CamelModel):
    """Token registration from a subscribed browser or app."""
    token: Optional[str] = None
    domain_id: Optional[str] = None
    platform: Optional[str] = None
    visitor_data: Optional[VisitorData] = None
    user_id: Optional[str] = Field(None, description="Stable subscriber id used to refresh rows in place")


class SubscribeResponse(BaseModel):
    success: bool


class TokenResponse(CamelModel):
    """A stored push subscription."""
    id: str
    push_token: str
    domain_id: str
    domain_hostname: Optional[str] = None
    owner_id: Optional[str] = None
    platform: str
    subscriber_id: Optional[str] = None
    ip: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    user_agent: Optional[str] = None
    language: Optional[str] = None
    created_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None


class TokenList(CamelModel):
    tokens: List[TokenResponse]
    total: int
