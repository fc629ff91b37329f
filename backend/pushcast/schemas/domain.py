"""Domain registry schemas."""
from datetime import datetime
from typing import List, Optional

from .campaign import CamelModel


class DomainCreate(CamelModel):
    domain: Optional[str] = None


class DomainResponse(CamelModel):
    id: str
    hostname: str
    created_at: Optional[datetime] = None
    subscriber_count: int = 0


class DomainEnvelope(CamelModel):
    success: bool = True
    domain: DomainResponse


class DomainList(CamelModel):
    domains: List[DomainResponse]


class DomainDeleted(CamelModel):
    success: bool = True
    message: str
    deleted_tokens: int
