"""Campaign model - notification content plus targeting and delivery lifecycle."""
from sqlalchemy import Column, Integer, String, DateTime, Index

from ..database import Base
from ..utils.time_utils import utc_now

# Lifecycle: draft -> scheduled -> processing -> sent | failed
STATUS_DRAFT = "draft"
STATUS_SCHEDULED = "scheduled"
STATUS_PROCESSING = "processing"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"

TERMINAL_STATUSES = (STATUS_SENT, STATUS_FAILED)

SELECTOR_ALL = "all"


class Campaign(Base):
    """A broadcast or scheduled push campaign owned by a dashboard user."""
    
    __tablename__ = "campaigns"
    __table_args__ = (
        Index("ix_campaigns_status_scheduled_at", "status", "scheduled_at"),
    )
    
    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    body = Column(String, nullable=False)
    icon = Column(String, nullable=True)
    action_url = Column(String, nullable=False, default="/")
    
    # Targeting rule
    domain_selector = Column(String, nullable=False, default=SELECTOR_ALL)  # 'all' or a domain id
    platform_selector = Column(String, nullable=False, default=SELECTOR_ALL)  # 'all', web, android, ios
    
    status = Column(String, nullable=False, default=STATUS_DRAFT)
    error = Column(String, nullable=True)  # Reason for a failed status
    
    # Naive UTC timestamps; SQL comparison on scheduled_at is chronological
    created_at = Column(DateTime, default=utc_now)
    scheduled_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)  # Set when the scheduler ran it
    claimed_at = Column(DateTime, nullable=True)  # When the current processing pass started
    last_clicked_at = Column(DateTime, nullable=True)
    
    # Stats of the latest dispatch pass, plus the running click count
    total_targeted = Column(Integer, nullable=False, default=0)
    total_sent = Column(Integer, nullable=False, default=0)
    total_failed = Column(Integer, nullable=False, default=0)
    total_clicks = Column(Integer, nullable=False, default=0)
