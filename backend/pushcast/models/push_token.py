"""PushToken model - one subscription per installed browser or device."""
from sqlalchemy import Column, String, DateTime, Index

from ..database import Base
from ..utils.time_utils import utc_now

PLATFORMS = ("web", "android", "ios")


class PushToken(Base):
    """A push subscription collected from a registered domain.
    
    The row id is the push token string the row was first created with. A repeat
    subscribe from the same subscriber refreshes the row in place, so ``push_token``
    can drift away from ``id`` and several rows may end up carrying the same token.
    """
    
    __tablename__ = "push_tokens"
    __table_args__ = (
        Index("ix_push_tokens_subscriber_domain", "subscriber_id", "domain_id"),
    )
    
    id = Column(String, primary_key=True)
    push_token = Column(String, nullable=False, index=True)
    domain_id = Column(String, nullable=False, index=True)
    domain_hostname = Column(String, nullable=True, index=True)
    owner_id = Column(String, nullable=True, index=True)
    platform = Column(String, default="web", index=True)  # web, android, ios
    subscriber_id = Column(String, nullable=True)
    ip = Column(String, nullable=True)
    country = Column(String, nullable=True)
    country_code = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    language = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    last_active_at = Column(DateTime, default=utc_now, onupdate=utc_now)
