"""Domain model - a website registered by an owner."""
from sqlalchemy import Column, String, DateTime

from ..database import Base
from ..utils.time_utils import utc_now


class Domain(Base):
    """A registered site whose visitors can subscribe to push notifications."""
    
    __tablename__ = "domains"
    
    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    hostname = Column(String, nullable=False, index=True)  # lowercased, e.g. "ff88.site"
    created_at = Column(DateTime, default=utc_now)
