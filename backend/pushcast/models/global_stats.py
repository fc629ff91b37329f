"""GlobalStats model - singleton reach/click counters across all campaigns."""
from sqlalchemy import Column, Integer, String, DateTime

from ..database import Base
from ..utils.time_utils import utc_now

GLOBAL_STATS_ID = "global"


class GlobalStats(Base):
    """Monotonic counters, created lazily on first increment and never deleted."""
    
    __tablename__ = "stats"
    
    id = Column(String, primary_key=True, default=GLOBAL_STATS_ID)
    total_reach = Column(Integer, nullable=False, default=0)
    total_clicks = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
