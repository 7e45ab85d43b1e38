"""
MarketStats model: review-count/rating distribution per business-type cohort.
"""
from sqlalchemy import Column, Integer, Text, Float, DateTime, JSON
from sqlalchemy.sql import func

from leadpipe.database import Base


class MarketStats(Base):
    __tablename__ = 'market_stats'

    business_type = Column(Text, primary_key=True)
    lead_count = Column(Integer, default=0)
    rc_percentiles = Column(JSON, default=dict)  # {"p25": 14.0, "p99.9": 812.3, ...}
    rating_mean = Column(Float, nullable=True)
    rating_median = Column(Float, nullable=True)
    refreshed_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
