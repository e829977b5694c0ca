from sqlalchemy import Column, Integer, String, DateTime, Date, UniqueConstraint, Index
from datetime import datetime
from threatmonitor.database import Base

class RateLimitRecord(Base):
    """One allowed threat-monitor call per user, endpoint and local calendar day.

    Rows are append-only: the history doubles as the limiter's source of truth.
    """
    __tablename__ = "threat_monitor_usage"
    __table_args__ = (
        UniqueConstraint("user_id", "endpoint", "usage_date", name="uq_usage_user_endpoint_day"),
        Index("ix_usage_user_endpoint_created", "user_id", "endpoint", "created_at"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False)
    endpoint = Column(String(100), nullable=False)
    
    # Server-local time of the allowed call
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    usage_date = Column(Date, nullable=False)
