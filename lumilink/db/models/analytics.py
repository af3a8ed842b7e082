from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Index
from lumilink.core.utils import utcnow
from lumilink.db.base_class import Base
import uuid

EVENT_TYPES = ("view", "click", "share")
DEVICE_TYPES = ("mobile", "desktop", "tablet", "unknown")


class AnalyticsEvent(Base):
    """One tracked interaction with a profile. Rows are written once and never updated."""
    __tablename__ = "analytics"
    __table_args__ = (
        # Dedup lookup (profile, type, ip, day) and windowed report reads
        Index("ix_analytics_profile_type_ip_created", "profile_id", "event_type", "ip_address", "created_at"),
        Index("ix_analytics_profile_created", "profile_id", "created_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    profile_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    link_id = Column(String, ForeignKey("links.id"), index=True, nullable=True)
    event_type = Column(String(10), nullable=False) # view | click | share

    # Visitor
    ip_address = Column(String, nullable=True)
    referrer = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    country = Column(String, nullable=True)
    city = Column(String, nullable=True)
    device_type = Column(String(10), nullable=True) # mobile | desktop | tablet | unknown
    session_id = Column(String, nullable=True)

    # Free-form metadata, stored as sent
    device_info = Column(JSON, default=dict)
    location_info = Column(JSON, default=dict)
    referrer_info = Column(JSON, default=dict)

    created_at = Column(DateTime, default=utcnow, nullable=False)
