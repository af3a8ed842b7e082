from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from lumilink.core.utils import utcnow
from lumilink.db.base_class import Base

class Badge(Base):
    __tablename__ = "badges"

    id = Column(String, primary_key=True) # e.g., "first-view"
    name = Column(String, nullable=False)
    description = Column(String, nullable=False)
    icon = Column(String, nullable=False) # Emoji
    category = Column(String, nullable=False, index=True) # e.g., "luot-xem" (legacy) or "views"
    criteria_type = Column(String, nullable=True) # e.g., "profile_views"
    target_value = Column(Integer, nullable=False, default=1)
    color = Column(String, nullable=True)
    rarity = Column(String, default="common")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

class UserBadge(Base):
    __tablename__ = "user_badges"
    __table_args__ = (
        # Target of the conditional award upsert
        UniqueConstraint("user_id", "badge_id", name="uq_user_badge"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    badge_id = Column(String, ForeignKey("badges.id"), nullable=False)
    progress = Column(Integer, nullable=False, default=0)
    is_completed = Column(Boolean, nullable=False, default=False)
    earned_at = Column(DateTime, nullable=True)

    badge = relationship("Badge")
