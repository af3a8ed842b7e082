from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import Field
from lumilink.schemas.analytics import CamelModel


class BadgeOut(CamelModel):
    id: str
    name: str
    description: str
    icon: str
    category: str
    criteria_type: Optional[str] = None
    target_value: int
    color: Optional[str] = None
    rarity: Optional[str] = "common"


class BadgeProgressOut(BadgeOut):
    current: int = 0
    progress: int = 0 # percent, 0..100
    is_completed: bool = False
    earned_at: Optional[datetime] = None


class BadgeCheckRequest(CamelModel):
    user_id: Optional[str] = None
    activity_data: Dict[str, Any] = Field(default_factory=dict)


class AwardBadgeRequest(CamelModel):
    user_id: str
    badge_id: str
