# Import the declarative Base and register every model so that
# Base.metadata.create_all sees all tables and resolves ForeignKeys.
from lumilink.db.base_class import Base

from lumilink.db.models.profile import Profile, Link
from lumilink.db.models.analytics import AnalyticsEvent
from lumilink.db.models.gamification import Badge, UserBadge
