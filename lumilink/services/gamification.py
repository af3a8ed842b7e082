import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from lumilink.core.errors import BadgeNotFoundError
from lumilink.core.utils import utcnow
from lumilink.db.models.gamification import Badge
from lumilink.db.store import EventStore
from lumilink.services.aggregation import AggregationEngine

logger = logging.getLogger(__name__)

# Legacy (Vietnamese) and current category labels share one evaluation path.
CATEGORY_ALIASES = {
    "views": "views",
    "luot-xem": "views",
    "clicks": "clicks",
    "luot-nhap": "clicks",
    "achievements": "achievements",
    "thanh-tuu": "achievements",
    "special": "special",
    "dac-biet": "special",
}

CATEGORIES = [
    {"id": "luot-xem", "name": "Views", "description": "Profile view milestones", "icon": "👁️"},
    {"id": "luot-nhap", "name": "Clicks", "description": "Link click achievements", "icon": "👆"},
    {"id": "dac-biet", "name": "Special", "description": "Exclusive, hand-awarded badges", "icon": "⭐"},
    {"id": "thanh-tuu", "name": "Achievements", "description": "General accomplishments", "icon": "🏆"},
]

# Awarded by hand only.
MANUAL_CATEGORIES = {"special"}

# Criteria used when a badge row carries no criteria_type of its own.
CATEGORY_DEFAULT_CRITERIA = {
    "views": "profile_views",
    "clicks": "link_clicks",
}


@dataclass
class StatsContext:
    summary: dict
    links_created: int
    social_links: int


# criteria_type -> extractor. Adding a criterion is adding a row here.
CRITERIA_EXTRACTORS: dict[str, Callable[[StatsContext], int]] = {
    "profile_views": lambda ctx: ctx.summary["views"],
    "link_clicks": lambda ctx: ctx.summary["clicks"],
    "referrals": lambda ctx: ctx.summary["shares"],
    "days_active": lambda ctx: ctx.summary["days_active"],
    "unique_visitors": lambda ctx: ctx.summary["unique_visitors"],
    "unique_sessions": lambda ctx: ctx.summary["unique_sessions"],
    "unique_countries": lambda ctx: ctx.summary["unique_countries"],
    "links_created": lambda ctx: ctx.links_created,
    "social_links": lambda ctx: ctx.social_links,
}

# Client-reported activity fields, accepted only for criteria the server cannot compute.
ACTIVITY_DATA_CRITERIA = {
    "profileCompletion": "profile_completion",
}

BADGE_DEFINITIONS = [
    # Achievements
    {"id": "welcome", "name": "Welcome", "description": "Welcome to LumiLink!", "icon": "👋",
     "category": "thanh-tuu", "criteria_type": "days_active", "target_value": 1, "color": "#3B82F6"},
    {"id": "first-link", "name": "First Link", "description": "Added your first link", "icon": "🔗",
     "category": "thanh-tuu", "criteria_type": "links_created", "target_value": 1, "color": "#10B981"},
    {"id": "profile-complete", "name": "Profile Pro", "description": "Completed your profile", "icon": "👤",
     "category": "thanh-tuu", "criteria_type": "profile_completion", "target_value": 100, "color": "#8B5CF6"},
    {"id": "social-starter", "name": "Social Starter", "description": "Added 5 social links", "icon": "📱",
     "category": "thanh-tuu", "criteria_type": "social_links", "target_value": 5, "color": "#F59E0B"},
    {"id": "social-butterfly", "name": "Social Butterfly", "description": "Added 10 social links", "icon": "🦋",
     "category": "thanh-tuu", "criteria_type": "social_links", "target_value": 10, "color": "#EC4899"},
    {"id": "crowd-pleaser", "name": "Crowd Pleaser", "description": "Reached 50 unique visitors", "icon": "🎉",
     "category": "thanh-tuu", "criteria_type": "unique_visitors", "target_value": 50, "color": "#0EA5E9"},
    {"id": "globetrotter", "name": "Globetrotter", "description": "Visited from 10 countries", "icon": "🌍",
     "category": "thanh-tuu", "criteria_type": "unique_countries", "target_value": 10, "color": "#22C55E"},
    {"id": "customization-guru", "name": "Customization Guru", "description": "Fully customized your profile", "icon": "🎨",
     "category": "thanh-tuu", "criteria_type": "customization", "target_value": 1, "color": "#DB2777"},
    # Clicks
    {"id": "first-click", "name": "First Click", "description": "Received your first click", "icon": "👆",
     "category": "luot-nhap", "criteria_type": "link_clicks", "target_value": 1, "color": "#06B6D4"},
    {"id": "click-collector", "name": "Click Collector", "description": "Received 100 clicks", "icon": "💯",
     "category": "luot-nhap", "criteria_type": "link_clicks", "target_value": 100, "color": "#84CC16"},
    {"id": "click-master", "name": "Click Master", "description": "Received 1000 clicks", "icon": "🏆",
     "category": "luot-nhap", "criteria_type": "link_clicks", "target_value": 1000, "color": "#F97316"},
    # Views
    {"id": "first-view", "name": "First View", "description": "Received your first profile view", "icon": "👁️",
     "category": "luot-xem", "criteria_type": "profile_views", "target_value": 1, "color": "#6366F1"},
    {"id": "popular", "name": "Popular", "description": "Received 100 profile views", "icon": "🌟",
     "category": "luot-xem", "criteria_type": "profile_views", "target_value": 100, "color": "#EF4444"},
    {"id": "viral", "name": "Viral", "description": "Received 1000 profile views", "icon": "🚀",
     "category": "luot-xem", "criteria_type": "profile_views", "target_value": 1000, "color": "#DC2626"},
    # Special
    {"id": "early-adopter", "name": "Early Adopter", "description": "Joined LumiLink during the beta", "icon": "🚀",
     "category": "dac-biet", "criteria_type": None, "target_value": 1, "color": "#7C3AED", "rarity": "rare"},
    {"id": "beta-tester", "name": "Beta Tester", "description": "Helped test new features", "icon": "🧪",
     "category": "dac-biet", "criteria_type": None, "target_value": 1, "color": "#059669", "rarity": "rare"},
]


def seed_badges(db: Session):
    """Ensures all catalog badges exist in DB."""
    # Fetch all existing badge ids in a single query to avoid N+1.
    existing_ids = {badge_id for badge_id, in db.query(Badge.id).all()}

    for b_def in BADGE_DEFINITIONS:
        if b_def["id"] not in existing_ids:
            db.add(Badge(is_active=True, **b_def))
    db.commit()


def canonical_category(category: Optional[str]) -> Optional[str]:
    return CATEGORY_ALIASES.get((category or "").lower())


def category_labels(category: str) -> list[str]:
    """Every stored label (legacy or current) that means the same category."""
    canonical = canonical_category(category)
    if canonical is None:
        return [category]
    return [label for label, target in CATEGORY_ALIASES.items() if target == canonical]


def progress_percent(progress: int, target: int) -> int:
    if target <= 0:
        return 100 if progress > 0 else 0
    return max(0, min(100, round(progress / target * 100)))


def criteria_for(badge: Badge) -> Optional[str]:
    """The criteria key a badge is evaluated on, or None if it is hand-awarded."""
    category = canonical_category(badge.category)
    if category in MANUAL_CATEGORIES:
        return None
    return badge.criteria_type or CATEGORY_DEFAULT_CRITERIA.get(category)


@dataclass
class EvaluationResult:
    newly_awarded: list = field(default_factory=list)
    total_completed: int = 0
    updated_progress: dict = field(default_factory=dict)


class BadgeRuleEngine:
    """
    Evaluates a user's stats snapshot against the active badge catalog.

    Per (user, badge) a row only moves forward: no row -> in progress ->
    completed. Completion goes through EventStore.award_badge, a single
    conditional upsert, so concurrent evaluations award at most once.
    """

    def __init__(self, store: EventStore, aggregator: AggregationEngine, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.aggregator = aggregator
        self.clock = clock

    def snapshot(self, profile_id: str, activity_data: Optional[dict] = None) -> dict:
        ctx = StatsContext(
            summary=self.aggregator.summary(profile_id),
            links_created=self.store.count_links(profile_id),
            social_links=self.store.count_links(profile_id, social_only=True),
        )
        stats = {criteria: int(extract(ctx)) for criteria, extract in CRITERIA_EXTRACTORS.items()}

        for key, criteria in ACTIVITY_DATA_CRITERIA.items():
            value = (activity_data or {}).get(key)
            if criteria not in stats and isinstance(value, (int, float)) and not isinstance(value, bool):
                stats[criteria] = int(value)
        return stats

    def evaluate(self, user_id: str, profile_id: str, activity_data: Optional[dict] = None) -> EvaluationResult:
        stats = self.snapshot(profile_id, activity_data)
        completed = self.store.completed_badge_ids(user_id)
        result = EvaluationResult()

        for badge in self.store.active_badges():
            if badge.id in completed:
                continue
            criteria = criteria_for(badge)
            if criteria is None or criteria not in stats:
                continue

            value = stats[criteria]
            if value >= badge.target_value:
                if self.store.award_badge(user_id, badge.id, value, self.clock()):
                    logger.info(f"Badge awarded: user={user_id} badge={badge.id} value={value}")
                    result.newly_awarded.append(badge)
            elif value > 0:
                self.store.record_progress(user_id, badge.id, value)
            else:
                continue

            result.updated_progress[badge.id] = {
                "current": value,
                "requirement": badge.target_value,
                "progress": progress_percent(value, badge.target_value),
            }

        result.total_completed = self.store.count_completed(user_id)
        return result

    def grant(self, user_id: str, badge_id: str) -> bool:
        """Hand-award any badge. Returns False if the user already had it."""
        badge = self.store.get_badge(badge_id)
        if badge is None:
            raise BadgeNotFoundError(badge_id)
        return self.store.award_badge(user_id, badge.id, badge.target_value, self.clock())

    def catalog(self, category: Optional[str] = None) -> list[Badge]:
        return self.store.active_badges(category=category_labels(category) if category else None)

    def categories(self) -> list[dict]:
        return CATEGORIES

    def catalog_stats(self) -> dict:
        badges = self.store.active_badges()
        by_category = {c["id"]: 0 for c in CATEGORIES}
        for badge in badges:
            canonical = canonical_category(badge.category)
            label = next((c["id"] for c in CATEGORIES if canonical_category(c["id"]) == canonical), badge.category)
            by_category[label] = by_category.get(label, 0) + 1
        return {"totalBadges": len(badges), "byCategory": by_category}

    def board(self, user_id: str) -> dict:
        """Every active badge with the user's state, split into earned / in progress / available."""
        rows = {row.badge_id: row for row in self.store.user_badges(user_id)}
        earned, in_progress, available = [], [], []

        for badge in self.store.active_badges():
            row = rows.get(badge.id)
            entry = {
                "badge": badge,
                "current": row.progress if row else 0,
                "progress": 0,
                "is_completed": bool(row and row.is_completed),
                "earned_at": row.earned_at if row else None,
            }
            if row and row.is_completed:
                entry["progress"] = 100
                earned.append(entry)
            elif row and row.progress > 0:
                entry["progress"] = progress_percent(row.progress, badge.target_value)
                in_progress.append(entry)
            else:
                available.append(entry)

        return {"earned": earned, "inProgress": in_progress, "available": available}

    def leaderboard(self, limit: int = 10) -> list[dict]:
        return [
            {"userId": user_id, "badgeCount": count}
            for user_id, count in self.store.leaderboard(limit)
        ]
