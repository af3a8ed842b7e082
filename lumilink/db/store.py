import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, distinct
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lumilink.core.errors import StoreError
from lumilink.db.crud import profiles as profile_crud
from lumilink.db.models.analytics import AnalyticsEvent
from lumilink.db.models.gamification import Badge, UserBadge

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class EventStore:
    """
    Persistence boundary for the analytics pipeline.

    Wraps one SQLAlchemy session. Every SQLAlchemyError is rolled back, logged
    with its code/detail and re-raised as StoreError so callers decide whether
    a failure is fatal (ingestion) or degrades to an empty result (reports).
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            error = StoreError.wrap(action, exc)
            logger.error(
                "Store failure during %s: code=%s message=%s detail=%s",
                action, error.code, error.message, error.detail
            )
            raise error from exc

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise StoreError(f"Conditional upsert not supported on {dialect}", code="dialect")
        return insert(model)

    # -------------------------------------------------
    # EVENTS
    # -------------------------------------------------
    def has_view(self, profile_id: str, ip_address: str, start: datetime, end: datetime) -> bool:
        with self._guard("duplicate view lookup"):
            hit = (
                self.db.query(AnalyticsEvent.id)
                .filter(
                    AnalyticsEvent.profile_id == profile_id,
                    AnalyticsEvent.event_type == "view",
                    AnalyticsEvent.ip_address == ip_address,
                    AnalyticsEvent.created_at >= start,
                    AnalyticsEvent.created_at < end,
                )
                .first()
            )
        return hit is not None

    def insert_event(self, **fields) -> AnalyticsEvent:
        with self._guard("event insert"):
            event = AnalyticsEvent(**fields)
            self.db.add(event)
            self.db.commit()
            self.db.refresh(event)
        return event

    def events_for_profile(
        self,
        profile_id: str,
        since: datetime,
        until: Optional[datetime] = None,
        event_type: Optional[str] = None,
    ) -> list[AnalyticsEvent]:
        """Events in [since, until], oldest first."""
        with self._guard("profile events read"):
            query = self.db.query(AnalyticsEvent).filter(
                AnalyticsEvent.profile_id == profile_id,
                AnalyticsEvent.created_at >= since,
            )
            if until is not None:
                query = query.filter(AnalyticsEvent.created_at <= until)
            if event_type:
                query = query.filter(AnalyticsEvent.event_type == event_type)
            return query.order_by(AnalyticsEvent.created_at.asc(), AnalyticsEvent.id.asc()).all()

    def events_for_link(self, link_id: str, since: datetime, until: datetime) -> list[AnalyticsEvent]:
        with self._guard("link events read"):
            return (
                self.db.query(AnalyticsEvent)
                .filter(
                    AnalyticsEvent.link_id == link_id,
                    AnalyticsEvent.event_type == "click",
                    AnalyticsEvent.created_at >= since,
                    AnalyticsEvent.created_at <= until,
                )
                .order_by(AnalyticsEvent.created_at.asc(), AnalyticsEvent.id.asc())
                .all()
            )

    def summarize(self, profile_id: str) -> dict:
        """Lifetime counters for one profile, computed in a single aggregate query."""
        is_view = AnalyticsEvent.event_type == "view"
        with self._guard("profile summary read"):
            row = (
                self.db.query(
                    func.count(AnalyticsEvent.id),
                    func.count(AnalyticsEvent.id).filter(is_view),
                    func.count(AnalyticsEvent.id).filter(AnalyticsEvent.event_type == "click"),
                    func.count(AnalyticsEvent.id).filter(AnalyticsEvent.event_type == "share"),
                    func.count(distinct(AnalyticsEvent.ip_address)).filter(is_view),
                    func.count(distinct(AnalyticsEvent.session_id)),
                    func.count(distinct(AnalyticsEvent.country)),
                    func.count(distinct(func.date(AnalyticsEvent.created_at))),
                )
                .filter(AnalyticsEvent.profile_id == profile_id)
                .one()
            )
        keys = (
            "event_count", "views", "clicks", "shares",
            "unique_visitors", "unique_sessions", "unique_countries", "days_active",
        )
        return {key: int(value or 0) for key, value in zip(keys, row)}

    # -------------------------------------------------
    # PROFILE / LINK COLLABORATORS
    # -------------------------------------------------
    def profile_owner(self, profile_id: str) -> Optional[str]:
        with self._guard("profile owner lookup"):
            return profile_crud.get_profile_owner(self.db, profile_id)

    def count_links(self, profile_id: str, social_only: bool = False) -> int:
        with self._guard("link count"):
            return profile_crud.count_links(self.db, profile_id, social_only=social_only)

    def links_by_id(self, link_ids) -> dict:
        with self._guard("links read"):
            return profile_crud.get_links(self.db, link_ids)

    # -------------------------------------------------
    # BADGES
    # -------------------------------------------------
    def active_badges(self, category: Optional[list[str]] = None) -> list[Badge]:
        with self._guard("badge catalog read"):
            query = self.db.query(Badge).filter(Badge.is_active.is_(True))
            if category:
                query = query.filter(Badge.category.in_(category))
            return query.order_by(Badge.category.asc(), Badge.target_value.asc(), Badge.id.asc()).all()

    def get_badge(self, badge_id: str) -> Optional[Badge]:
        with self._guard("badge read"):
            return self.db.query(Badge).filter(Badge.id == badge_id).first()

    def user_badges(self, user_id: str) -> list[UserBadge]:
        with self._guard("user badges read"):
            return self.db.query(UserBadge).filter(UserBadge.user_id == user_id).all()

    def completed_badge_ids(self, user_id: str) -> set[str]:
        with self._guard("completed badges read"):
            rows = (
                self.db.query(UserBadge.badge_id)
                .filter(UserBadge.user_id == user_id, UserBadge.is_completed.is_(True))
                .all()
            )
        return {badge_id for badge_id, in rows}

    def count_completed(self, user_id: str) -> int:
        with self._guard("completed badges count"):
            return (
                self.db.query(func.count(UserBadge.id))
                .filter(UserBadge.user_id == user_id, UserBadge.is_completed.is_(True))
                .scalar()
            ) or 0

    def award_badge(self, user_id: str, badge_id: str, progress: int, earned_at: datetime) -> bool:
        """
        Single-statement award: inserts a completed row, or completes an
        existing in-progress row. Rows already completed are left untouched.
        Returns True only for the call that performed the award.
        """
        stmt = self._insert(UserBadge).values(
            user_id=user_id,
            badge_id=badge_id,
            progress=progress,
            is_completed=True,
            earned_at=earned_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "badge_id"],
            set_={
                "progress": stmt.excluded.progress,
                "is_completed": True,
                "earned_at": stmt.excluded.earned_at,
            },
            where=UserBadge.__table__.c.is_completed == False,  # noqa: E712
        )
        with self._guard("badge award"):
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount > 0

    def record_progress(self, user_id: str, badge_id: str, progress: int) -> bool:
        """
        Upserts progress on an incomplete row. Progress only moves up, and a
        completed row is never touched. Returns True if a row was written.
        """
        stmt = self._insert(UserBadge).values(
            user_id=user_id,
            badge_id=badge_id,
            progress=progress,
            is_completed=False,
            earned_at=None,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "badge_id"],
            set_={"progress": stmt.excluded.progress},
            where=and_(
                UserBadge.__table__.c.is_completed == False,  # noqa: E712
                UserBadge.__table__.c.progress < stmt.excluded.progress,
            ),
        )
        with self._guard("badge progress update"):
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount > 0

    def leaderboard(self, limit: int = 10) -> list[tuple[str, int]]:
        """(user_id, completed badge count), most badges first."""
        completed = func.count(UserBadge.id)
        with self._guard("badge leaderboard read"):
            rows = (
                self.db.query(UserBadge.user_id, completed)
                .filter(UserBadge.is_completed.is_(True))
                .group_by(UserBadge.user_id)
                .order_by(completed.desc(), func.max(UserBadge.earned_at).asc(), UserBadge.user_id.asc())
                .limit(limit)
                .all()
            )
        return [(user_id, int(count)) for user_id, count in rows]
