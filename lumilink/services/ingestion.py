import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from lumilink.core.errors import AnalyticsError, InvalidEventError
from lumilink.core.utils import utcnow
from lumilink.db.models.analytics import AnalyticsEvent, EVENT_TYPES, DEVICE_TYPES
from lumilink.db.store import EventStore
from lumilink.schemas.analytics import TrackedEvent
from lumilink.services.visitor import detect_device_type

logger = logging.getLogger(__name__)

INSERTED = "inserted"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class BadgeUpdates:
    new_badges: list = field(default_factory=list)
    total_badges: int = 0


@dataclass
class IngestResult:
    status: str
    event: Optional[AnalyticsEvent] = None
    badge_updates: BadgeUpdates = field(default_factory=BadgeUpdates)

    @property
    def skipped(self) -> bool:
        return self.status == SKIPPED


@dataclass
class BatchItemResult:
    index: int
    status: str
    event: Optional[AnalyticsEvent] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status != FAILED


@dataclass
class BatchResult:
    items: list = field(default_factory=list)
    badge_updates: BadgeUpdates = field(default_factory=BadgeUpdates)

    def _count(self, status: str) -> int:
        return sum(1 for item in self.items if item.status == status)

    @property
    def tracked(self) -> int:
        return self._count(INSERTED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    @property
    def events(self) -> list:
        return [item.event for item in self.items if item.event is not None]


def day_window(moment: datetime) -> tuple[datetime, datetime]:
    """UTC calendar day containing `moment`, as [start, start + 24h)."""
    start = datetime(moment.year, moment.month, moment.day)
    return start, start + timedelta(days=1)


class EventIngestionGateway:
    """
    Validates, deduplicates and persists tracked events, then hands the
    profile owner to the badge engine. Holds no state between calls.
    """

    def __init__(self, store: EventStore, badge_engine=None, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.badge_engine = badge_engine
        self.clock = clock

    def normalize_event_type(self, event_type: Optional[str]) -> str:
        if event_type in EVENT_TYPES:
            return event_type
        logger.warning(f"Invalid event_type: {event_type!r}, using 'view' instead")
        return "view"

    def normalize_device_type(self, device_type: Optional[str], user_agent: Optional[str]) -> str:
        value = (device_type or "").lower()
        if value in DEVICE_TYPES:
            return value
        if device_type:
            logger.warning(f"Invalid device_type: {device_type!r}, detecting from user agent instead")
        return detect_device_type(user_agent)

    def ingest(self, raw: TrackedEvent) -> IngestResult:
        if not raw.profile_id:
            raise InvalidEventError("profile_id is required")

        event_type = self.normalize_event_type(raw.event_type)
        now = self.clock()

        # One view per (profile, ip, UTC day)
        if event_type == "view" and raw.ip_address:
            start, end = day_window(now)
            if self.store.has_view(raw.profile_id, raw.ip_address, start, end):
                logger.debug(f"Duplicate view skipped: profile={raw.profile_id} ip={raw.ip_address}")
                return IngestResult(status=SKIPPED)

        event = self.store.insert_event(
            profile_id=raw.profile_id,
            link_id=raw.link_id,
            event_type=event_type,
            ip_address=raw.ip_address,
            referrer=raw.referrer or None,
            user_agent=raw.user_agent or None,
            country=raw.country,
            city=raw.city,
            device_type=self.normalize_device_type(raw.device_type, raw.user_agent),
            session_id=raw.session_id,
            device_info=raw.device_info.model_dump() if raw.device_info else {},
            location_info=raw.location_info.model_dump() if raw.location_info else {},
            referrer_info=raw.referrer_info.model_dump() if raw.referrer_info else {},
            created_at=now,
        )

        return IngestResult(status=INSERTED, event=event, badge_updates=self._evaluate_badges(event))

    def ingest_batch(self, events: list[TrackedEvent]) -> BatchResult:
        """
        Items run strictly in order so the dedup check sees rows written by
        earlier items of the same batch. A failing item is recorded and the
        batch moves on.
        """
        batch = BatchResult()
        for index, raw in enumerate(events):
            try:
                result = self.ingest(raw)
            except AnalyticsError as e:
                logger.error(f"Batch item {index} failed: {e.message}")
                batch.items.append(BatchItemResult(index=index, status=FAILED, error=e.message))
                continue
            except Exception as e:
                logger.exception(f"Batch item {index} failed unexpectedly: {e}")
                batch.items.append(BatchItemResult(index=index, status=FAILED, error="Failed to track event"))
                continue

            batch.items.append(BatchItemResult(index=index, status=result.status, event=result.event))
            if result.status == INSERTED:
                batch.badge_updates.new_badges.extend(result.badge_updates.new_badges)
                batch.badge_updates.total_badges = max(
                    batch.badge_updates.total_badges, result.badge_updates.total_badges
                )
        return batch

    def _evaluate_badges(self, event: AnalyticsEvent) -> BadgeUpdates:
        # Best effort: a badge failure never changes the ingestion outcome.
        if self.badge_engine is None:
            return BadgeUpdates()
        try:
            user_id = self.store.profile_owner(event.profile_id)
            if not user_id:
                logger.warning(f"No owner for profile {event.profile_id}; badge check skipped")
                return BadgeUpdates()
            result = self.badge_engine.evaluate(user_id, event.profile_id)
            return BadgeUpdates(new_badges=list(result.newly_awarded), total_badges=result.total_completed)
        except Exception as e:
            logger.error(f"Badge check failed for profile {event.profile_id}: {e}")
            return BadgeUpdates()
