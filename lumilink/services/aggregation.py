import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable

from lumilink.core.errors import StoreError
from lumilink.core.utils import utcnow
from lumilink.db.store import EventStore

logger = logging.getLogger(__name__)

TIME_WINDOWS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}
DEFAULT_TIME_RANGE = "7d"
REALTIME_WINDOW = timedelta(minutes=5)
DAILY_SERIES_DAYS = 7
TOP_COUNTRIES_LIMIT = 5
DEVICE_BUCKETS = ("mobile", "desktop", "tablet")


@dataclass(frozen=True)
class Window:
    label: str
    start: datetime
    end: datetime


def resolve_window(time_range: str, now: datetime) -> Window:
    """Maps a range label to [now - N, now]. Unknown labels fall back to 7d."""
    label = time_range if time_range in TIME_WINDOWS else DEFAULT_TIME_RANGE
    return Window(label=label, start=now - TIME_WINDOWS[label], end=now)


def start_of_day(moment: datetime) -> datetime:
    return datetime(moment.year, moment.month, moment.day)


def split_by_type(events) -> dict:
    parts = {"view": [], "click": [], "share": []}
    for event in events:
        if event.event_type in parts:
            parts[event.event_type].append(event)
    return parts


def conversion_rate(views: int, clicks: int) -> str:
    if views == 0:
        return "0"
    rate = Decimal(clicks * 100) / Decimal(views)
    return str(rate.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def unique_visitors(views) -> int:
    return len({event.ip_address for event in views})


def top_countries(views, limit: int = TOP_COUNTRIES_LIMIT) -> list[dict]:
    # Counter keeps first-seen order and sorted() is stable, so ties stay in arrival order
    counts = Counter(event.country for event in views if event.country)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [{"country": country, "count": count} for country, count in ranked[:limit]]


def device_breakdown(views) -> dict:
    devices = dict.fromkeys(DEVICE_BUCKETS, 0)
    for event in views:
        if event.device_type in devices:
            devices[event.device_type] += 1
    return devices


def daily_series(views, clicks, today: datetime, days: int = DAILY_SERIES_DAYS) -> list[dict]:
    """One zero-filled entry per UTC day, oldest first, ending today."""
    first_day = start_of_day(today) - timedelta(days=days - 1)
    series = []
    for offset in range(days):
        day_start = first_day + timedelta(days=offset)
        day_end = day_start + timedelta(days=1)
        series.append({
            "date": day_start.strftime("%Y-%m-%d"),
            "views": sum(1 for e in views if day_start <= e.created_at < day_end),
            "clicks": sum(1 for e in clicks if day_start <= e.created_at < day_end),
        })
    return series


class AggregationEngine:
    def __init__(self, store: EventStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def _read(self, what: str, fetch) -> list:
        # Report reads degrade to "no data" instead of failing the whole response.
        try:
            return fetch()
        except StoreError as e:
            logger.error(f"Analytics {what} read failed, reporting empty set: {e.message}")
            return []

    def overview(self, profile_id: str, time_range: str = DEFAULT_TIME_RANGE) -> dict:
        """
        Dashboard overview for one profile.

        A single read covers the selected window plus the trailing week and
        the 7-day daily series; every metric is derived in memory from it.
        """
        now = self.clock()
        window = resolve_window(time_range, now)
        today = start_of_day(now)
        week_ago = now - timedelta(days=7)
        series_start = today - timedelta(days=DAILY_SERIES_DAYS - 1)
        read_from = min(window.start, week_ago, series_start)

        events = self._read("overview", lambda: self.store.events_for_profile(profile_id, read_from, now))
        parts = split_by_type(events)
        all_views, all_clicks = parts["view"], parts["click"]

        views = [e for e in all_views if e.created_at >= window.start]
        clicks = [e for e in all_clicks if e.created_at >= window.start]
        week_views = [e for e in all_views if e.created_at >= week_ago]
        week_clicks = [e for e in all_clicks if e.created_at >= week_ago]

        return {
            "profileViews": {
                "total": len(views),
                "thisWeek": len(week_views),
                "today": sum(1 for e in all_views if e.created_at >= today),
                "uniqueVisitors": unique_visitors(views),
                "uniqueVisitorsThisWeek": unique_visitors(week_views),
            },
            "linkClicks": {
                "total": len(clicks),
                "thisWeek": len(week_clicks),
                "today": sum(1 for e in all_clicks if e.created_at >= today),
            },
            "conversionRate": conversion_rate(len(views), len(clicks)),
            "topCountries": top_countries(views),
            "devices": device_breakdown(views),
            "dailyStats": daily_series(all_views, all_clicks, now),
            "timeRange": window.label,
        }

    def realtime(self, profile_id: str) -> dict:
        now = self.clock()
        events = self._read("realtime", lambda: self.store.events_for_profile(profile_id, now - REALTIME_WINDOW, now))
        parts = split_by_type(events)
        return {
            "activeUsers": len(events),
            "recentViews": len(parts["view"]),
            "recentClicks": len(parts["click"]),
            "lastUpdated": now.isoformat() + "Z",
        }

    def profile_report(self, profile_id: str, time_range: str = DEFAULT_TIME_RANGE) -> dict:
        now = self.clock()
        window = resolve_window(time_range, now)
        views = self._read("profile views", lambda: self.store.events_for_profile(
            profile_id, window.start, window.end, event_type="view"
        ))
        week_ago = now - timedelta(days=7)
        today = start_of_day(now)
        return {
            "profileViews": {
                "total": len(views),
                "today": sum(1 for e in views if e.created_at >= today),
                "thisWeek": sum(1 for e in views if e.created_at >= week_ago),
                "uniqueVisitors": unique_visitors(views),
            },
            "timeRange": window.label,
            "period": _period(window),
        }

    def links_report(self, profile_id: str, time_range: str = DEFAULT_TIME_RANGE) -> dict:
        now = self.clock()
        window = resolve_window(time_range, now)
        clicks = self._read("link clicks", lambda: self.store.events_for_profile(
            profile_id, window.start, window.end, event_type="click"
        ))
        today = start_of_day(now)
        return {
            "linkClicks": {
                "total": len(clicks),
                "today": sum(1 for e in clicks if e.created_at >= today),
            },
            "timeRange": window.label,
            "period": _period(window),
        }

    def link_report(self, link_id: str, time_range: str = DEFAULT_TIME_RANGE) -> dict:
        now = self.clock()
        window = resolve_window(time_range, now)
        clicks = self._read("single link clicks", lambda: self.store.events_for_link(link_id, window.start, window.end))
        today = start_of_day(now)
        return {
            "totalClicks": len(clicks),
            "todayClicks": sum(1 for e in clicks if e.created_at >= today),
            "uniqueClickers": len({e.ip_address for e in clicks if e.ip_address}),
            "timeRange": window.label,
            "period": _period(window),
        }

    def top_links(self, profile_id: str, limit: int = 5, days: int = 30) -> list[dict]:
        now = self.clock()
        clicks = self._read("top links", lambda: self.store.events_for_profile(
            profile_id, now - timedelta(days=days), now, event_type="click"
        ))
        counts = Counter(e.link_id for e in clicks if e.link_id)
        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]
        try:
            links = self.store.links_by_id([link_id for link_id, _ in ranked])
        except StoreError:
            links = {}

        result = []
        for link_id, count in ranked:
            link = links.get(link_id)
            result.append({
                "linkId": link_id,
                "title": link.title if link else None,
                "url": link.url if link else None,
                "clicks": count,
            })
        return result

    def summary(self, profile_id: str) -> dict:
        """Lifetime counters used for badge criteria. Raises StoreError on failure."""
        return self.store.summarize(profile_id)


def _period(window: Window) -> dict:
    return {
        "startDate": window.start.isoformat() + "Z",
        "endDate": window.end.isoformat() + "Z",
    }
