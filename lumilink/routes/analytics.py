from fastapi import APIRouter, Depends, Request, Query
from sqlalchemy.orm import Session

from lumilink.core.config import settings
from lumilink.core.dependencies import (
    get_aggregator, get_current_profile_id, get_ingestion_gateway
)
from lumilink.core.errors import NotFoundError
from lumilink.core.limiter import limiter
from lumilink.db.crud.profiles import get_link
from lumilink.db.session import get_db
from lumilink.schemas.analytics import TrackRequest, TrackedEvent, EventOut
from lumilink.schemas.badges import BadgeOut
from lumilink.services.aggregation import AggregationEngine, DEFAULT_TIME_RANGE
from lumilink.services.ingestion import EventIngestionGateway, BadgeUpdates, INSERTED, SKIPPED
from lumilink.services.visitor import get_visitor_info, apply_visitor_defaults

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def serialize_event(event) -> dict:
    return EventOut.model_validate(event).model_dump(by_alias=True, mode="json")


def serialize_badge_updates(updates: BadgeUpdates) -> dict:
    return {
        "newBadges": [BadgeOut.model_validate(b).model_dump(by_alias=True) for b in updates.new_badges],
        "totalBadges": updates.total_badges,
    }


# -------------------------------------------------
# INGESTION
# -------------------------------------------------
@router.post("/track")
@limiter.limit(settings.TRACK_RATE_LIMIT)
def track_events(
    request: Request,
    body: TrackRequest,
    gateway: EventIngestionGateway = Depends(get_ingestion_gateway),
):
    """
    Tracks one event, or `batchEvents` in order. A single event that cannot be
    stored fails the request; in a batch each item succeeds or fails alone.
    """
    visitor = get_visitor_info(request)

    if body.batch_events:
        events = [apply_visitor_defaults(e, visitor, session_id=body.session_id) for e in body.batch_events]
        batch = gateway.ingest_batch(events)
        return {
            "success": batch.failed < len(batch.items),
            "message": "Events tracked successfully" if not batch.failed else "Some events failed to track",
            "eventsTracked": batch.tracked,
            "eventsSkipped": batch.skipped,
            "eventsFailed": batch.failed,
            "analytics": [serialize_event(e) for e in batch.events],
            "results": [
                {"index": item.index, "success": item.success, "status": item.status, "error": item.error}
                for item in batch.items
            ],
            "badgeUpdates": serialize_badge_updates(batch.badge_updates),
        }

    single = TrackedEvent.model_validate(body.model_dump(exclude={"batch_events"}))
    result = gateway.ingest(apply_visitor_defaults(single, visitor))
    return {
        "success": True,
        "message": "Duplicate view skipped" if result.skipped else "Event tracked successfully",
        "skipped": result.skipped,
        "eventsTracked": 1 if result.status == INSERTED else 0,
        "eventsSkipped": 1 if result.status == SKIPPED else 0,
        "eventsFailed": 0,
        "analytics": [serialize_event(result.event)] if result.event else [],
        "results": [{"index": 0, "success": True, "status": result.status, "error": None}],
        "badgeUpdates": serialize_badge_updates(result.badge_updates),
    }


# -------------------------------------------------
# REPORTS
# -------------------------------------------------
@router.get("/dashboard/overview")
@router.get("/overview")
def dashboard_overview(
    time_range: str = Query(DEFAULT_TIME_RANGE, alias="timeRange"),
    profile_id: str = Depends(get_current_profile_id),
    aggregator: AggregationEngine = Depends(get_aggregator),
):
    return {"success": True, "data": aggregator.overview(profile_id, time_range)}


@router.get("/realtime")
def realtime_stats(
    profile_id: str = Depends(get_current_profile_id),
    aggregator: AggregationEngine = Depends(get_aggregator),
):
    return {"success": True, "data": aggregator.realtime(profile_id)}


@router.get("/profile")
def profile_analytics(
    time_range: str = Query(DEFAULT_TIME_RANGE, alias="timeRange"),
    profile_id: str = Depends(get_current_profile_id),
    aggregator: AggregationEngine = Depends(get_aggregator),
):
    return {"success": True, "data": aggregator.profile_report(profile_id, time_range)}


@router.get("/links")
def links_analytics(
    time_range: str = Query(DEFAULT_TIME_RANGE, alias="timeRange"),
    profile_id: str = Depends(get_current_profile_id),
    aggregator: AggregationEngine = Depends(get_aggregator),
):
    return {"success": True, "data": aggregator.links_report(profile_id, time_range)}


@router.get("/top-links")
def top_links(
    limit: int = Query(5, ge=1, le=50),
    days: int = Query(30, ge=1, le=365),
    profile_id: str = Depends(get_current_profile_id),
    aggregator: AggregationEngine = Depends(get_aggregator),
):
    return {"success": True, "data": aggregator.top_links(profile_id, limit=limit, days=days)}


@router.get("/links/{link_id}")
def link_analytics(
    link_id: str,
    time_range: str = Query(DEFAULT_TIME_RANGE, alias="timeRange"),
    profile_id: str = Depends(get_current_profile_id),
    aggregator: AggregationEngine = Depends(get_aggregator),
    db: Session = Depends(get_db),
):
    link = get_link(db, profile_id, link_id)
    if not link:
        raise NotFoundError("Link not found")

    return {
        "success": True,
        "data": {
            "link": {"id": link.id, "title": link.title, "url": link.url},
            "analytics": aggregator.link_report(link.id, time_range),
        },
    }
