import pytest
from datetime import timedelta
from unittest.mock import MagicMock

from lumilink.core.errors import InvalidEventError, StoreError
from lumilink.db.models.analytics import AnalyticsEvent
from lumilink.schemas.analytics import TrackedEvent
from lumilink.services.aggregation import AggregationEngine
from lumilink.services.gamification import BadgeRuleEngine, EvaluationResult
from lumilink.services.ingestion import (
    EventIngestionGateway, INSERTED, SKIPPED, FAILED, day_window
)
from lumilink.tests.factories import NOW, create_profile


@pytest.fixture
def gateway(store, clock):
    return EventIngestionGateway(store, clock=clock)


def view(profile_id, ip="1.1.1.1", **fields):
    return TrackedEvent(profile_id=profile_id, event_type="view", ip_address=ip, **fields)


def test_day_window():
    start, end = day_window(NOW)
    assert start == NOW.replace(hour=0, minute=0, second=0)
    assert end - start == timedelta(days=1)

def test_same_day_views_from_one_ip_are_deduplicated(db, gateway):
    profile = create_profile(db)

    statuses = [gateway.ingest(view(profile.id)).status for _ in range(3)]

    assert statuses == [INSERTED, SKIPPED, SKIPPED]
    assert db.query(AnalyticsEvent).count() == 1

def test_view_on_next_day_is_stored(db, gateway, clock):
    profile = create_profile(db)
    gateway.ingest(view(profile.id))

    clock.now = NOW.replace(hour=23, minute=59)
    assert gateway.ingest(view(profile.id)).skipped

    clock.now = NOW + timedelta(days=1)
    assert gateway.ingest(view(profile.id)).status == INSERTED

def test_views_from_other_ips_and_clicks_are_not_deduplicated(db, gateway):
    profile = create_profile(db)

    gateway.ingest(view(profile.id, ip="1.1.1.1"))
    assert gateway.ingest(view(profile.id, ip="2.2.2.2")).status == INSERTED
    for _ in range(2):
        result = gateway.ingest(TrackedEvent(profile_id=profile.id, event_type="click", ip_address="1.1.1.1"))
        assert result.status == INSERTED

    assert db.query(AnalyticsEvent).count() == 4

def test_views_without_ip_are_always_stored(db, gateway):
    profile = create_profile(db)

    gateway.ingest(view(profile.id, ip=None))
    gateway.ingest(view(profile.id, ip=None))

    assert db.query(AnalyticsEvent).count() == 2

def test_invalid_event_type_is_coerced_to_view(db, gateway):
    profile = create_profile(db)

    result = gateway.ingest(TrackedEvent(profile_id=profile.id, event_type="purchase", ip_address="9.9.9.9"))

    assert result.status == INSERTED
    assert result.event.event_type == "view"
    # The coerced view is subject to the same dedup rule
    assert gateway.ingest(view(profile.id, ip="9.9.9.9")).skipped

def test_missing_profile_id_is_rejected(gateway):
    with pytest.raises(InvalidEventError):
        gateway.ingest(TrackedEvent(event_type="view", ip_address="1.1.1.1"))

def test_stored_event_keeps_metadata(db, gateway):
    profile = create_profile(db)

    result = gateway.ingest(TrackedEvent.model_validate({
        "profileId": profile.id,
        "eventType": "click",
        "linkId": "link-1",
        "ipAddress": "5.5.5.5",
        "country": "VN",
        "deviceType": "mobile",
        "referrerInfo": {"source": "google", "pageUrl": "https://lumi.link/tester"},
    }))

    event = result.event
    assert event.created_at == NOW
    assert event.link_id == "link-1"
    assert event.country == "VN"
    assert event.referrer_info["source"] == "google"
    assert event.device_info == {}

def test_store_failure_fails_single_ingest():
    store = MagicMock()
    store.has_view.return_value = False
    store.insert_event.side_effect = StoreError("event insert failed", code="23503")
    gateway = EventIngestionGateway(store)

    with pytest.raises(StoreError):
        gateway.ingest(TrackedEvent(profile_id="p1", event_type="click"))

def test_batch_is_sequential_and_isolates_failures(db, gateway):
    profile = create_profile(db)

    batch = gateway.ingest_batch([
        view(profile.id),
        view(profile.id),
        TrackedEvent(event_type="click"),
        TrackedEvent(profile_id=profile.id, event_type="share"),
    ])

    assert [item.status for item in batch.items] == [INSERTED, SKIPPED, FAILED, INSERTED]
    assert batch.tracked == 2
    assert batch.skipped == 1
    assert batch.failed == 1
    assert batch.items[2].error == "profile_id is required"
    assert len(batch.events) == 2

def test_batch_continues_after_unexpected_error():
    store = MagicMock()
    store.has_view.return_value = False
    store.insert_event.side_effect = [RuntimeError("boom"), MagicMock(profile_id="p1")]
    gateway = EventIngestionGateway(store)

    batch = gateway.ingest_batch([
        TrackedEvent(profile_id="p1", event_type="click"),
        TrackedEvent(profile_id="p1", event_type="click"),
    ])

    assert [item.success for item in batch.items] == [False, True]
    assert batch.items[0].error == "Failed to track event"

def test_badge_failure_does_not_fail_ingestion(db, store, clock):
    profile = create_profile(db)
    badge_engine = MagicMock()
    badge_engine.evaluate.side_effect = RuntimeError("badge store down")
    gateway = EventIngestionGateway(store, badge_engine, clock=clock)

    result = gateway.ingest(view(profile.id))

    assert result.status == INSERTED
    assert result.badge_updates.new_badges == []
    assert db.query(AnalyticsEvent).count() == 1

def test_badges_are_evaluated_for_profile_owner(db, store, clock):
    profile = create_profile(db, user_id="owner-1")
    badge_engine = MagicMock()
    badge_engine.evaluate.return_value = EvaluationResult(newly_awarded=["first-view"], total_completed=1)
    gateway = EventIngestionGateway(store, badge_engine, clock=clock)

    result = gateway.ingest(view(profile.id))

    badge_engine.evaluate.assert_called_once_with("owner-1", profile.id)
    assert result.badge_updates.new_badges == ["first-view"]
    assert result.badge_updates.total_badges == 1

def test_skipped_view_does_not_evaluate_badges(db, store, clock):
    profile = create_profile(db, user_id="owner-1")
    badge_engine = MagicMock()
    badge_engine.evaluate.return_value = EvaluationResult()
    gateway = EventIngestionGateway(store, badge_engine, clock=clock)

    gateway.ingest(view(profile.id))
    gateway.ingest(view(profile.id))

    assert badge_engine.evaluate.call_count == 1

def test_batch_merges_badge_updates(db, store, clock):
    profile = create_profile(db, user_id="owner-1")
    engine = BadgeRuleEngine(store, AggregationEngine(store, clock=clock), clock=clock)
    gateway = EventIngestionGateway(store, engine, clock=clock)

    batch = gateway.ingest_batch([
        view(profile.id),
        TrackedEvent(profile_id=profile.id, event_type="click", ip_address="1.1.1.1"),
    ])

    awarded = sorted(badge.id for badge in batch.badge_updates.new_badges)
    assert awarded == ["first-click", "first-view", "welcome"]
    assert batch.badge_updates.total_badges == 3

def test_unknown_device_type_falls_back_to_user_agent(db, gateway):
    profile = create_profile(db)

    result = gateway.ingest(TrackedEvent(
        profile_id=profile.id,
        event_type="click",
        device_type="smartwatch-xl",
        user_agent="Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)",
    ))

    assert result.event.device_type == "tablet"

def test_device_type_is_kept_when_valid(db, gateway):
    profile = create_profile(db)

    kept = gateway.ingest(TrackedEvent(profile_id=profile.id, event_type="click", device_type="Desktop"))
    missing = gateway.ingest(TrackedEvent(profile_id=profile.id, event_type="click", device_type="fridge"))

    assert kept.event.device_type == "desktop"
    assert missing.event.device_type == "unknown"
