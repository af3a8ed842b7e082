from fastapi.testclient import TestClient

from lumilink.db.models.analytics import AnalyticsEvent
from lumilink.main import app
from lumilink.tests.factories import create_profile, auth_headers

VISITOR = {"X-Forwarded-For": "203.0.113.10", "User-Agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0) Mobile"}


def test_repeated_views_are_stored_once(client, db):
    profile = create_profile(db, user_id="owner-1")

    responses = [
        client.post("/api/analytics/track", json={"eventType": "view", "profileId": profile.id}, headers=VISITOR)
        for _ in range(3)
    ]

    assert all(r.status_code == 200 for r in responses)
    assert [r.json()["skipped"] for r in responses] == [False, True, True]
    assert [r.json()["eventsTracked"] for r in responses] == [1, 0, 0]
    assert db.query(AnalyticsEvent).count() == 1

    stored = responses[0].json()["analytics"][0]
    assert stored["ipAddress"] == "203.0.113.10"
    assert stored["deviceType"] == "mobile"

def test_first_view_reports_new_badges(client, db):
    profile = create_profile(db, user_id="owner-1")

    response = client.post("/api/analytics/track", json={"profileId": profile.id}, headers=VISITOR)

    updates = response.json()["badgeUpdates"]
    assert {badge["id"] for badge in updates["newBadges"]} == {"first-view", "welcome"}
    assert updates["totalBadges"] == 2

def test_track_requires_profile_id(client, db):
    response = client.post("/api/analytics/track", json={"eventType": "view"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "profile_id is required"}

def test_track_batch(client, db):
    profile = create_profile(db, user_id="owner-1")

    response = client.post("/api/analytics/track", headers=VISITOR, json={
        "sessionId": "session-1",
        "batchEvents": [
            {"eventType": "view", "profileId": profile.id},
            {"eventType": "view", "profileId": profile.id},
            {"eventType": "click"},
            {"eventType": "click", "profileId": profile.id},
        ],
    })

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["eventsTracked"] == 2
    assert body["eventsSkipped"] == 1
    assert body["eventsFailed"] == 1
    assert [item["status"] for item in body["results"]] == ["inserted", "skipped", "failed", "inserted"]
    assert all(event["sessionId"] == "session-1" for event in body["analytics"])

def test_overview_after_view_and_click(client, db):
    profile = create_profile(db, user_id="owner-1")
    client.post("/api/analytics/track", json={"eventType": "view", "profileId": profile.id}, headers=VISITOR)
    client.post("/api/analytics/track", json={"eventType": "click", "profileId": profile.id}, headers=VISITOR)

    response = client.get("/api/analytics/dashboard/overview", headers=auth_headers("owner-1"))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["profileViews"]["total"] == 1
    assert data["linkClicks"]["total"] == 1
    assert data["conversionRate"] == "100.0"
    assert data["devices"]["mobile"] == 1
    assert data["timeRange"] == "7d"

def test_overview_alias_and_time_range(client, db):
    create_profile(db, user_id="owner-1")

    response = client.get("/api/analytics/overview?timeRange=30d", headers=auth_headers("owner-1"))

    assert response.status_code == 200
    assert response.json()["data"]["timeRange"] == "30d"

def test_overview_requires_authentication(client, db):
    response = client.get("/api/analytics/dashboard/overview")
    assert response.status_code == 401

def test_overview_without_profile(client, db):
    response = client.get("/api/analytics/dashboard/overview", headers=auth_headers("no-profile-user"))

    assert response.status_code == 404
    assert response.json()["message"] == "Profile not found"

def test_token_in_cookie_is_accepted(db):
    create_profile(db, user_id="owner-1")
    token = auth_headers("owner-1")["Authorization"].split(" ", 1)[1]
    client = TestClient(app, cookies={"access_token": token})

    response = client.get("/api/analytics/realtime")

    assert response.status_code == 200
    assert response.json()["data"]["activeUsers"] == 0

def test_realtime_counts_recent_events(client, db):
    profile = create_profile(db, user_id="owner-1")
    client.post("/api/analytics/track", json={"eventType": "view", "profileId": profile.id}, headers=VISITOR)

    data = client.get("/api/analytics/realtime", headers=auth_headers("owner-1")).json()["data"]

    assert data["recentViews"] == 1
    assert data["lastUpdated"].endswith("Z")

def test_profile_and_links_reports(client, db):
    profile = create_profile(db, user_id="owner-1", links=1)
    link_id = profile.links[0].id
    client.post("/api/analytics/track", json={"eventType": "click", "profileId": profile.id, "linkId": link_id}, headers=VISITOR)

    headers = auth_headers("owner-1")
    assert client.get("/api/analytics/profile", headers=headers).json()["data"]["profileViews"]["total"] == 0
    assert client.get("/api/analytics/links", headers=headers).json()["data"]["linkClicks"]["total"] == 1

    top = client.get("/api/analytics/top-links", headers=headers).json()["data"]
    assert top[0]["linkId"] == link_id
    assert top[0]["clicks"] == 1

    single = client.get(f"/api/analytics/links/{link_id}", headers=headers).json()["data"]
    assert single["link"]["id"] == link_id
    assert single["analytics"]["totalClicks"] == 1

def test_link_analytics_for_foreign_link(client, db):
    create_profile(db, user_id="owner-1")
    other = create_profile(db, user_id="owner-2", links=1)

    response = client.get(f"/api/analytics/links/{other.links[0].id}", headers=auth_headers("owner-1"))

    assert response.status_code == 404
    assert response.json()["message"] == "Link not found"

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
