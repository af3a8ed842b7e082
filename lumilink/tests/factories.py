import uuid
from datetime import datetime

from lumilink.core.jwt import create_access_token
from lumilink.db.models.analytics import AnalyticsEvent
from lumilink.db.models.profile import Profile, Link

NOW = datetime(2024, 5, 15, 12, 0, 0)


class FixedClock:
    """Settable clock for the engines; defaults to NOW."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def create_profile(db, user_id=None, links=0, social_links=0) -> Profile:
    profile = Profile(user_id=user_id or f"user-{uuid.uuid4()}", username="tester")
    for i in range(links):
        profile.links.append(Link(title=f"Link {i}", url=f"https://example.com/{i}"))
    for i in range(social_links):
        profile.links.append(Link(title=f"Social {i}", url=f"https://social.example/{i}", is_social=True))
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def add_event(db, profile_id, event_type="view", created_at=NOW, **fields) -> AnalyticsEvent:
    event = AnalyticsEvent(profile_id=profile_id, event_type=event_type, created_at=created_at, **fields)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def auth_headers(user_id: str) -> dict:
    token = create_access_token({"sub": user_id})
    return {"Authorization": f"Bearer {token}"}
