from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

# Request/response bodies speak camelCase (dashboard + tracking snippet);
# Python code uses the snake_case field names.

class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# --- Visitor metadata sub-structures (stored as JSON, never interpreted) ---
class DeviceInfo(CamelModel):
    user_agent: Optional[str] = None
    platform: Optional[str] = None   # sec-ch-ua-platform
    mobile: bool = False             # sec-ch-ua-mobile == "?1"
    viewport: Optional[str] = None
    screen: Optional[str] = None
    color_depth: Optional[int] = None
    pixel_ratio: Optional[float] = None


class LocationInfo(CamelModel):
    timezone: str = "UTC"
    language: str = "en"
    languages: List[str] = Field(default_factory=lambda: ["en"])


class ReferrerInfo(CamelModel):
    referrer: Optional[str] = None
    source: str = "direct"
    page_url: Optional[str] = None
    click_time: Optional[str] = None
    share_method: Optional[str] = None
    share_target: Optional[str] = None


# --- Ingestion ---
class TrackedEvent(CamelModel):
    """One raw event as sent by the tracking snippet. Unknown event types are corrected later, not rejected here."""
    event_type: Optional[str] = "view"
    profile_id: Optional[str] = None
    link_id: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    device_type: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    device_info: Optional[DeviceInfo] = None
    location_info: Optional[LocationInfo] = None
    referrer_info: Optional[ReferrerInfo] = None


class TrackRequest(TrackedEvent):
    batch_events: List[TrackedEvent] = Field(default_factory=list)


class VisitorInfo(CamelModel):
    """Ambient request metadata used to fill the fields an event leaves out."""
    ip_address: str = "127.0.0.1"
    user_agent: str = ""
    referrer: str = ""
    platform: Optional[str] = None
    mobile: bool = False
    timezone: Optional[str] = None


class EventOut(CamelModel):
    id: str
    profile_id: str
    link_id: Optional[str] = None
    event_type: str
    ip_address: Optional[str] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    device_type: Optional[str] = None
    session_id: Optional[str] = None
    device_info: Optional[dict] = None
    location_info: Optional[dict] = None
    referrer_info: Optional[dict] = None
    created_at: datetime
