import re
from typing import Optional
from urllib.parse import urlparse

from fastapi import Request

from lumilink.core.utils import get_client_ip
from lumilink.schemas.analytics import (
    TrackedEvent, VisitorInfo, DeviceInfo, LocationInfo, ReferrerInfo
)

# Checked in order: the first pattern that matches wins.
DEVICE_PATTERNS = (
    ("tablet", re.compile(r"tablet|ipad|playbook|silk", re.IGNORECASE)),
    ("mobile", re.compile(
        r"mobile|iphone|ipod|android|blackberry|opera|mini|windows\sce|palm|smartphone|iemobile",
        re.IGNORECASE,
    )),
)

KNOWN_SOURCES = ("google", "facebook", "twitter", "instagram", "linkedin")


def detect_device_type(user_agent: Optional[str]) -> str:
    if not user_agent:
        return "unknown"
    for device, pattern in DEVICE_PATTERNS:
        if pattern.search(user_agent):
            return device
    return "desktop"


def extract_referrer_source(referrer: Optional[str]) -> str:
    """Normalizes a referrer URL to a traffic source label."""
    if not referrer:
        return "direct"
    try:
        hostname = urlparse(referrer).hostname
    except ValueError:
        return "unknown"
    if not hostname:
        return "unknown"

    hostname = hostname.lower()
    for source in KNOWN_SOURCES:
        if source in hostname:
            return source
    return hostname


def get_visitor_info(request: Request) -> VisitorInfo:
    headers = request.headers
    return VisitorInfo(
        ip_address=get_client_ip(request),
        user_agent=headers.get("User-Agent", ""),
        referrer=headers.get("Referer", ""),
        platform=headers.get("sec-ch-ua-platform"),
        mobile=headers.get("sec-ch-ua-mobile") == "?1",
        timezone=headers.get("timezone"),
    )


def apply_visitor_defaults(event: TrackedEvent, visitor: VisitorInfo, session_id: Optional[str] = None) -> TrackedEvent:
    """
    Fills what the event leaves out from the request it arrived on and builds
    the typed metadata blocks. Values sent with the event always win.
    """
    user_agent = event.user_agent or visitor.user_agent
    referrer = event.referrer or visitor.referrer
    sent_device = event.device_info or DeviceInfo()
    sent_location = event.location_info or LocationInfo()
    sent_referrer = event.referrer_info or ReferrerInfo()

    device_info = sent_device.model_copy(update={
        "user_agent": user_agent or None,
        "platform": visitor.platform or sent_device.platform,
        "mobile": visitor.mobile or sent_device.mobile,
    })
    location_info = sent_location.model_copy(update={
        "timezone": visitor.timezone or sent_location.timezone,
    })
    referrer_info = sent_referrer.model_copy(update={
        "referrer": referrer or None,
        "source": extract_referrer_source(referrer),
    })

    return event.model_copy(update={
        "session_id": event.session_id or session_id,
        "ip_address": event.ip_address or visitor.ip_address,
        "user_agent": user_agent,
        "referrer": referrer,
        "device_type": event.device_type or detect_device_type(user_agent),
        "device_info": device_info,
        "location_info": location_info,
        "referrer_info": referrer_info,
    })
