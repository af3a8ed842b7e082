from typing import Optional


class AnalyticsError(Exception):
    """Base class for analytics and badge pipeline failures."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidEventError(AnalyticsError):
    status_code = 400


class NotFoundError(AnalyticsError):
    status_code = 404


class ProfileNotFoundError(NotFoundError):
    def __init__(self, message: str = "Profile not found"):
        super().__init__(message)


class BadgeNotFoundError(NotFoundError):
    def __init__(self, badge_id: str):
        super().__init__(f"Badge not found: {badge_id}")
        self.badge_id = badge_id


class StoreError(AnalyticsError):
    """
    A persistence failure, carrying the driver code/detail so it can be logged
    with the same fields the hosted store reports.
    """

    def __init__(self, message: str, code: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.detail = detail

    @classmethod
    def wrap(cls, action: str, exc: Exception) -> "StoreError":
        orig = getattr(exc, "orig", None)
        code = getattr(exc, "code", None) or getattr(orig, "pgcode", None)
        return cls(f"{action} failed", code=code, detail=str(orig or exc))
