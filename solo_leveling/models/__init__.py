"""SQLAlchemy models and declarative base."""

from solo_leveling.models.base import Base  # noqa: F401
from solo_leveling.models.entities import (  # noqa: F401
    AdminActionLog,
    FeatureFlag,
    PerformanceLog,
    SystemErrorLog,
    SystemSetting,
    User,
    UserAnalyticsEvent,
    UserSession,
)

__all__ = [
    "Base",
    "User",
    "SystemSetting",
    "FeatureFlag",
    "AdminActionLog",
    "PerformanceLog",
    "UserAnalyticsEvent",
    "SystemErrorLog",
    "UserSession",
]
