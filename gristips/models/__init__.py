"""SQLAlchemy models."""

from gristips.models.automation import Automation, AutomationStatus, AutomationType
from gristips.models.base import Base
from gristips.models.user import User

__all__ = [
    "Base",
    "User",
    "Automation",
    "AutomationStatus",
    "AutomationType",
]
