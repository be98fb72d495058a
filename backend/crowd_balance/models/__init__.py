"""Aggregate model imports for Alembic auto-detection."""

from crowd_balance.models.location import Location  # noqa: F401
from crowd_balance.models.activity import ActivityEntry  # noqa: F401
from crowd_balance.models.user import OrganizerStatus, User, UserType  # noqa: F401

__all__ = ["Location", "ActivityEntry", "User", "UserType", "OrganizerStatus"]
