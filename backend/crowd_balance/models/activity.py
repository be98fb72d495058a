"""ActivityEntry: one crowd-level observation in a location's log.

Rows are only ever inserted by crowd reports and removed by the retention
sweeper or an explicit clear. The auto-increment id is the insertion order.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from crowd_balance.database import Base
from crowd_balance.utils.clock import utcnow


class ActivityEntry(Base):
    __tablename__ = "location_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("locations.id", ondelete="CASCADE"), nullable=False
    )
    # min | moderate | max (stored as text, see services.scores)
    crowd_level: Mapped[str] = mapped_column(String(20), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    organizer_id: Mapped[str] = mapped_column(
        String(100), default="organizer", nullable=False
    )

    __table_args__ = (
        Index("ix_location_activities_location_ts", "location_id", "timestamp"),
        # ids are never reused, even on SQLite
        {"sqlite_autoincrement": True},
    )
