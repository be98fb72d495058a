"""Read-only view of the user directory.

User CRUD and authentication belong to a separate service; this model only
exists so locations can resolve the organizers assigned to them.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from crowd_balance.database import Base
from crowd_balance.utils.clock import utcnow


class UserType(str, enum.Enum):
    ORGANIZER = "Organizer"
    PANEL = "Panel"


class OrganizerStatus(str, enum.Enum):
    AVAILABLE = "Available"
    BUSY = "Busy"


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Organizer | Panel
    user_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    # Organizer-only fields
    phone: Mapped[str | None] = mapped_column(String(50))
    # Location.name of the hall this organizer reports for (name-based join)
    assigned_hall: Mapped[str | None] = mapped_column(String(255), index=True)
    status: Mapped[str | None] = mapped_column(
        String(20), default=OrganizerStatus.AVAILABLE.value
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
