"""Pydantic schemas for locations, crowd reports and activity feeds."""

from pydantic import Field, field_validator

from crowd_balance.schemas.common import CamelModel, UTCDateTime


def _clean_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Location name is required")
    return value


# ── Input ────────────────────────────────────────────────────

class LocationCreate(CamelModel):
    name: str = Field(..., max_length=255)
    capacity: int = Field(..., gt=0)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _clean_name(v)


class LocationUpdate(CamelModel):
    """Editable attributes. Crowd scores are derived, so there is no field
    for them; any score keys in a request body are dropped on parse."""

    name: str | None = Field(None, max_length=255)
    capacity: int | None = Field(None, gt=0)
    is_active: bool | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str | None) -> str | None:
        return _clean_name(v) if v is not None else v


class CrowdReport(CamelModel):
    # Validated against CrowdLevel in the service so the error message
    # matches what organizers' clients expect.
    crowd_level: str
    organizer_id: str | None = Field(None, max_length=100)


# ── Output ───────────────────────────────────────────────────

class ActivityEntryOut(CamelModel):
    id: int
    crowd_level: str
    timestamp: UTCDateTime
    organizer_id: str


class ScoresOut(CamelModel):
    min_crowd_score: int
    moderate_crowd_score: int
    max_crowd_score: int
    total: int


class LocationOut(CamelModel):
    id: str
    name: str
    capacity: int
    is_active: bool
    last_updated: UTCDateTime
    created_at: UTCDateTime | None
    updated_at: UTCDateTime | None
    activity_log: list[ActivityEntryOut] = []

    # Derived from activity_log on every read
    min_crowd_score: int
    moderate_crowd_score: int
    max_crowd_score: int
    total_score: int


class OrganizerOut(CamelModel):
    id: str
    name: str
    email: str
    phone: str | None
    user_type: str
    assigned_hall: str | None
    status: str | None


class LocationWithOrganizers(LocationOut):
    organizers: list[OrganizerOut] = []


class ActivityFeedOut(CamelModel):
    location_name: str
    activities: list[ActivityEntryOut]
    calculated_scores: ScoresOut
    last_updated: UTCDateTime


class ClearActivitiesOut(CamelModel):
    location_id: str
    location_name: str
    cleared_activities: int
    last_updated: UTCDateTime
    # Over whatever survived the clear (reports that landed mid-clear)
    calculated_scores: ScoresOut


class SweepFailureOut(CamelModel):
    location_id: str
    location_name: str
    error: str


class SweepReportOut(CamelModel):
    started_at: UTCDateTime
    finished_at: UTCDateTime | None
    cutoff: UTCDateTime
    locations_scanned: int
    locations_pruned: int
    entries_removed: int
    failures: list[SweepFailureOut] = []
    aborted: bool = False
