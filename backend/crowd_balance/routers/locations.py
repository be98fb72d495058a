"""Location routes: crowd reports, activity feeds and location admin.

Endpoints:
    GET    /locations                        Active locations with scores
    POST   /locations                        Create location
    POST   /locations/maintenance/sweep      Run one retention sweep now
    PATCH  /locations/{id}/crowd             Append a crowd report
    GET    /locations/{id}/activities        Raw activity feed + scores
    DELETE /locations/{id}/activities        Clear the activity feed
    GET    /locations/{id}/organizers        Location + assigned organizers
    DELETE /locations/{id}/purge             Hard delete
    GET    /locations/{id}                   One location with scores
    PUT    /locations/{id}                   Edit name / capacity / isActive
    DELETE /locations/{id}                   Soft delete
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from crowd_balance.database import get_db
from crowd_balance.schemas.common import ApiResponse
from crowd_balance.schemas.location import (
    ActivityFeedOut,
    ClearActivitiesOut,
    CrowdReport,
    LocationCreate,
    LocationOut,
    LocationUpdate,
    LocationWithOrganizers,
    SweepReportOut,
)
from crowd_balance.services import locations as service
from crowd_balance.services.retention import RetentionSweeper

router = APIRouter()


def get_sweeper(request: Request) -> RetentionSweeper:
    sweeper = getattr(request.app.state, "sweeper", None)
    if sweeper is None:
        raise HTTPException(status_code=503, detail="Retention sweeper not available")
    return sweeper


@router.get("", response_model=ApiResponse[list[LocationOut]])
async def list_locations(db: AsyncSession = Depends(get_db)):
    return ApiResponse(data=await service.list_active_locations(db))


@router.post(
    "",
    response_model=ApiResponse[LocationOut],
    status_code=status.HTTP_201_CREATED,
)
async def create_location(body: LocationCreate, db: AsyncSession = Depends(get_db)):
    location = await service.create_location(db, body)
    return ApiResponse(message="Location added successfully", data=location)


@router.post("/maintenance/sweep", response_model=ApiResponse[SweepReportOut])
async def run_sweep(sweeper: RetentionSweeper = Depends(get_sweeper)):
    """Trigger a retention sweep outside the schedule (operations use)."""
    report = await sweeper.run_once()
    if report is None:
        raise HTTPException(status_code=409, detail="A sweep is already in progress")
    return ApiResponse(
        message=f"Removed {report.entries_removed} expired activities",
        data=SweepReportOut.model_validate(report),
    )


@router.patch("/{location_id}/crowd", response_model=ApiResponse[LocationOut])
async def report_crowd(
    location_id: str,
    body: CrowdReport,
    db: AsyncSession = Depends(get_db),
):
    location = await service.record_crowd_report(
        db, location_id, body.crowd_level, body.organizer_id
    )
    return ApiResponse(
        message=(
            f"{body.crowd_level} crowd level updated successfully. "
            f"Total reports: {location.total_score}"
        ),
        data=location,
    )


@router.get("/{location_id}/activities", response_model=ApiResponse[ActivityFeedOut])
async def get_activities(location_id: str, db: AsyncSession = Depends(get_db)):
    return ApiResponse(data=await service.activity_feed(db, location_id))


@router.delete("/{location_id}/activities", response_model=ApiResponse[ClearActivitiesOut])
async def clear_activities(location_id: str, db: AsyncSession = Depends(get_db)):
    result = await service.clear_activities(db, location_id)
    return ApiResponse(
        message=(
            f"Successfully cleared {result.cleared_activities} activity reports "
            f"from {result.location_name}"
        ),
        data=result,
    )


@router.get("/{location_id}/organizers", response_model=ApiResponse[LocationWithOrganizers])
async def get_location_organizers(location_id: str, db: AsyncSession = Depends(get_db)):
    return ApiResponse(data=await service.read_location_with_organizers(db, location_id))


@router.delete("/{location_id}/purge", response_model=ApiResponse[dict])
async def purge_location(location_id: str, db: AsyncSession = Depends(get_db)):
    """Remove a location and its log permanently."""
    name = await service.hard_delete_location(db, location_id)
    return ApiResponse(
        message=f"Location {name} permanently deleted",
        data={"locationId": location_id},
    )


@router.get("/{location_id}", response_model=ApiResponse[LocationOut])
async def get_location(location_id: str, db: AsyncSession = Depends(get_db)):
    return ApiResponse(data=await service.read_location(db, location_id))


@router.put("/{location_id}", response_model=ApiResponse[LocationOut])
async def update_location(
    location_id: str,
    body: LocationUpdate,
    db: AsyncSession = Depends(get_db),
):
    location = await service.update_location(db, location_id, body)
    return ApiResponse(message="Location updated successfully", data=location)


@router.delete("/{location_id}", response_model=ApiResponse[dict])
async def delete_location(location_id: str, db: AsyncSession = Depends(get_db)):
    """Soft delete: hidden from listings, still reachable by id."""
    await service.soft_delete_location(db, location_id)
    return ApiResponse(
        message="Location deleted successfully",
        data={"locationId": location_id},
    )
