"""Time clock endpoints - shifts, breaks, corrections and cap review."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.database import get_database
from app.errors import (
    ConflictError,
    IllegalTransitionError,
    NotFoundError,
    TimeClockError,
    ValidationError,
)
from app.models.time_entry import (
    ClockInRequest,
    ClockOutRequest,
    CorrectionResult,
    ForgotClockOutRequest,
    ResolveFlagRequest,
    TimeClockStatus,
    TimeEntry,
)
from app.models.user import CurrentUser
from app.routers.auth import get_current_user, require_manager
from app.services.time_clock_service import TimeClockService


router = APIRouter(prefix="/time-clock", tags=["time-clock"])

_STATUS_BY_ERROR = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    IllegalTransitionError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
}


def to_http_error(error: TimeClockError) -> HTTPException:
    """Map a domain error onto an HTTP error response."""
    status_code = _STATUS_BY_ERROR.get(type(error), status.HTTP_400_BAD_REQUEST)
    detail: dict | str = str(error)
    if isinstance(error, ConflictError) and error.entry_id:
        detail = {"message": str(error), "entry_id": error.entry_id}
    return HTTPException(status_code=status_code, detail=detail)


async def get_time_clock_service(db=Depends(get_database)) -> TimeClockService:
    """Dependency building the time clock service for a request."""
    return TimeClockService(db)


@router.post("/clock-in", response_model=TimeEntry, status_code=status.HTTP_201_CREATED)
async def clock_in(
    request: ClockInRequest,
    user: CurrentUser = Depends(get_current_user),
    service: TimeClockService = Depends(get_time_clock_service),
):
    """
    Clock in.

    - An open entry is clocked out automatically
    - Blocked (409) while the open entry is over the cap and unreviewed
    """
    try:
        return await service.clock_in(user_id=user.id, job_id=request.job_id)
    except TimeClockError as e:
        raise to_http_error(e)


@router.post("/break/start", response_model=TimeEntry)
async def start_break(
    user: CurrentUser = Depends(get_current_user),
    service: TimeClockService = Depends(get_time_clock_service),
):
    """Start a break on the open entry."""
    try:
        return await service.start_break(user_id=user.id)
    except TimeClockError as e:
        raise to_http_error(e)


@router.post("/break/end", response_model=TimeEntry)
async def end_break(
    user: CurrentUser = Depends(get_current_user),
    service: TimeClockService = Depends(get_time_clock_service),
):
    """End the running break."""
    try:
        return await service.end_break(user_id=user.id)
    except TimeClockError as e:
        raise to_http_error(e)


@router.post("/clock-out", response_model=TimeEntry)
async def clock_out(
    request: Optional[ClockOutRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    service: TimeClockService = Depends(get_time_clock_service),
):
    """
    Clock out of the open entry.

    - The body is optional; its notes are appended to the entry
    """
    notes = request.notes if request else ""
    try:
        return await service.clock_out(user_id=user.id, notes=notes)
    except TimeClockError as e:
        raise to_http_error(e)


@router.post("/forgot-clock-out", response_model=CorrectionResult)
async def forgot_clock_out(
    request: ForgotClockOutRequest,
    user: CurrentUser = Depends(get_current_user),
    service: TimeClockService = Depends(get_time_clock_service),
):
    """
    Close the open entry at the time work actually ended.

    - actual_end_time must lie between clock-in and now
    - The previously recorded hours are kept on the entry for audit
    """
    try:
        return await service.forgot_clock_out(
            user_id=user.id,
            actual_end_time=request.actual_end_time,
            note=request.note,
        )
    except TimeClockError as e:
        raise to_http_error(e)


@router.get("/status", response_model=TimeClockStatus)
async def get_status(
    user: CurrentUser = Depends(get_current_user),
    service: TimeClockService = Depends(get_time_clock_service),
):
    """Open entry, live net work time and cap warnings."""
    return await service.get_status(user_id=user.id)


@router.get("/entries", response_model=list[TimeEntry])
async def list_entries(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    service: TimeClockService = Depends(get_time_clock_service),
):
    """List the caller's entries, most recent first."""
    return await service.list_entries(
        user_id=user.id,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/entries/{entry_id}", response_model=TimeEntry)
async def get_entry(
    entry_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: TimeClockService = Depends(get_time_clock_service),
):
    """Get one of the caller's entries."""
    try:
        return await service.get_entry(user_id=user.id, entry_id=entry_id)
    except TimeClockError as e:
        raise to_http_error(e)


@router.get("/flagged", response_model=list[TimeEntry])
async def list_flagged_entries(
    manager: CurrentUser = Depends(require_manager),
    service: TimeClockService = Depends(get_time_clock_service),
):
    """Entries over the cap awaiting review. Managers only."""
    return await service.list_flagged_entries()


@router.post("/entries/{entry_id}/resolve", response_model=TimeEntry)
async def resolve_flagged_entry(
    entry_id: str,
    request: ResolveFlagRequest,
    manager: CurrentUser = Depends(require_manager),
    service: TimeClockService = Depends(get_time_clock_service),
):
    """
    Mark an over-cap entry as reviewed.

    - Managers only
    - Only OVER_CAP entries can be resolved (409 otherwise)
    """
    try:
        return await service.resolve_flagged_entry(
            entry_id=entry_id,
            note=f"[{manager.id}] {request.note}",
        )
    except TimeClockError as e:
        raise to_http_error(e)
