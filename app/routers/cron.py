"""Scheduler endpoints - periodic soft cap evaluation."""
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status

from app.config import settings
from app.models.time_entry import SweepReport
from app.routers.time_clock import get_time_clock_service
from app.services.time_clock_service import TimeClockService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


async def verify_cron_secret(authorization: str | None = Header(None)) -> None:
    """
    Dependency checking the scheduler's bearer secret, when one is configured.

    Raises:
        HTTPException: If the secret does not match (401)
    """
    if not settings.cron_secret:
        return
    if authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


@router.api_route(
    "/soft-cap-evaluation",
    methods=["GET", "POST"],
    response_model=SweepReport,
    dependencies=[Depends(verify_cron_secret)],
)
async def soft_cap_evaluation(
    service: TimeClockService = Depends(get_time_clock_service),
):
    """
    Flag open entries that crossed their cap.

    - Meant to be hit every few minutes by an external scheduler
    - Per-entry failures are listed in ``errors``; the sweep still completes
    """
    report = await service.sweep_open_entries()
    if report.errors:
        logger.warning(
            "Soft cap sweep finished with errors",
            extra={"errors": report.errors},
        )
    return report
