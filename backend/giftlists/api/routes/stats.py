from typing import Annotated

from fastapi import APIRouter, Depends, Query

from giftlists.api.deps import DbSessionDep, get_current_viewer_id
from giftlists.schemas.reservation import ErrorResponse, ReservationStats
from giftlists.services.stats import reservation_stats


router = APIRouter(prefix="/api/v1/stats", tags=["stats"])


@router.get(
    "/reservations",
    response_model=ReservationStats,
    responses={403: {"model": ErrorResponse}},
)
async def get_reservation_stats(
    db: DbSessionDep,
    owner_id: Annotated[int, Depends(get_current_viewer_id)],
    list_id: Annotated[int | None, Query(gt=0)] = None,
) -> ReservationStats:
    stats = await reservation_stats(db, owner_id, list_id)
    return ReservationStats(**stats)
