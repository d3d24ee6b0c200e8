from fastapi import APIRouter, BackgroundTasks, Depends, Request

from giftlists.api.deps import SessionFactoryDep, ViewerIdDep, require_csrf
from giftlists.core.audit import AuditAction, audit_reservation_action, client_ip
from giftlists.schemas.reservation import (
    ErrorResponse,
    ReserveRequest,
    ReserveResponse,
    UnreserveRequest,
    UnreserveResponse,
)
from giftlists.services.errors import Forbidden, ReservationError
from giftlists.services.notifications import notification_dispatcher
from giftlists.services.reservations import ReservationService, ReserveCommand, UnreserveCommand


router = APIRouter(
    prefix="/api/v1/gifts",
    tags=["gifts"],
    dependencies=[Depends(require_csrf)],
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)


def get_reservation_service(session_factory: SessionFactoryDep) -> ReservationService:
    return ReservationService(session_factory)


@router.post("/reserve", response_model=ReserveResponse)
async def reserve_gift(
    payload: ReserveRequest,
    request: Request,
    viewer_id: ViewerIdDep,
    session_factory: SessionFactoryDep,
    background_tasks: BackgroundTasks,
    service: ReservationService = Depends(get_reservation_service),
) -> ReserveResponse:
    command = ReserveCommand(
        gift_id=payload.gift_id,
        reserver_id=viewer_id,
        display_name=payload.reserver_name,
        email=str(payload.reserver_email) if payload.reserver_email else None,
        message=payload.message,
        anonymous=payload.anonymous,
        ip_address=client_ip(request),
    )
    try:
        result = await service.reserve(command)
    except ReservationError as exc:
        audit_reservation_action(
            AuditAction.GIFT_RESERVE,
            request,
            viewer_id,
            payload.gift_id,
            details={"code": exc.code, "reason": exc.reason},
            success=False,
        )
        raise

    audit_reservation_action(
        AuditAction.GIFT_RESERVE,
        request,
        viewer_id,
        result.gift_id,
        details={"reservation_id": result.reservation_id, "anonymous": payload.anonymous},
    )
    if result.notification_id is not None:
        background_tasks.add_task(notification_dispatcher.deliver, session_factory, result.notification_id)

    return ReserveResponse(reservation_id=result.reservation_id, gift_id=result.gift_id)


@router.post("/unreserve", response_model=UnreserveResponse)
async def unreserve_gift(
    payload: UnreserveRequest,
    request: Request,
    viewer_id: ViewerIdDep,
    session_factory: SessionFactoryDep,
    background_tasks: BackgroundTasks,
    service: ReservationService = Depends(get_reservation_service),
) -> UnreserveResponse:
    command = UnreserveCommand(
        gift_id=payload.gift_id,
        caller_id=viewer_id,
        reason=payload.reason,
        ip_address=client_ip(request),
    )
    try:
        result = await service.unreserve(command)
    except Forbidden as exc:
        audit_reservation_action(
            AuditAction.UNRESERVE_FORBIDDEN,
            request,
            viewer_id,
            payload.gift_id,
            details={"code": exc.code},
            success=False,
        )
        raise
    except ReservationError as exc:
        audit_reservation_action(
            AuditAction.GIFT_UNRESERVE,
            request,
            viewer_id,
            payload.gift_id,
            details={"code": exc.code, "reason": exc.reason},
            success=False,
        )
        raise

    audit_reservation_action(
        AuditAction.GIFT_UNRESERVE,
        request,
        viewer_id,
        result.gift_id,
        details={"reservation_id": result.reservation_id, "by_list_owner": result.by_list_owner},
    )
    if result.notification_id is not None:
        background_tasks.add_task(notification_dispatcher.deliver, session_factory, result.notification_id)

    return UnreserveResponse(gift_id=result.gift_id)
