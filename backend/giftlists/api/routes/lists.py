import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from giftlists.api.deps import DbSessionDep, GrantStoreDep, SessionIdDep, ViewerIdDep, require_csrf
from giftlists.core.audit import audit_list_password, client_ip
from giftlists.db.repositories import GiftRepository, ListRepository, ReservationRepository
from giftlists.models.models import EventType, Gift, GiftList, GiftPriority, GiftStatus, PrivacyMode
from giftlists.schemas.gift_list import GiftListPublic, GiftPublic, UnlockRequest
from giftlists.services.access import AccessDecision, AccessResult, access_policy
from giftlists.services.events import event_recorder


logger = logging.getLogger("giftlists.lists")

router = APIRouter(prefix="/lists", tags=["lists"])

_PRIORITY_RANK = {
    GiftPriority.HIGH.value: 0,
    GiftPriority.MEDIUM.value: 1,
    GiftPriority.LOW.value: 2,
}


def _sort_gifts(gifts: list[Gift]) -> list[Gift]:
    # Highest priority first, newest first within a priority.
    by_newest = sorted(gifts, key=lambda gift: (gift.created_at is not None, gift.created_at), reverse=True)
    return sorted(by_newest, key=lambda gift: _PRIORITY_RANK.get(gift.priority, len(_PRIORITY_RANK)))


async def _serialize_list(db: AsyncSession, gift_list: GiftList, is_owner: bool) -> GiftListPublic:
    gifts = _sort_gifts(await GiftRepository(db).list_for_list(gift_list.id))
    active = await ReservationRepository(db).active_by_gift([gift.id for gift in gifts])

    items: list[GiftPublic] = []
    for gift in gifts:
        reservation = active.get(gift.id)
        is_reserved = gift.status == GiftStatus.RESERVED.value
        items.append(
            GiftPublic(
                id=gift.id,
                title=gift.title,
                description=gift.description,
                price=float(gift.price) if gift.price is not None else None,
                url=gift.url,
                image_url=gift.image_url,
                category=gift.category,
                priority=gift.priority,
                status=gift.status,
                is_reserved=is_reserved,
                reserved_by=reservation.name if reservation else None,
                reserved_at=reservation.reserved_at if reservation else None,
            )
        )

    total = len(items)
    reserved = sum(1 for item in items if item.is_reserved)
    return GiftListPublic(
        id=gift_list.id,
        slug=gift_list.slug,
        title=gift_list.title,
        description=gift_list.description,
        privacy=gift_list.privacy,
        status=gift_list.status,
        event_date=gift_list.event_date,
        is_owner=is_owner,
        gifts=items,
        total_gifts=total,
        reserved_gifts=reserved,
        reservation_percentage=round(reserved / total * 100) if total else 0,
    )


async def _render_allowed(
    request: Request,
    db: AsyncSession,
    gift_list: GiftList,
    viewer_id: int | None,
    access: AccessResult,
) -> GiftListPublic:
    payload = await _serialize_list(db, gift_list, access.is_owner)
    if access.is_owner:
        return payload
    # Serialized first: a failed savepoint expires the loaded rows.
    await event_recorder.record_best_effort(
        db,
        EventType.VIEWED,
        list_id=gift_list.id,
        actor_id=viewer_id,
        ip_address=client_ip(request),
    )
    return payload


@router.get("/{slug}", response_model=GiftListPublic)
async def view_list(
    slug: str,
    request: Request,
    db: DbSessionDep,
    viewer_id: ViewerIdDep,
    session_id: SessionIdDep,
    store: GrantStoreDep,
) -> GiftListPublic:
    gift_list = await ListRepository(db).get_by_slug(slug)
    if gift_list is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="List not found")

    grants = await store.load(session_id)
    access = access_policy.can_view(gift_list, viewer_id, grants)
    if access.decision is AccessDecision.REQUIRE_PASSWORD:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Password required")
    if not access.allowed:
        logger.info("List view denied list_id=%s viewer_id=%s", gift_list.id, viewer_id)
        # Private lists are indistinguishable from missing ones.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="List not found")

    return await _render_allowed(request, db, gift_list, viewer_id, access)


@router.post("/{slug}/unlock", response_model=GiftListPublic, dependencies=[Depends(require_csrf)])
async def unlock_list(
    slug: str,
    payload: UnlockRequest,
    request: Request,
    db: DbSessionDep,
    viewer_id: ViewerIdDep,
    session_id: SessionIdDep,
    store: GrantStoreDep,
) -> GiftListPublic:
    gift_list = await ListRepository(db).get_by_slug(slug)
    if gift_list is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="List not found")

    grants = await store.load(session_id)
    access = access_policy.can_view(gift_list, viewer_id, grants, supplied_password=payload.password)
    if gift_list.privacy == PrivacyMode.PASSWORD.value and not access.is_owner:
        if access.granted_now or access.password_rejected:
            audit_list_password(request, viewer_id, gift_list.id, granted=access.granted_now)
    if access.password_rejected:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Incorrect password")
    if not access.allowed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="List not found")

    await store.save(grants)
    return await _render_allowed(request, db, gift_list, viewer_id, access)
