from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from giftlists.db.repositories import GiftRepository, ListRepository, ReservationRepository
from giftlists.models.models import GiftStatus
from giftlists.services.errors import Forbidden


async def reservation_stats(session: AsyncSession, owner_id: int, list_id: int | None = None) -> dict[str, object]:
    """Reservation totals across the owner's lists, or one of them."""
    lists = ListRepository(session)
    if list_id is not None:
        gift_list = await lists.get(list_id)
        if gift_list is None or gift_list.owner_id != owner_id:
            raise Forbidden("You do not have access to this list")
        list_ids = [gift_list.id]
    else:
        list_ids = [gift_list.id for gift_list in await lists.owned_by(owner_id)]

    gifts_repo = GiftRepository(session)
    total_gifts = reserved_count = 0
    total_value = reserved_value = Decimal("0")
    for current_id in list_ids:
        for gift in await gifts_repo.list_for_list(current_id):
            price = Decimal(str(gift.price)) if gift.price is not None else Decimal("0")
            total_gifts += 1
            total_value += price
            if gift.status == GiftStatus.RESERVED.value:
                reserved_count += 1
                reserved_value += price

    counts = await ReservationRepository(session).status_counts(list_ids)
    return {
        "list_id": list_id,
        "total_gifts": total_gifts,
        "reserved_count": reserved_count,
        "available_count": total_gifts - reserved_count,
        "total_value": float(total_value),
        "reserved_value": float(reserved_value),
        "reservation_percentage": round(reserved_count / total_gifts * 100) if total_gifts else 0,
        "active_reservations": counts["active"],
        "cancelled_reservations": counts["cancelled"],
        "anonymous_reservations": counts["anonymous"],
    }
