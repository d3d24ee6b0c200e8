from giftlists.models.models import Reservation


def can_cancel(reservation: Reservation, caller_id: int | None, list_owner_id: int | None) -> bool:
    """Who may release an active reservation.

    The list owner may release any gift on their list, and an authenticated
    reserver may release their own claim. A reservation made without an
    account has no stored reserver, so only the owner can release it.
    """
    if caller_id is None:
        return False
    if list_owner_id is not None and caller_id == list_owner_id:
        return True
    return reservation.user_id is not None and caller_id == reservation.user_id
