import logging
from dataclasses import dataclass
from enum import Enum

from giftlists.core.access_grants import SessionGrants
from giftlists.core.security import verify_list_password
from giftlists.models.models import GiftList, PrivacyMode


logger = logging.getLogger("giftlists.access")


class AccessDecision(str, Enum):
    ALLOW = "allow"
    REQUIRE_PASSWORD = "require_password"
    DENY = "deny"


@dataclass(frozen=True)
class AccessResult:
    decision: AccessDecision
    is_owner: bool = False
    # Set only when a supplied password was checked and rejected.
    password_rejected: bool = False
    granted_now: bool = False

    @property
    def allowed(self) -> bool:
        return self.decision is AccessDecision.ALLOW


class AccessPolicy:
    """Decides whether a viewer may read a list and its gifts.

    Rules, first match wins: the owner always reads; public lists are open;
    password lists need a session grant or the right password; everything
    else is denied.
    """

    def can_view(
        self,
        gift_list: GiftList,
        viewer_id: int | None,
        grants: SessionGrants,
        supplied_password: str | None = None,
    ) -> AccessResult:
        if viewer_id is not None and gift_list.owner_id is not None and viewer_id == gift_list.owner_id:
            return AccessResult(AccessDecision.ALLOW, is_owner=True)

        if gift_list.privacy == PrivacyMode.PUBLIC.value:
            return AccessResult(AccessDecision.ALLOW)

        if gift_list.privacy == PrivacyMode.PASSWORD.value:
            if grants.has(gift_list.id):
                return AccessResult(AccessDecision.ALLOW)
            if supplied_password is not None:
                if verify_list_password(supplied_password, gift_list.password_hash):
                    grants.add(gift_list.id)
                    logger.info("Access grant created list_id=%s", gift_list.id)
                    return AccessResult(AccessDecision.ALLOW, granted_now=True)
                return AccessResult(AccessDecision.DENY, password_rejected=True)
            return AccessResult(AccessDecision.REQUIRE_PASSWORD)

        return AccessResult(AccessDecision.DENY)


access_policy = AccessPolicy()
