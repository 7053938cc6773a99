"""Subscription-tier connection limits.

A "connection" is one linked bank account or one brokerage authorization.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from sqlalchemy.orm import Session

from models import BrokerageConnection, ConnectedAccount, User

logger = logging.getLogger(__name__)


class SubscriptionTier(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    PREMIUM = "premium"


# None means unlimited
TIER_LIMITS: dict[SubscriptionTier, int | None] = {
    SubscriptionTier.FREE: 2,
    SubscriptionTier.BASIC: 3,
    SubscriptionTier.PRO: 5,
    SubscriptionTier.PREMIUM: None,
}


def account_limit(tier: str | SubscriptionTier | None, is_admin: bool = False) -> int | None:
    """Maximum number of connections for a tier; None means unlimited.

    Admins are unlimited regardless of tier. Unknown or missing tiers get
    the free limit.
    """
    if is_admin:
        return None
    value = tier.value if isinstance(tier, SubscriptionTier) else str(tier or "")
    try:
        resolved = SubscriptionTier(value.lower())
    except ValueError:
        logger.warning("Unknown subscription tier %r, applying free limit", tier)
        resolved = SubscriptionTier.FREE
    return TIER_LIMITS[resolved]


def count_connections(db: Session, user_id: str) -> int:
    """Linked bank/credit accounts plus brokerage authorizations."""
    bank = (
        db.query(ConnectedAccount)
        .filter(ConnectedAccount.user_id == user_id, ConnectedAccount.provider == "bank")
        .count()
    )
    brokerage = (
        db.query(BrokerageConnection)
        .filter(BrokerageConnection.user_id == user_id)
        .count()
    )
    return bank + brokerage


@dataclass
class LinkPlan:
    """Which candidate ids may be linked under the user's limit."""

    accepted: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    limit: int | None = None
    current: int = 0

    @property
    def remaining_after(self) -> int | None:
        if self.limit is None:
            return None
        return max(0, self.limit - self.current - len(self.accepted))


def plan_link(
    candidate_ids: Iterable[str],
    existing_ids: Iterable[str],
    current: int,
    limit: int | None,
) -> LinkPlan:
    """Split a batch of candidates into accepted / rejected / duplicates.

    Already-linked ids (and repeats within the batch) are duplicates and do
    not consume slots. New ids are accepted in input order until the
    remaining slots run out; the rest are rejected.
    """
    existing = set(existing_ids)
    seen: set[str] = set()
    plan = LinkPlan(limit=limit, current=current)
    remaining = None if limit is None else max(0, limit - current)

    for candidate in candidate_ids:
        if candidate in existing or candidate in seen:
            plan.duplicates.append(candidate)
            continue
        seen.add(candidate)
        if remaining is None or len(plan.accepted) < remaining:
            plan.accepted.append(candidate)
        else:
            plan.rejected.append(candidate)
    return plan


def plan_for_user(
    db: Session, user: User, candidate_ids: Iterable[str], existing_ids: Iterable[str]
) -> LinkPlan:
    """:func:`plan_link` using the user's tier and current connection count."""
    return plan_link(
        candidate_ids,
        existing_ids,
        current=count_connections(db, user.id),
        limit=account_limit(user.subscription_tier, bool(user.is_admin)),
    )
