"""Daily Quota Tracker

Per-plan daily query limits, counted per UTC calendar day.

Rules:
- free=10, premium=50, premiumPlus=unbounded
- A counter whose last_reset_date falls on an earlier (or any other) calendar
  day counts as 0 and is reset before the limit is evaluated
- Unbounded plans are admitted without persisting an increment

The decision logic (``evaluate``) is pure. ``QuotaService`` applies it to the
users collection with a conditional increment, so concurrent requests can
never admit more than the limit.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional
import logging

from pymongo import ReturnDocument

from models import Plan, User, UsageSnapshot, UNLIMITED, utc_now

logger = logging.getLogger(__name__)

DAILY_LIMITS: Dict[Plan, Optional[int]] = {
    Plan.FREE: 10,
    Plan.PREMIUM: 50,
    Plan.PREMIUM_PLUS: None,  # unbounded
}

LIMIT_REACHED_MESSAGE = "Daily limit reached. Please upgrade your plan."


def resolve_plan(value: Optional[str]) -> Plan:
    """Map a stored plan value to a Plan; unknown values fall back to free."""
    try:
        return Plan(value)
    except ValueError:
        return Plan.FREE


def daily_limit_for(plan: Plan) -> Optional[int]:
    return DAILY_LIMITS.get(plan, DAILY_LIMITS[Plan.FREE])


def _as_utc(value: datetime) -> datetime:
    # MongoDB hands back naive datetimes that are already UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def needs_reset(last_reset_date: Optional[datetime], now: datetime) -> bool:
    """True when the stored counter belongs to a different calendar day."""
    if last_reset_date is None:
        return True
    return _as_utc(last_reset_date).date() != _as_utc(now).date()


def effective_count(user: User, now: datetime) -> int:
    if needs_reset(user.last_reset_date, now):
        return 0
    return user.daily_count


@dataclass
class QuotaDecision:
    allowed: bool
    plan: Plan
    daily_limit: Optional[int]
    count: int
    reset_at: datetime
    reset_required: bool = False

    @property
    def unbounded(self) -> bool:
        return self.daily_limit is None

    @property
    def remaining(self):
        if self.unbounded:
            return UNLIMITED
        return max(0, self.daily_limit - self.count)

    def snapshot(self) -> UsageSnapshot:
        return UsageSnapshot(
            used_today=self.count,
            remaining=self.remaining,
            daily_limit=UNLIMITED if self.unbounded else self.daily_limit,
            reset_at=self.reset_at,
            plan=self.plan.value,
        )


def evaluate(user: User, now: datetime) -> QuotaDecision:
    """Decide whether one more query is allowed.

    On admission ``count`` is the post-query count; on rejection it is the
    current count, left untouched.
    """
    plan = resolve_plan(user.plan)
    limit = daily_limit_for(plan)
    reset = needs_reset(user.last_reset_date, now)
    count = effective_count(user, now)
    reset_at = now if reset else user.last_reset_date

    if limit is not None and count >= limit:
        return QuotaDecision(False, plan, limit, count, reset_at, reset)

    if limit is not None:
        count += 1
    return QuotaDecision(True, plan, limit, count, reset_at, reset)


class QuotaExceededError(Exception):
    def __init__(self, decision: QuotaDecision):
        self.decision = decision
        super().__init__(LIMIT_REACHED_MESSAGE)


class QuotaService:
    """Persists quota decisions against the users collection."""

    def __init__(self, database):
        self.database = database

    def _get_db(self):
        return self.database.get_db()

    async def reserve(self, user: User, now: Optional[datetime] = None) -> QuotaDecision:
        """Take one query slot for today or raise QuotaExceededError.

        The reset is a compare-and-set on the stored last_reset_date and the
        increment only matches while daily_count is below the limit.
        """
        now = now or utc_now()
        decision = evaluate(user, now)

        if not decision.allowed:
            logger.info(f"Daily limit reached for user {user.user_id} (plan={decision.plan.value})")
            raise QuotaExceededError(decision)

        db = self._get_db()

        if decision.reset_required:
            await db.users.update_one(
                {"user_id": user.user_id, "last_reset_date": user.last_reset_date},
                {"$set": {"daily_count": 0, "last_reset_date": now, "updated_at": now}},
            )

        if decision.unbounded:
            return decision

        updated = await db.users.find_one_and_update(
            {"user_id": user.user_id, "daily_count": {"$lt": decision.daily_limit}},
            {"$inc": {"daily_count": 1}, "$set": {"updated_at": now}},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )

        if updated is None:
            # Lost the race to a concurrent request
            logger.info(f"Daily limit reached for user {user.user_id} during reservation")
            raise QuotaExceededError(QuotaDecision(
                allowed=False,
                plan=decision.plan,
                daily_limit=decision.daily_limit,
                count=decision.daily_limit,
                reset_at=decision.reset_at,
            ))

        decision.count = updated["daily_count"]
        decision.reset_at = updated.get("last_reset_date", decision.reset_at)
        return decision

    async def release(self, user_id: str, reset_at: datetime) -> None:
        """Give back a slot taken by reserve().

        Only applies while the counter still belongs to the day the slot was
        taken from.
        """
        db = self._get_db()
        await db.users.update_one(
            {"user_id": user_id, "last_reset_date": reset_at, "daily_count": {"$gt": 0}},
            {"$inc": {"daily_count": -1}, "$set": {"updated_at": utc_now()}},
        )
