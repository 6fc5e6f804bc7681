"""
Quota tracker tests: pure admission rules and the persisted reservation.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from models import Plan, User, UNLIMITED
from services.quota import (
    QuotaService,
    QuotaExceededError,
    effective_count,
    evaluate,
    needs_reset,
    resolve_plan,
    daily_limit_for,
)
from conftest import InMemoryDatabase

NOW = datetime(2026, 3, 14, 15, 30, tzinfo=timezone.utc)
EARLIER_TODAY = NOW.replace(hour=0, minute=5)
YESTERDAY = NOW - timedelta(days=1)


def _user(plan="free", daily_count=0, last_reset_date=EARLIER_TODAY):
    return User(
        email="quota@docs.io",
        password_hash="x",
        plan=plan,
        daily_count=daily_count,
        last_reset_date=last_reset_date,
    )


class TestPlanLimits:
    def test_limits_per_plan(self):
        assert daily_limit_for(Plan.FREE) == 10
        assert daily_limit_for(Plan.PREMIUM) == 50
        assert daily_limit_for(Plan.PREMIUM_PLUS) is None

    def test_unknown_plan_falls_back_to_free(self):
        assert resolve_plan("enterprise") == Plan.FREE
        assert resolve_plan(None) == Plan.FREE
        assert resolve_plan("premiumPlus") == Plan.PREMIUM_PLUS


class TestNeedsReset:
    def test_same_calendar_day(self):
        assert needs_reset(EARLIER_TODAY, NOW) is False

    def test_previous_day(self):
        assert needs_reset(YESTERDAY, NOW) is True

    def test_late_yesterday_is_still_another_day(self):
        """Calendar dates are compared, not 24h windows."""
        late_yesterday = NOW.replace(hour=0, minute=0) - timedelta(minutes=1)
        now = NOW.replace(hour=0, minute=1)
        assert needs_reset(late_yesterday, now) is True

    def test_naive_datetimes_are_treated_as_utc(self):
        """MongoDB returns naive UTC datetimes."""
        assert needs_reset(EARLIER_TODAY.replace(tzinfo=None), NOW) is False

    def test_missing_date_resets(self):
        assert needs_reset(None, NOW) is True


class TestEvaluate:
    def test_free_user_under_limit_is_admitted(self):
        decision = evaluate(_user(daily_count=3), NOW)
        assert decision.allowed is True
        assert decision.count == 4
        assert decision.remaining == 6

    def test_free_user_at_limit_is_rejected(self):
        decision = evaluate(_user(daily_count=10), NOW)
        assert decision.allowed is False
        assert decision.count == 10
        assert decision.remaining == 0

    def test_premium_limit_is_50(self):
        assert evaluate(_user(plan="premium", daily_count=49), NOW).allowed is True
        assert evaluate(_user(plan="premium", daily_count=50), NOW).allowed is False

    def test_stale_counter_is_reset_before_limit_check(self):
        decision = evaluate(_user(daily_count=10, last_reset_date=YESTERDAY), NOW)
        assert decision.allowed is True
        assert decision.reset_required is True
        assert decision.count == 1
        assert decision.reset_at == NOW

    def test_premium_plus_never_rejected(self):
        decision = evaluate(_user(plan="premiumPlus", daily_count=100_000), NOW)
        assert decision.allowed is True
        assert decision.count == 100_000
        assert decision.remaining == UNLIMITED

    def test_snapshot_shape(self):
        snapshot = evaluate(_user(plan="premiumPlus"), NOW).snapshot()
        data = snapshot.model_dump(by_alias=True)
        assert data["dailyLimit"] == UNLIMITED
        assert data["remaining"] == UNLIMITED
        assert data["plan"] == "premiumPlus"
        assert set(data) == {"usedToday", "remaining", "dailyLimit", "resetAt", "plan"}


class TestQuotaService:
    """Reservation against the users collection."""

    def _setup(self, **kwargs):
        database = InMemoryDatabase()
        user = _user(**kwargs)
        database.db.users.docs.append(user.model_dump())
        return database, user, QuotaService(database)

    def test_reserve_increments_stored_count(self):
        database, user, quota = self._setup(daily_count=2)
        decision = asyncio.run(quota.reserve(user, now=NOW))
        assert decision.count == 3
        assert database.db.users.docs[0]["daily_count"] == 3

    def test_reserve_rejects_at_limit_without_increment(self):
        database, user, quota = self._setup(daily_count=10)
        with pytest.raises(QuotaExceededError) as exc:
            asyncio.run(quota.reserve(user, now=NOW))
        assert exc.value.decision.remaining == 0
        assert database.db.users.docs[0]["daily_count"] == 10

    def test_reserve_resets_stale_counter(self):
        database, user, quota = self._setup(daily_count=10, last_reset_date=YESTERDAY)
        asyncio.run(quota.reserve(user, now=NOW))
        stored = database.db.users.docs[0]
        assert stored["daily_count"] == 1
        assert stored["last_reset_date"] == NOW

    def test_unbounded_plan_does_not_persist_increment(self):
        database, user, quota = self._setup(plan="premiumPlus", daily_count=7)
        decision = asyncio.run(quota.reserve(user, now=NOW))
        assert decision.unbounded is True
        assert database.db.users.docs[0]["daily_count"] == 7

    def test_concurrent_reservations_never_exceed_limit(self):
        """Fifteen requests built from the same stale read admit exactly ten."""
        database, user, quota = self._setup(daily_count=0)

        async def attempt():
            try:
                await quota.reserve(user, now=NOW)
                return True
            except QuotaExceededError:
                return False

        async def run_all():
            return await asyncio.gather(*(attempt() for _ in range(15)))

        results = asyncio.run(run_all())
        assert results.count(True) == 10
        assert database.db.users.docs[0]["daily_count"] == 10

    def test_release_returns_slot(self):
        database, user, quota = self._setup(daily_count=4)
        decision = asyncio.run(quota.reserve(user, now=NOW))
        asyncio.run(quota.release(user.user_id, decision.reset_at))
        assert database.db.users.docs[0]["daily_count"] == 4

    def test_release_never_goes_negative(self):
        database, user, quota = self._setup(daily_count=0)
        asyncio.run(quota.release(user.user_id, user.last_reset_date))
        assert database.db.users.docs[0]["daily_count"] == 0

    def test_release_after_day_rollover_leaves_new_day_alone(self):
        """A slot from yesterday is not returned out of today's count."""
        database, user, quota = self._setup(daily_count=4)
        decision = asyncio.run(quota.reserve(user, now=NOW))

        tomorrow = NOW + timedelta(days=1)
        database.db.users.docs[0].update(daily_count=2, last_reset_date=tomorrow)

        asyncio.run(quota.release(user.user_id, decision.reset_at))
        assert database.db.users.docs[0]["daily_count"] == 2

    def test_effective_count_ignores_stale_counter(self):
        assert effective_count(_user(daily_count=7), NOW) == 7
        assert effective_count(_user(daily_count=7, last_reset_date=YESTERDAY), NOW) == 0
