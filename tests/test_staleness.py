"""
Tests for the staleness policy.
"""
from datetime import timedelta
from uuid import uuid4

import pytest

from tvcast.database import session_scope
from tvcast.services import db_service
from tvcast.services.fetch_types import ProgrammePayload
from tvcast.services.staleness import StalenessPolicy, freshness_window
from tvcast.utils.timezone import utc_now


async def store_programme(created_at, stop):
    programme = ProgrammePayload(
        id=str(uuid4()),
        channel_id="c1",
        start=stop - timedelta(hours=1),
        stop=stop,
        title="Show",
        created_at=created_at,
    )
    async with session_scope() as db:
        await db_service.replace_programmes(db, [programme])


def test_freshness_window_has_grace_and_floor():
    assert freshness_window(1440) == timedelta(seconds=1440 * 60 - 180)
    assert freshness_window(2) == timedelta(0)


class TestStalenessPolicy:

    @pytest.mark.asyncio
    async def test_stale_without_programmes(self, db):
        assert await StalenessPolicy(refresh_minutes=60).is_stale() is True

    @pytest.mark.asyncio
    async def test_fresh_with_recent_future_programme(self, db):
        now = utc_now()
        await store_programme(created_at=now - timedelta(minutes=10), stop=now + timedelta(hours=1))

        assert await StalenessPolicy(refresh_minutes=60).is_stale() is False

    @pytest.mark.asyncio
    async def test_stale_when_too_old(self, db):
        now = utc_now()
        await store_programme(created_at=now - timedelta(minutes=58), stop=now + timedelta(hours=1))

        # 60 minute interval minus the 3 minute grace
        assert await StalenessPolicy(refresh_minutes=60).is_stale() is True

    @pytest.mark.asyncio
    async def test_stale_when_everything_has_ended(self, db):
        now = utc_now()
        await store_programme(created_at=now - timedelta(minutes=1), stop=now - timedelta(minutes=5))

        assert await StalenessPolicy(refresh_minutes=60).is_stale() is True

    @pytest.mark.asyncio
    async def test_uses_injected_clock(self, db):
        now = utc_now()
        await store_programme(created_at=now, stop=now + timedelta(hours=2))

        later = StalenessPolicy(refresh_minutes=60, clock=lambda: now + timedelta(hours=3))
        assert await later.is_stale() is True
