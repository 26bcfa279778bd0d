"""
Staleness policy

Decides whether stored guide data is fresh enough to skip a non-forced refresh.
"""
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from tvcast.config import settings
from tvcast.database import session_scope
from tvcast.services import db_service
from tvcast.utils.timezone import ensure_utc, to_epoch_seconds, utc_now


logger = logging.getLogger(__name__)

# Refreshes land a little before the interval elapses so a scheduled tick
# never sees data that is fresh by a few seconds.
GRACE_SECONDS = 180


def freshness_window(refresh_minutes: int) -> timedelta:
    """Maximum age of the newest programme before data counts as stale."""
    return timedelta(seconds=max(refresh_minutes * 60 - GRACE_SECONDS, 0))


class StalenessPolicy:
    """Freshness check over the stored programme set"""

    def __init__(
        self,
        refresh_minutes: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.refresh_minutes = refresh_minutes or settings.refresh_iptv_minutes
        self._clock = clock

    async def is_stale(self) -> bool:
        """
        True when there are no programmes, the newest one was stored longer
        ago than the freshness window, or nothing is still airing or upcoming.
        """
        now = self._clock()

        async with session_scope() as db:
            latest_created = await db_service.get_latest_programme_created_at(db)
            if latest_created is None:
                logger.info("No programmes stored, data is stale")
                return True

            age = now - ensure_utc(latest_created)
            if age > freshness_window(self.refresh_minutes):
                logger.info(f"Newest programme stored {age} ago, data is stale")
                return True

            if not await db_service.has_programmes_ending_after(db, to_epoch_seconds(now)):
                logger.info("No current or future programmes, data is stale")
                return True

        logger.debug("Stored guide data is fresh")
        return False
