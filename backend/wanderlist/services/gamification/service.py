"""
GamificationService: the in-process entry point used by request handlers.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import sessionmaker
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from wanderlist.core.config import GamificationConfig, get_config
from wanderlist.core.constants import GamificationConstants, LeaderboardTimeframe
from wanderlist.core.exceptions import ConcurrencyConflict
from wanderlist.core.logging_config import LoggingContext, event_logger
from wanderlist.db.base import utcnow

from .admin import GamificationAdminService
from .aggregator import ProgressAggregator
from .awards import ManualAwards
from .queries import ProgressQueries
from .transaction import transaction

logger = logging.getLogger(__name__)


class GamificationService:
    """
    Facade over the reward engine.

    Each public call runs in one transaction. Writes that lose an
    optimistic-locking race raise ``ConcurrencyConflict`` internally and
    are retried from scratch, up to ``max_commit_retries`` attempts.

    Args:
        session_factory: Session factory; defaults to the global ``SessionLocal``
        config: Engine settings; defaults to ``get_config().gamification``
        clock: Returns the current naive UTC time
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        config: Optional[GamificationConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory
        self.config = config or get_config().gamification
        self.clock = clock or utcnow
        self.admin = GamificationAdminService(session_factory, self.clock)

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.config.max_commit_retries),
            wait=wait_random_exponential(multiplier=0.01, max=0.5),
            retry=retry_if_exception_type(ConcurrencyConflict),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def process_event(
        self,
        user_id: str,
        event_type: str,
        event_data: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Evaluate the rules triggered by an event and apply the rewards.

        Args:
            user_id: User who performed the action
            event_type: e.g. ``user_login``, ``bucket_list_add``
            event_data: Payload read by rule gates (``contentType``, ``referrer``)
            request_id: Optional client id; repeating it replays the stored result

        Returns:
            ``{"points", "badges", "milestones", "current_level"}``
        """
        def attempt() -> Dict[str, Any]:
            with transaction(self.session_factory, "process_event") as db:
                aggregator = ProgressAggregator(db, self.config, self.clock)
                return aggregator.process_event(user_id, event_type, event_data, request_id).to_dict()

        log = event_logger(logger, user_id=user_id, event_type=event_type, request_id=request_id)
        with LoggingContext(log, f"process_event {event_type} for {user_id}"):
            return self._retrying()(attempt)

    def get_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        with transaction(self.session_factory, "get_user_profile") as db:
            return ProgressQueries(db, self.config, self.clock).get_user_profile(user_id)

    def get_leaderboard(
        self,
        timeframe: Any = LeaderboardTimeframe.ALL,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with transaction(self.session_factory, "get_leaderboard") as db:
            return ProgressQueries(db, self.config, self.clock).get_leaderboard(timeframe, limit)

    def award_badge(
        self,
        user_id: str,
        badge_id: str,
        reason: str = GamificationConstants.DEFAULT_BADGE_AWARD_REASON,
    ) -> Dict[str, Any]:
        def attempt() -> Dict[str, Any]:
            with transaction(self.session_factory, "award_badge") as db:
                return ManualAwards(db, self.config, self.clock).award_badge(user_id, badge_id, reason)

        return self._retrying()(attempt)

    def award_coupon_badge(self, user_id: str, coupon_code: str) -> Dict[str, Any]:
        def attempt() -> Dict[str, Any]:
            with transaction(self.session_factory, "award_coupon_badge") as db:
                return ManualAwards(db, self.config, self.clock).award_coupon_badge(user_id, coupon_code)

        return self._retrying()(attempt)

    def redeem_points(self, user_id: str, points: int, deal_id: str) -> int:
        """
        Spend points on a deal and return the remaining balance.
        """
        def attempt() -> int:
            with transaction(self.session_factory, "redeem_points") as db:
                return ManualAwards(db, self.config, self.clock).redeem_points(user_id, points, deal_id)

        return self._retrying()(attempt)
