"""
Read-only projections of user progress: profile and leaderboard.
"""

import calendar
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from wanderlist.core.config import GamificationConfig
from wanderlist.core.constants import LeaderboardTimeframe
from wanderlist.core.exceptions import ValidationError, raise_validation_error
from wanderlist.db.models import UserProgress
from wanderlist.db.repositories import CampaignRepository, UserProgressRepository
from wanderlist.schemas import CampaignRead

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def one_month_before(moment: datetime) -> datetime:
    """Same day and time one calendar month earlier, clamped to month end."""
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def timeframe_start(timeframe: LeaderboardTimeframe, now: datetime) -> Optional[datetime]:
    if timeframe == LeaderboardTimeframe.DAILY:
        return now - timedelta(days=1)
    if timeframe == LeaderboardTimeframe.WEEKLY:
        return now - timedelta(days=7)
    if timeframe == LeaderboardTimeframe.MONTHLY:
        return one_month_before(now)
    return None


class ProgressQueries:
    """Profile and leaderboard views over stored progress."""

    def __init__(self, session: Session, config: GamificationConfig, clock: Callable[[], datetime]):
        self.session = session
        self.config = config
        self.clock = clock
        self.progress = UserProgressRepository(session)
        self.campaigns = CampaignRepository(session)

    def get_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Profile for ``user_id``, or None when the user has no progress yet.
        """
        progress = self.progress.get_for_user(user_id)
        if progress is None:
            return None
        return self.build_profile(progress)

    def build_profile(self, progress: UserProgress) -> Dict[str, Any]:
        per_level = self.config.points_per_level
        points = progress.points or 0
        level = progress.level or 1

        return {
            "user_id": progress.user_id,
            "points": points,
            "level": level,
            "completed_rules": self._completed_rules(progress),
            "next_level_progress": {
                "points_needed": level * per_level - points,
                "percentage": (max(points, 0) % per_level) / per_level * 100,
            },
            "badges": [
                {
                    "badge_id": ub.badge_id,
                    "name": ub.badge.name if ub.badge is not None else None,
                    "earned_at": _iso(ub.earned_at),
                    "is_active": ub.is_active,
                }
                for ub in progress.badges
            ],
            "streaks": [
                {
                    "type": s.streak_type,
                    "current_streak": s.current_streak,
                    "longest_streak": s.longest_streak,
                    "last_activity_date": _iso(s.last_activity_date),
                }
                for s in progress.streaks
            ],
            "milestones": [
                {
                    "rule_id": m.rule_id,
                    "rule_name": m.rule.name if m.rule is not None else None,
                    "progress": m.progress_count,
                    "achieved": m.achieved,
                    "achieved_at": _iso(m.achieved_at),
                }
                for m in progress.milestones
            ],
            "active_campaigns": [
                CampaignRead.model_validate(c).model_dump(mode="json")
                for c in self.campaigns.find_active(self.clock())
            ],
            "created_at": _iso(progress.created_at),
            "last_activity_at": _iso(progress.last_activity_at),
        }

    @staticmethod
    def _completed_rules(progress: UserProgress) -> List[Dict[str, Any]]:
        # Derived from history: every rule that has rewarded this user
        completed: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for event in progress.events:
            if not event.rule_id:
                continue
            entry = completed.setdefault(event.rule_id, {"rule_id": event.rule_id, "count": 0})
            entry["count"] += 1
            entry["last_completed_at"] = _iso(event.timestamp)
        return list(completed.values())

    def get_leaderboard(self, timeframe: Any = LeaderboardTimeframe.ALL, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Users ranked by points then level, both descending.

        The daily, weekly and monthly windows filter on when the progress
        record was created, not on recent activity.

        Args:
            timeframe: all, daily, weekly or monthly
            limit: Number of entries, capped at ``leaderboard_max_limit``

        Raises:
            ValidationError: Unknown timeframe or non-positive limit
        """
        try:
            window = LeaderboardTimeframe(timeframe)
        except ValueError:
            raise ValidationError(
                message=f"Unknown leaderboard timeframe: {timeframe}",
                field_errors={"timeframe": [f"must be one of {[t.value for t in LeaderboardTimeframe]}"]},
            ) from None

        if limit is None:
            limit = self.config.leaderboard_default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise_validation_error(
                "Leaderboard limit must be a positive integer",
                field_errors={"limit": [f"got {limit!r}"]},
            )
        limit = min(limit, self.config.leaderboard_max_limit)

        rows = self.progress.leaderboard(timeframe_start(window, self.clock()), limit)
        logger.debug(f"Leaderboard {window.value} (limit {limit}) returned {len(rows)} rows")
        for rank, row in enumerate(rows, start=1):
            row["rank"] = rank
        return rows
