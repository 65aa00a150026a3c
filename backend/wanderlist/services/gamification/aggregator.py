"""
Progress aggregation: evaluates every matching rule for an event and
persists the merged result once.
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wanderlist.core.config import GamificationConfig
from wanderlist.core.constants import ErrorMessages
from wanderlist.core.exceptions import ConcurrencyConflict, ValidationError
from wanderlist.core.logging_config import event_logger
from wanderlist.db.models import (
    ProgressEvent,
    Rule,
    UserBadge,
    UserMilestone,
    UserProgress,
    UserStreak,
)
from wanderlist.db.repositories import (
    BadgeRepository,
    CampaignRepository,
    ProcessedEventRepository,
    RuleRepository,
)

from .evaluator import evaluate_rule
from .state import (
    EventSummary,
    HistoryEntry,
    MilestoneState,
    ProgressView,
    RuleOutcome,
    RuleSpec,
    StreakState,
    level_for_points,
)
from .transaction import load_or_create_progress, touch

logger = logging.getLogger(__name__)


class ProgressAggregator:
    """
    Runs the rule pipeline for one event inside an open session.

    The caller owns the transaction; nothing is committed here.
    """

    def __init__(self, session: Session, config: GamificationConfig, clock: Callable[[], datetime]):
        self.session = session
        self.config = config
        self.clock = clock
        self.rules = RuleRepository(session)
        self.badges = BadgeRepository(session)
        self.campaigns = CampaignRepository(session)
        self.processed = ProcessedEventRepository(session)

    def process_event(
        self,
        user_id: str,
        event_type: str,
        event_data: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> EventSummary:
        """
        Evaluate all active rules for ``event_type`` and apply the rewards.

        Args:
            user_id: User the event belongs to
            event_type: Trigger event name, e.g. ``bucket_list_add``
            event_data: Event payload read by the rule gates
            request_id: Client id making the call idempotent per user

        Returns:
            Summary of points, newly granted badges, milestone updates and level
        """
        event_data = self._validate(user_id, event_type, event_data)
        log = event_logger(logger, user_id=user_id, event_type=event_type, request_id=request_id)

        if request_id:
            stored = self.processed.get_result(user_id, request_id)
            if stored is not None:
                log.info(f"Replaying stored result for request {request_id}")
                return EventSummary.from_dict(stored)

        now = self.clock()
        progress = load_or_create_progress(self.session, user_id, now)
        view = ProgressView.from_model(progress)

        outcomes: List[RuleOutcome] = []
        new_entries: List[HistoryEntry] = []
        for rule in self.rules.find_active_for_event(event_type, now):
            outcome = self._evaluate(rule, view, event_data, now)
            if outcome is None:
                continue
            entry = view.apply(outcome, event_type, now)
            if entry is not None:
                new_entries.append(entry)
            outcomes.append(outcome)

        summary = self._persist(progress, view, outcomes, new_entries, now)

        if request_id:
            self._remember(user_id, request_id, event_type, summary)

        log.info(
            f"Processed {event_type} for user {user_id}: "
            f"{summary.points} points, {len(summary.badges)} badges, level {summary.current_level}"
        )
        return summary

    @staticmethod
    def _validate(user_id: str, event_type: str, event_data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        field_errors = {}
        if not isinstance(user_id, str) or not user_id.strip():
            field_errors["user_id"] = ["must be a non-empty string"]
        if not isinstance(event_type, str) or not event_type.strip():
            field_errors["event_type"] = ["must be a non-empty string"]
        if event_data is not None and not isinstance(event_data, dict):
            field_errors["event_data"] = ["must be an object"]
        elif event_data:
            # Event data is copied into history as JSON
            try:
                json.dumps(event_data, default=str)
            except (TypeError, ValueError) as e:
                field_errors["event_data"] = [f"must be JSON serializable: {e}"]
        if field_errors:
            raise ValidationError(message=ErrorMessages.INVALID_EVENT, field_errors=field_errors)
        return event_data or {}

    def _evaluate(
        self,
        rule: Rule,
        view: ProgressView,
        event_data: Dict[str, Any],
        now: datetime,
    ) -> Optional[RuleOutcome]:
        try:
            spec = RuleSpec.from_model(rule)
            return evaluate_rule(spec, view, event_data, now, self.campaigns)
        except SQLAlchemyError:
            raise
        except Exception:
            if not self.config.isolate_rule_failures:
                raise
            logger.exception(
                f"Rule {rule.id} ({rule.name}) failed for user {view.user_id}, skipping",
                extra={"user_id": view.user_id, "rule_id": rule.id},
            )
            return None

    def _persist(
        self,
        progress: UserProgress,
        view: ProgressView,
        outcomes: List[RuleOutcome],
        new_entries: List[HistoryEntry],
        now: datetime,
    ) -> EventSummary:
        total_points = sum(o.points for o in outcomes)
        progress.points = (progress.points or 0) + total_points

        granted = self._grant_badges(progress, view, outcomes, now)

        milestone_updates = [o.milestone_update for o in outcomes if o.milestone_update is not None]
        for state in milestone_updates:
            self._store_milestone(progress, state)
        for outcome in outcomes:
            if outcome.streak_update is not None:
                self._store_streak(progress, outcome.streak_update)

        for entry in new_entries:
            progress.events.append(ProgressEvent(
                event_type=entry.event_type,
                timestamp=entry.timestamp,
                points=entry.points,
                rule_id=entry.rule_id,
                details=entry.details,
            ))

        progress.level = level_for_points(progress.points, self.config.points_per_level)
        touch(progress, now)
        self.session.flush()

        return EventSummary(
            points=total_points,
            badges=granted,
            milestones=[state.to_dict() for state in milestone_updates],
            current_level=progress.level,
        )

    def _grant_badges(
        self,
        progress: UserProgress,
        view: ProgressView,
        outcomes: List[RuleOutcome],
        now: datetime,
    ) -> List[str]:
        granted: List[str] = []
        for outcome in outcomes:
            badge_id = outcome.badge_id
            if not badge_id or badge_id in view.badge_ids:
                continue
            badge = self.badges.get_active(badge_id)
            if badge is None:
                logger.warning(
                    f"Rule {outcome.rule_id} rewards missing or inactive badge {badge_id}, skipping",
                    extra={"user_id": progress.user_id, "rule_id": outcome.rule_id, "badge_id": badge_id},
                )
                continue
            progress.badges.append(UserBadge(badge_id=badge.id, badge=badge, earned_at=now))
            view.badge_ids.add(badge_id)
            granted.append(badge_id)
        return granted

    @staticmethod
    def _store_milestone(progress: UserProgress, state: MilestoneState) -> None:
        record = progress.find_milestone(state.rule_id)
        if record is None:
            record = UserMilestone(rule_id=state.rule_id)
            progress.milestones.append(record)
        record.progress_count = state.progress
        record.achieved = state.achieved
        record.achieved_at = state.achieved_at

    @staticmethod
    def _store_streak(progress: UserProgress, state: StreakState) -> None:
        record = progress.find_streak(state.streak_type)
        if record is None:
            record = UserStreak(streak_type=state.streak_type)
            progress.streaks.append(record)
        record.current_streak = state.current_streak
        record.longest_streak = state.longest_streak
        record.last_activity_date = state.last_activity_date

    def _remember(self, user_id: str, request_id: str, event_type: str, summary: EventSummary) -> None:
        try:
            self.processed.create(
                user_id=user_id,
                request_id=request_id,
                event_type=event_type,
                result=summary.to_dict(),
            )
        except IntegrityError as e:
            raise ConcurrencyConflict(
                message=ErrorMessages.CONCURRENT_UPDATE,
                details={"request_id": request_id},
                resource_type="processed_event",
                resource_id=user_id,
            ) from e
