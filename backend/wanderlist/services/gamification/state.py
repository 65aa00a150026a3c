"""
In-memory value types used while an event is evaluated.

The evaluator never touches ORM objects. It reads an immutable ``RuleSpec``
and a ``ProgressView`` copied from the user's progress, and returns a
``RuleOutcome``. The aggregator folds each outcome back into the view so
later rules in the same event observe earlier milestone, streak and
history changes.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from wanderlist.core.constants import EventDataKeys, EventTypes
from wanderlist.core.exceptions import ValidationError
from wanderlist.db.models import Rule, RuleType, UserProgress


def level_for_points(points: int, points_per_level: int) -> int:
    """Level is ``floor(points / points_per_level) + 1``, never below 1."""
    return max(points, 0) // points_per_level + 1


def _optional_positive_int(data: Dict[str, Any], *keys: str) -> Optional[int]:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValidationError(
                message=f"Rule condition '{keys[0]}' must be a positive integer",
                field_errors={keys[0]: [f"got {value!r}"]},
            )
        return value
    return None


def _optional_str(data: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value is None or value == "":
            continue
        if not isinstance(value, str):
            raise ValidationError(
                message=f"Rule condition '{keys[0]}' must be a string",
                field_errors={keys[0]: [f"got {value!r}"]},
            )
        return value
    return None


@dataclass(frozen=True)
class Conditions:
    """Parsed rule conditions. Accepts snake_case or camelCase keys."""

    milestone_count: Optional[int] = None
    streak_days: Optional[int] = None
    max_count: Optional[int] = None
    timeframe: Optional[str] = None
    content_type: Optional[str] = None
    referrer: Optional[str] = None
    required_content_types: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Conditions":
        data = data or {}
        if not isinstance(data, dict):
            raise ValidationError(message="Rule conditions must be an object")

        required = data.get("required_content_types", data.get("requiredContentTypes")) or []
        if not isinstance(required, (list, tuple)) or not all(isinstance(t, str) for t in required):
            raise ValidationError(
                message="Rule condition 'required_content_types' must be a list of strings",
                field_errors={"required_content_types": [f"got {required!r}"]},
            )

        return cls(
            milestone_count=_optional_positive_int(data, "milestone_count", "milestoneCount"),
            streak_days=_optional_positive_int(data, "streak_days", "streakDays"),
            max_count=_optional_positive_int(data, "max_count", "maxCount"),
            timeframe=_optional_str(data, "timeframe"),
            content_type=_optional_str(data, "content_type", "contentType"),
            referrer=_optional_str(data, "referrer"),
            required_content_types=tuple(required),
        )


@dataclass(frozen=True)
class RuleSpec:
    """Immutable snapshot of a rule taken before evaluation."""

    id: str
    name: str
    trigger_event: str
    rule_type: RuleType
    conditions: Conditions
    reward_points: int = 0
    reward_badge_id: Optional[str] = None

    @classmethod
    def from_model(cls, rule: Rule) -> "RuleSpec":
        return cls(
            id=rule.id,
            name=rule.name,
            trigger_event=rule.trigger_event,
            rule_type=RuleType(rule.rule_type),
            conditions=Conditions.from_dict(rule.conditions),
            reward_points=rule.reward_points or 0,
            reward_badge_id=rule.reward_badge_id,
        )


@dataclass
class StreakState:
    streak_type: str
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.streak_type,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_activity_date": self.last_activity_date.isoformat() if self.last_activity_date else None,
        }


@dataclass
class MilestoneState:
    rule_id: str
    progress: int = 0
    achieved: bool = False
    achieved_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "progress": self.progress,
            "achieved": self.achieved,
            "achieved_at": self.achieved_at.isoformat() if self.achieved_at else None,
        }


@dataclass(frozen=True)
class HistoryEntry:
    event_type: str
    timestamp: datetime
    points: int
    rule_id: Optional[str]
    details: Dict[str, Any]


def _content_type(data: Dict[str, Any]) -> Optional[Any]:
    if not isinstance(data, dict):
        return None
    return data.get(EventDataKeys.CONTENT_TYPE, data.get("content_type"))


@dataclass
class ProgressView:
    """
    Working copy of a user's progress.

    ``points`` is the value loaded from storage; rule rewards are summed
    separately and only added when the event is persisted. ``badge_ids``
    only changes when a badge is actually granted.
    """

    user_id: str
    points: int = 0
    level: int = 1
    badge_ids: Set[str] = field(default_factory=set)
    streaks: Dict[str, StreakState] = field(default_factory=dict)
    milestones: Dict[str, MilestoneState] = field(default_factory=dict)
    history: List[HistoryEntry] = field(default_factory=list)

    @classmethod
    def from_model(cls, progress: UserProgress) -> "ProgressView":
        return cls(
            user_id=progress.user_id,
            points=progress.points or 0,
            level=progress.level or 1,
            badge_ids={b.badge_id for b in progress.badges},
            streaks={
                s.streak_type: StreakState(
                    streak_type=s.streak_type,
                    current_streak=s.current_streak,
                    longest_streak=s.longest_streak,
                    last_activity_date=s.last_activity_date,
                )
                for s in progress.streaks
            },
            milestones={
                m.rule_id: MilestoneState(
                    rule_id=m.rule_id,
                    progress=m.progress_count,
                    achieved=m.achieved,
                    achieved_at=m.achieved_at,
                )
                for m in progress.milestones
            },
            history=[
                HistoryEntry(
                    event_type=e.event_type,
                    timestamp=e.timestamp,
                    points=e.points,
                    rule_id=e.rule_id,
                    details=dict(e.details or {}),
                )
                for e in progress.events
            ],
        )

    def count_rule_triggers(self, event_type: str, rule_id: str) -> int:
        return sum(
            1 for entry in self.history
            if entry.event_type == event_type and entry.rule_id == rule_id
        )

    def collected_content_types(self) -> Set[Any]:
        return {
            _content_type(entry.details)
            for entry in self.history
            if entry.event_type == EventTypes.BUCKET_LIST_ADD
        }

    def streak(self, streak_type: str) -> Optional[StreakState]:
        return self.streaks.get(streak_type)

    def milestone(self, rule_id: str) -> Optional[MilestoneState]:
        return self.milestones.get(rule_id)

    def apply(self, outcome: "RuleOutcome", event_type: str, now: datetime) -> Optional[HistoryEntry]:
        """
        Fold an outcome into the view.

        Returns the history entry appended for a rewarding outcome, if any.
        """
        if outcome.milestone_update is not None:
            self.milestones[outcome.milestone_update.rule_id] = replace(outcome.milestone_update)
        if outcome.streak_update is not None:
            self.streaks[outcome.streak_update.streak_type] = replace(outcome.streak_update)

        if not outcome.is_rewarding:
            return None

        entry = HistoryEntry(
            event_type=event_type,
            timestamp=now,
            points=outcome.points,
            rule_id=outcome.rule_id,
            details=dict(outcome.details),
        )
        self.history.append(entry)
        return entry


@dataclass(frozen=True)
class RuleOutcome:
    rule_id: str
    rule_name: str
    points: int = 0
    badge_id: Optional[str] = None
    milestone_update: Optional[MilestoneState] = None
    streak_update: Optional[StreakState] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_rewarding(self) -> bool:
        return self.points != 0 or bool(self.badge_id)


def history_details(event_data: Optional[Dict[str, Any]], rule_name: Optional[str] = None) -> Dict[str, Any]:
    """
    JSON-safe copy of ``event_data``, tagged with the rule name when given.
    """
    details = json.loads(json.dumps(event_data or {}, default=str))
    if rule_name is not None:
        details[EventDataKeys.RULE_NAME] = rule_name
    return details


@dataclass
class EventSummary:
    """Result of processing one event."""

    points: int = 0
    badges: List[str] = field(default_factory=list)
    milestones: List[Dict[str, Any]] = field(default_factory=list)
    current_level: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": self.points,
            "badges": list(self.badges),
            "milestones": [dict(m) for m in self.milestones],
            "current_level": self.current_level,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventSummary":
        return cls(
            points=data.get("points", 0),
            badges=list(data.get("badges", [])),
            milestones=list(data.get("milestones", [])),
            current_level=data.get("current_level", 1),
        )
