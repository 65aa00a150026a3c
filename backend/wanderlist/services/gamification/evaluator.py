"""
Rule evaluation.

``evaluate_rule`` decides whether a single rule pays out for an event. It
runs the gates in order, stopping at the first one that fails, then hands
off to exactly one handler per ``RuleType``. Nothing here writes to the
database or mutates the ``ProgressView``: milestone and streak changes are
returned on the outcome and applied by the aggregator.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol

from wanderlist.core.constants import EventDataKeys, EventTypes
from wanderlist.db.models import RuleType

from .state import (
    MilestoneState,
    ProgressView,
    RuleOutcome,
    RuleSpec,
    StreakState,
    history_details,
)

logger = logging.getLogger(__name__)


class CampaignLookup(Protocol):
    def has_active_for_rule(self, rule_id: str, now: datetime) -> bool:
        ...


def _event_value(event_data: Dict[str, Any], key: str, alt_key: str) -> Optional[Any]:
    return event_data.get(key, event_data.get(alt_key))


def _zero(rule: RuleSpec, **updates) -> RuleOutcome:
    return RuleOutcome(rule_id=rule.id, rule_name=rule.name, **updates)


def _reward(rule: RuleSpec, event_data: Dict[str, Any], **updates) -> RuleOutcome:
    return RuleOutcome(
        rule_id=rule.id,
        rule_name=rule.name,
        points=rule.reward_points,
        badge_id=rule.reward_badge_id,
        details=history_details(event_data, rule.name),
        **updates,
    )


# Gates. Each returns True when the rule may proceed.

def _max_count_gate(rule: RuleSpec, view: ProgressView, event_data: Dict[str, Any]) -> bool:
    max_count = rule.conditions.max_count
    if max_count is None:
        return True
    return view.count_rule_triggers(rule.trigger_event, rule.id) < max_count


def _content_type_gate(rule: RuleSpec, view: ProgressView, event_data: Dict[str, Any]) -> bool:
    expected = rule.conditions.content_type
    if rule.trigger_event != EventTypes.BUCKET_LIST_ADD or not expected:
        return True
    return _event_value(event_data, EventDataKeys.CONTENT_TYPE, "content_type") == expected


def _referrer_gate(rule: RuleSpec, view: ProgressView, event_data: Dict[str, Any]) -> bool:
    expected = rule.conditions.referrer
    if rule.trigger_event != EventTypes.USER_LOGIN or not expected:
        return True
    referrer = event_data.get(EventDataKeys.REFERRER)
    return isinstance(referrer, str) and expected in referrer


def _content_collection_gate(rule: RuleSpec, view: ProgressView, event_data: Dict[str, Any]) -> bool:
    required = rule.conditions.required_content_types
    if not required:
        return True
    return set(required).issubset(view.collected_content_types())


GATES = (
    ("max_count", _max_count_gate),
    ("content_type", _content_type_gate),
    ("referrer", _referrer_gate),
    ("content_collection", _content_collection_gate),
)


# Handlers, one per rule type

def _evaluate_immediate(rule, view, event_data, now, campaigns) -> RuleOutcome:
    return _reward(rule, event_data)


def _evaluate_milestone(rule, view, event_data, now, campaigns) -> RuleOutcome:
    current = view.milestone(rule.id)
    state = replace(current) if current else MilestoneState(rule_id=rule.id)
    was_achieved = state.achieved

    state.progress += 1

    target = rule.conditions.milestone_count
    max_count = rule.conditions.max_count
    if (
        target is not None
        and state.progress >= target
        and (max_count is None or state.progress <= max_count)
        and not state.achieved
    ):
        state.achieved = True
        state.achieved_at = now

    # Pays once, on the call that flips achieved to true
    if state.achieved and not was_achieved:
        return _reward(rule, event_data, milestone_update=state)
    return _zero(rule, milestone_update=state)


def _evaluate_streak(rule, view, event_data, now, campaigns) -> RuleOutcome:
    current = view.streak(rule.trigger_event)
    state = replace(current) if current else StreakState(streak_type=rule.trigger_event)

    if state.last_activity_date is None:
        state.current_streak = 1
    else:
        days = (now - state.last_activity_date).days
        if days == 1:
            state.current_streak += 1
        elif days > 1:
            state.current_streak = 1
        # same day: unchanged

    state.longest_streak = max(state.longest_streak, state.current_streak)
    state.last_activity_date = now

    streak_days = rule.conditions.streak_days
    if streak_days is not None and state.current_streak >= streak_days:
        return _reward(rule, event_data, streak_update=state)
    return _zero(rule, streak_update=state)


def _evaluate_campaign(rule, view, event_data, now, campaigns) -> RuleOutcome:
    if campaigns.has_active_for_rule(rule.id, now):
        return _reward(rule, event_data)
    return _zero(rule)


Handler = Callable[[RuleSpec, ProgressView, Dict[str, Any], datetime, CampaignLookup], RuleOutcome]

HANDLERS: Dict[RuleType, Handler] = {
    RuleType.IMMEDIATE: _evaluate_immediate,
    RuleType.MILESTONE: _evaluate_milestone,
    RuleType.STREAK: _evaluate_streak,
    RuleType.CAMPAIGN: _evaluate_campaign,
}

_unhandled = set(RuleType) - set(HANDLERS)
if _unhandled:
    raise RuntimeError(f"No evaluation handler for rule types: {sorted(t.value for t in _unhandled)}")


def evaluate_rule(
    rule: RuleSpec,
    view: ProgressView,
    event_data: Dict[str, Any],
    now: datetime,
    campaigns: CampaignLookup,
) -> RuleOutcome:
    """
    Evaluate one rule against the user's progress.

    Args:
        rule: Rule snapshot
        view: Progress as seen by this rule, including updates from rules
            evaluated earlier for the same event
        event_data: Payload submitted with the event
        now: Evaluation time (naive UTC)
        campaigns: Lookup for running campaigns

    Returns:
        Outcome with the reward and any milestone/streak update
    """
    for name, gate in GATES:
        if not gate(rule, view, event_data):
            logger.debug(f"Rule {rule.id} ({rule.name}) stopped at {name} gate")
            return _zero(rule)

    return HANDLERS[rule.rule_type](rule, view, event_data, now, campaigns)
