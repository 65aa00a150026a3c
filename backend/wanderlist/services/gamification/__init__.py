"""
Gamification engine: rule evaluation, progress aggregation and queries.
"""

from .service import GamificationService
from .admin import GamificationAdminService
from .aggregator import ProgressAggregator
from .awards import ManualAwards
from .queries import ProgressQueries
from .evaluator import evaluate_rule, CampaignLookup
from .state import (
    Conditions,
    RuleSpec,
    StreakState,
    MilestoneState,
    HistoryEntry,
    ProgressView,
    RuleOutcome,
    EventSummary,
    level_for_points,
)
from .transaction import transaction

__all__ = [
    "GamificationService",
    "GamificationAdminService",
    "ProgressAggregator",
    "ManualAwards",
    "ProgressQueries",
    "evaluate_rule",
    "CampaignLookup",
    "Conditions",
    "RuleSpec",
    "StreakState",
    "MilestoneState",
    "HistoryEntry",
    "ProgressView",
    "RuleOutcome",
    "EventSummary",
    "level_for_points",
    "transaction",
]
