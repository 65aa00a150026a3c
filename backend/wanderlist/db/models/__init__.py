# models/__init__.py

from .gamification import (
    RuleType,
    BadgeType,
    BadgeBenefitType,
    CampaignType,
    Rule,
    Badge,
    Campaign,
    UserProgress,
    UserBadge,
    UserStreak,
    UserMilestone,
    ProgressEvent,
    ProcessedEvent,
    campaign_rules,
)

__all__ = [
    'RuleType',
    'BadgeType',
    'BadgeBenefitType',
    'CampaignType',
    'Rule',
    'Badge',
    'Campaign',
    'UserProgress',
    'UserBadge',
    'UserStreak',
    'UserMilestone',
    'ProgressEvent',
    'ProcessedEvent',
    'campaign_rules',
]
