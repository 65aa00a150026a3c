from .gamification import (
    RuleConditions,
    RuleRewards,
    RuleCreate,
    RuleUpdate,
    RuleRead,
    BadgeBenefit,
    BadgeRequirements,
    BadgeCreate,
    BadgeUpdate,
    BadgeRead,
    CampaignRewards,
    CampaignCreate,
    CampaignUpdate,
    CampaignRead,
    validate_payload,
)

__all__ = [
    "RuleConditions",
    "RuleRewards",
    "RuleCreate",
    "RuleUpdate",
    "RuleRead",
    "BadgeBenefit",
    "BadgeRequirements",
    "BadgeCreate",
    "BadgeUpdate",
    "BadgeRead",
    "CampaignRewards",
    "CampaignCreate",
    "CampaignUpdate",
    "CampaignRead",
    "validate_payload",
]
