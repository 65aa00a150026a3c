"""
Gamification-related Pydantic schemas.

Write models validate administrative payloads for rules, badges and
campaigns. Field names are snake_case; camelCase aliases are accepted
so payloads produced by JavaScript clients validate unchanged.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from wanderlist.core.exceptions import ValidationError
from wanderlist.db.models import BadgeBenefitType, BadgeType, CampaignType, RuleType


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class CamelModel(BaseModel):
    """Base model accepting both field names and camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# Rules

class RuleConditions(CamelModel):
    """Optional gates and thresholds of a rule."""
    milestone_count: Optional[int] = Field(None, ge=1)
    streak_days: Optional[int] = Field(None, ge=1)
    max_count: Optional[int] = Field(None, ge=1)
    timeframe: Optional[str] = None
    content_type: Optional[str] = None
    referrer: Optional[str] = None
    required_content_types: List[str] = Field(default_factory=list)


class RuleRewards(CamelModel):
    points: int = Field(0, ge=0)
    badge_id: Optional[str] = None


class RuleCreate(CamelModel):
    """Payload for creating a rule."""
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    rule_type: RuleType = Field(..., alias="type")
    trigger_event: str = Field(..., min_length=1, max_length=100)
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    rewards: RuleRewards = Field(default_factory=RuleRewards)
    is_active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v):
        return _naive_utc(v)

    @model_validator(mode="after")
    def check_type_conditions(self):
        if self.rule_type == RuleType.MILESTONE and self.conditions.milestone_count is None:
            raise ValueError("milestone rules require conditions.milestone_count")
        if self.rule_type == RuleType.STREAK and self.conditions.streak_days is None:
            raise ValueError("streak rules require conditions.streak_days")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    def to_model_fields(self) -> Dict[str, Any]:
        """Flatten into ``Rule`` column values."""
        return {
            "name": self.name,
            "description": self.description,
            "rule_type": self.rule_type,
            "trigger_event": self.trigger_event,
            "conditions": self.conditions.model_dump(exclude_none=True),
            "reward_points": self.rewards.points,
            "reward_badge_id": self.rewards.badge_id,
            "is_active": self.is_active,
            "start_date": self.start_date,
            "end_date": self.end_date,
        }


class RuleUpdate(CamelModel):
    """
    Partial rule update.

    Only fields present in the payload are applied; the merged rule is
    validated again as a ``RuleCreate`` before it is stored.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    rule_type: Optional[RuleType] = Field(None, alias="type")
    trigger_event: Optional[str] = Field(None, min_length=1, max_length=100)
    conditions: Optional[RuleConditions] = None
    rewards: Optional[RuleRewards] = None
    is_active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v):
        return _naive_utc(v)


class RuleRead(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    rule_type: RuleType
    trigger_event: str
    conditions: Dict[str, Any]
    rewards: Dict[str, Any]
    is_active: bool
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Badges

class BadgeBenefit(CamelModel):
    type: BadgeBenefitType
    value: Optional[float] = None  # e.g. 10 for a 10% discount
    description: str = ""


class BadgeRequirements(CamelModel):
    points: Optional[int] = Field(None, ge=0)
    activities: List[str] = Field(default_factory=list)
    other_badges: List[str] = Field(default_factory=list)


class BadgeCreate(CamelModel):
    """Payload for creating a badge."""
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    image_url: Optional[str] = Field(None, max_length=1024)
    badge_type: BadgeType = Field(..., alias="type")
    benefits: List[BadgeBenefit] = Field(default_factory=list)
    partner_id: Optional[str] = None
    is_active: bool = True
    requirements: BadgeRequirements = Field(default_factory=BadgeRequirements)

    def to_model_fields(self) -> Dict[str, Any]:
        data = self.model_dump(exclude={"benefits", "requirements"})
        data["benefits"] = [b.model_dump(mode="json") for b in self.benefits]
        data["requirements"] = self.requirements.model_dump(mode="json", exclude_none=True)
        return data


class BadgeUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    image_url: Optional[str] = Field(None, max_length=1024)
    badge_type: Optional[BadgeType] = Field(None, alias="type")
    benefits: Optional[List[BadgeBenefit]] = None
    partner_id: Optional[str] = None
    is_active: Optional[bool] = None
    requirements: Optional[BadgeRequirements] = None

    def to_model_fields(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_unset=True, exclude={"benefits", "requirements"})
        if "benefits" in self.model_fields_set and self.benefits is not None:
            data["benefits"] = [b.model_dump(mode="json") for b in self.benefits]
        if "requirements" in self.model_fields_set and self.requirements is not None:
            data["requirements"] = self.requirements.model_dump(mode="json", exclude_none=True)
        return data


class BadgeRead(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    image_url: Optional[str] = None
    badge_type: BadgeType
    benefits: List[Dict[str, Any]]
    partner_id: Optional[str] = None
    is_active: bool
    requirements: Dict[str, Any]


# Campaigns

class SpecialReward(CamelModel):
    type: str
    value: Any = None
    description: str = ""


class CampaignRewards(CamelModel):
    points: Optional[int] = Field(None, ge=0)
    badges: List[str] = Field(default_factory=list)
    special_rewards: List[SpecialReward] = Field(default_factory=list)


class CampaignCreate(CamelModel):
    """Payload for creating a campaign. ``rules`` holds rule ids."""
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    campaign_type: CampaignType = Field(..., alias="type")
    start_date: datetime
    end_date: datetime
    partner_id: Optional[str] = None
    rules: List[str] = Field(default_factory=list)
    rewards: CampaignRewards = Field(default_factory=CampaignRewards)
    is_active: bool = True

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v):
        return _naive_utc(v)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class CampaignUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    campaign_type: Optional[CampaignType] = Field(None, alias="type")
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    partner_id: Optional[str] = None
    rules: Optional[List[str]] = None
    rewards: Optional[CampaignRewards] = None
    is_active: Optional[bool] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v):
        return _naive_utc(v)


class CampaignRead(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    campaign_type: CampaignType
    start_date: datetime
    end_date: datetime
    partner_id: Optional[str] = None
    rule_ids: List[str]
    rewards: Dict[str, Any]
    is_active: bool


def validate_payload(schema, payload: Any):
    """
    Validate ``payload`` against ``schema``.

    Args:
        schema: Pydantic model class
        payload: Dict, or an instance of ``schema``

    Returns:
        Validated model instance

    Raises:
        ValidationError: With per-field messages when validation fails
    """
    if isinstance(payload, schema):
        return payload
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as e:
        field_errors: Dict[str, List[str]] = {}
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"]) or "__root__"
            field_errors.setdefault(field, []).append(error["msg"])
        raise ValidationError(
            message=f"Invalid {schema.__name__} payload",
            field_errors=field_errors,
        ) from e
