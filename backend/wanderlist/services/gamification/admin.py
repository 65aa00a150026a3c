"""
Administration of rules, badges and campaigns.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.orm import Session, sessionmaker

from wanderlist.core.exceptions import NotFoundError, raise_not_found
from wanderlist.db.base import utcnow
from wanderlist.db.models import Rule
from wanderlist.db.repositories import BadgeRepository, CampaignRepository, RuleRepository
from wanderlist.schemas import (
    BadgeCreate,
    BadgeRead,
    BadgeUpdate,
    CampaignCreate,
    CampaignRead,
    CampaignUpdate,
    RuleCreate,
    RuleRead,
    RuleUpdate,
    validate_payload,
)

from .transaction import transaction

logger = logging.getLogger(__name__)

Payload = Union[Dict[str, Any], Any]


class GamificationAdminService:
    """
    CRUD for the records the reward engine reads.

    Every method runs in its own transaction and returns pydantic read
    models, never ORM instances.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock or utcnow

    # Rules

    def create_rule(self, payload: Payload) -> RuleRead:
        data = validate_payload(RuleCreate, payload)
        with transaction(self.session_factory, "create_rule") as db:
            self._check_badge(db, data.rewards.badge_id)
            rule = RuleRepository(db).create(**data.to_model_fields())
            logger.info(f"Created rule {rule.id} ({rule.name}) on {rule.trigger_event}")
            return RuleRead.model_validate(rule)

    def list_rules(self, active_only: bool = False) -> List[RuleRead]:
        filters = {"is_active": True} if active_only else {}
        with transaction(self.session_factory, "list_rules") as db:
            rules = RuleRepository(db).get_all(limit=None, order_by=["created_at", "id"], **filters)
            return [RuleRead.model_validate(r) for r in rules]

    def get_rule(self, rule_id: str) -> RuleRead:
        with transaction(self.session_factory, "get_rule") as db:
            return RuleRead.model_validate(self._require(RuleRepository(db), "rule", rule_id))

    def update_rule(self, rule_id: str, payload: Payload) -> RuleRead:
        """
        Apply a partial update. The merged rule must still be a valid
        ``RuleCreate``.
        """
        patch = validate_payload(RuleUpdate, payload)
        with transaction(self.session_factory, "update_rule") as db:
            repo = RuleRepository(db)
            rule = self._require(repo, "rule", rule_id)

            merged = {
                "name": rule.name,
                "description": rule.description,
                "rule_type": rule.rule_type,
                "trigger_event": rule.trigger_event,
                "conditions": dict(rule.conditions or {}),
                "rewards": {"points": rule.reward_points, "badge_id": rule.reward_badge_id},
                "is_active": rule.is_active,
                "start_date": rule.start_date,
                "end_date": rule.end_date,
            }
            merged.update(patch.model_dump(exclude_unset=True))
            data = validate_payload(RuleCreate, merged)

            self._check_badge(db, data.rewards.badge_id)
            for key, value in data.to_model_fields().items():
                setattr(rule, key, value)
            db.flush()
            logger.info(f"Updated rule {rule.id}: {sorted(patch.model_fields_set)}")
            return RuleRead.model_validate(rule)

    # Badges

    def create_badge(self, payload: Payload) -> BadgeRead:
        data = validate_payload(BadgeCreate, payload)
        with transaction(self.session_factory, "create_badge") as db:
            badge = BadgeRepository(db).create(**data.to_model_fields())
            logger.info(f"Created badge {badge.id} ({badge.name})")
            return BadgeRead.model_validate(badge)

    def list_badges(self, active_only: bool = True) -> List[BadgeRead]:
        filters = {"is_active": True} if active_only else {}
        with transaction(self.session_factory, "list_badges") as db:
            badges = BadgeRepository(db).get_all(limit=None, order_by=["created_at", "id"], **filters)
            return [BadgeRead.model_validate(b) for b in badges]

    def get_badge(self, badge_id: str, active_only: bool = False) -> BadgeRead:
        with transaction(self.session_factory, "get_badge") as db:
            repo = BadgeRepository(db)
            badge = repo.get_active(badge_id) if active_only else repo.get(badge_id)
            if badge is None:
                raise_not_found("badge", badge_id)
            return BadgeRead.model_validate(badge)

    def update_badge(self, badge_id: str, payload: Payload) -> BadgeRead:
        patch = validate_payload(BadgeUpdate, payload)
        with transaction(self.session_factory, "update_badge") as db:
            repo = BadgeRepository(db)
            self._require(repo, "badge", badge_id)
            badge = repo.update(badge_id, **patch.to_model_fields())
            logger.info(f"Updated badge {badge_id}: {sorted(patch.model_fields_set)}")
            return BadgeRead.model_validate(badge)

    # Campaigns

    def create_campaign(self, payload: Payload) -> CampaignRead:
        data = validate_payload(CampaignCreate, payload)
        with transaction(self.session_factory, "create_campaign") as db:
            fields = data.model_dump(exclude={"rules", "rewards"})
            fields["rewards"] = data.rewards.model_dump(mode="json", exclude_none=True)
            fields["rules"] = self._load_rules(db, data.rules)
            campaign = CampaignRepository(db).create(**fields)
            logger.info(f"Created campaign {campaign.id} ({campaign.name}) with {len(data.rules)} rules")
            return CampaignRead.model_validate(campaign)

    def list_campaigns(self, active: bool = False) -> List[CampaignRead]:
        """
        All campaigns, or only those running now when ``active`` is set.
        """
        with transaction(self.session_factory, "list_campaigns") as db:
            repo = CampaignRepository(db)
            if active:
                campaigns = repo.find_active(self.clock())
            else:
                campaigns = repo.get_all(limit=None, order_by=["start_date", "id"])
            return [CampaignRead.model_validate(c) for c in campaigns]

    def get_campaign(self, campaign_id: str) -> CampaignRead:
        with transaction(self.session_factory, "get_campaign") as db:
            return CampaignRead.model_validate(self._require(CampaignRepository(db), "campaign", campaign_id))

    def update_campaign(self, campaign_id: str, payload: Payload) -> CampaignRead:
        patch = validate_payload(CampaignUpdate, payload)
        with transaction(self.session_factory, "update_campaign") as db:
            campaign = self._require(CampaignRepository(db), "campaign", campaign_id)

            merged = {
                "name": campaign.name,
                "description": campaign.description,
                "campaign_type": campaign.campaign_type,
                "start_date": campaign.start_date,
                "end_date": campaign.end_date,
                "partner_id": campaign.partner_id,
                "rules": campaign.rule_ids,
                "rewards": dict(campaign.rewards or {}),
                "is_active": campaign.is_active,
            }
            merged.update(patch.model_dump(exclude_unset=True))
            data = validate_payload(CampaignCreate, merged)

            for key, value in data.model_dump(exclude={"rules", "rewards"}).items():
                setattr(campaign, key, value)
            campaign.rewards = data.rewards.model_dump(mode="json", exclude_none=True)
            if "rules" in patch.model_fields_set:
                campaign.rules = self._load_rules(db, data.rules)
            db.flush()
            logger.info(f"Updated campaign {campaign.id}: {sorted(patch.model_fields_set)}")
            return CampaignRead.model_validate(campaign)

    # Helpers

    @staticmethod
    def _require(repo, resource_type: str, resource_id: str):
        instance = repo.get(resource_id)
        if instance is None:
            raise_not_found(resource_type, resource_id)
        return instance

    @staticmethod
    def _check_badge(db: Session, badge_id: Optional[str]) -> None:
        if badge_id and not BadgeRepository(db).exists(id=badge_id):
            raise NotFoundError(
                message=f"Reward badge {badge_id} not found",
                resource_type="badge",
                resource_id=badge_id,
            )

    @staticmethod
    def _load_rules(db: Session, rule_ids: List[str]) -> List[Rule]:
        if not rule_ids:
            return []
        unique_ids = list(dict.fromkeys(rule_ids))
        rules = RuleRepository(db).get_all(limit=None, id=unique_ids)
        missing = sorted(set(unique_ids) - {r.id for r in rules})
        if missing:
            raise NotFoundError(
                message=f"Rules not found: {', '.join(missing)}",
                resource_type="rule",
                resource_id=missing[0],
            )
        return rules
