"""
Gamification models: reward rules, badges, campaigns and per-user progress.

Rules, badges and campaigns are administered outside the reward engine and
are read-only while an event is evaluated. ``UserProgress`` is the only
record the engine writes; its child rows hold the badge set, streak
counters, milestone counters and the append-only event history.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Enum, ForeignKey, Boolean, Text, JSON,
    Index, Table, UniqueConstraint,
)
from sqlalchemy.orm import relationship
import enum
from typing import Any, Dict, Optional

from ..base import Base, TimestampMixin, generate_uuid


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class RuleType(str, enum.Enum):
    """
    Reward rule variants. Each variant has exactly one evaluation function.
    """
    IMMEDIATE = "immediate"    # Pays every time the gates pass
    MILESTONE = "milestone"    # Pays when a cumulative count reaches a threshold
    STREAK = "streak"          # Pays while a consecutive-day streak is long enough
    CAMPAIGN = "campaign"      # Pays while a referencing campaign is running


class BadgeType(str, enum.Enum):
    ACHIEVEMENT = "achievement"
    MILESTONE = "milestone"
    SPECIAL = "special"
    PARTNER = "partner"


class BadgeBenefitType(str, enum.Enum):
    DISCOUNT = "discount"
    POINTS_MULTIPLIER = "points_multiplier"
    SPECIAL_ACCESS = "special_access"


class CampaignType(str, enum.Enum):
    TIME_LIMITED = "time_limited"
    PARTNER = "partner"
    SEASONAL = "seasonal"


campaign_rules = Table(
    "campaign_rules",
    Base.metadata,
    Column("campaign_id", String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), primary_key=True),
    Column("rule_id", String(36), ForeignKey("rules.id", ondelete="CASCADE"), primary_key=True),
)


class Badge(Base, TimestampMixin):
    """
    Named reward unit. The engine only looks at existence and ``is_active``.
    """

    __tablename__ = "badges"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    image_url = Column(String(1024), nullable=True)
    badge_type = Column(
        Enum(BadgeType, values_callable=_enum_values, native_enum=False, length=32),
        nullable=False,
    )
    benefits = Column(JSON, nullable=False, default=list, comment="List of {type, value, description}")
    partner_id = Column(String(100), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    requirements = Column(JSON, nullable=False, default=dict, comment="{points, activities, other_badges}")

    __table_args__ = (
        Index("ix_badges_type_active", "badge_type", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Badge(id={self.id}, name={self.name!r}, active={self.is_active})>"


class Rule(Base, TimestampMixin):
    """
    Declarative trigger-to-reward mapping.
    """

    __tablename__ = "rules"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    rule_type = Column(
        Enum(RuleType, values_callable=_enum_values, native_enum=False, length=32),
        nullable=False,
    )
    trigger_event = Column(String(100), nullable=False, comment="e.g. bucket_list_add, user_login")

    # milestone_count, streak_days, max_count, timeframe, content_type,
    # referrer, required_content_types
    conditions = Column(JSON, nullable=False, default=dict)

    reward_points = Column(Integer, nullable=False, default=0)
    reward_badge_id = Column(String(36), ForeignKey("badges.id", ondelete="SET NULL"), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)

    reward_badge = relationship("Badge", lazy="joined")
    campaigns = relationship("Campaign", secondary=campaign_rules, back_populates="rules")

    __table_args__ = (
        Index("ix_rules_trigger_active", "trigger_event", "is_active"),
    )

    @property
    def rewards(self) -> Dict[str, Any]:
        return {"points": self.reward_points or 0, "badge_id": self.reward_badge_id}

    def __repr__(self) -> str:
        return f"<Rule(id={self.id}, name={self.name!r}, type={self.rule_type}, trigger={self.trigger_event})>"


class Campaign(Base, TimestampMixin):
    """
    Time-boxed activation window for a set of campaign rules.
    """

    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    campaign_type = Column(
        Enum(CampaignType, values_callable=_enum_values, native_enum=False, length=32),
        nullable=False,
    )
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    partner_id = Column(String(100), nullable=True, index=True)
    rewards = Column(JSON, nullable=False, default=dict, comment="{points, badges, special_rewards}")
    is_active = Column(Boolean, nullable=False, default=True)

    rules = relationship("Rule", secondary=campaign_rules, back_populates="campaigns", lazy="selectin")

    __table_args__ = (
        Index("ix_campaigns_window", "start_date", "end_date", "is_active"),
    )

    @property
    def rule_ids(self):
        return [rule.id for rule in self.rules]

    def is_running(self, now) -> bool:
        return bool(self.is_active) and self.start_date <= now <= self.end_date

    def __repr__(self) -> str:
        return f"<Campaign(id={self.id}, name={self.name!r}, {self.start_date} - {self.end_date})>"


class UserProgress(Base, TimestampMixin):
    """
    Per-user gamification state.

    ``version`` is SQLAlchemy's optimistic-locking counter: an UPDATE that
    finds a different version raises ``StaleDataError``. Every write path
    touches ``last_activity_at`` so the row is updated (and the version
    checked) even when only child rows change.
    """

    __tablename__ = "user_progress"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(100), nullable=False, unique=True, index=True)
    points = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    last_activity_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)

    badges = relationship(
        "UserBadge", back_populates="progress", cascade="all, delete-orphan",
        order_by="UserBadge.id",
    )
    streaks = relationship(
        "UserStreak", back_populates="progress", cascade="all, delete-orphan",
        order_by="UserStreak.id",
    )
    milestones = relationship(
        "UserMilestone", back_populates="progress", cascade="all, delete-orphan",
        order_by="UserMilestone.id",
    )
    events = relationship(
        "ProgressEvent", back_populates="progress", cascade="all, delete-orphan",
        order_by="ProgressEvent.id",
    )

    __mapper_args__ = {"version_id_col": version}

    def has_badge(self, badge_id: str) -> bool:
        return any(b.badge_id == badge_id for b in self.badges)

    def find_streak(self, streak_type: str) -> Optional["UserStreak"]:
        return next((s for s in self.streaks if s.streak_type == streak_type), None)

    def find_milestone(self, rule_id: str) -> Optional["UserMilestone"]:
        return next((m for m in self.milestones if m.rule_id == rule_id), None)

    def __repr__(self) -> str:
        return f"<UserProgress(user_id={self.user_id}, points={self.points}, level={self.level})>"


class UserBadge(Base):
    __tablename__ = "user_badges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    progress_id = Column(String(36), ForeignKey("user_progress.id", ondelete="CASCADE"), nullable=False, index=True)
    badge_id = Column(String(36), ForeignKey("badges.id", ondelete="CASCADE"), nullable=False)
    earned_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    progress = relationship("UserProgress", back_populates="badges")
    badge = relationship("Badge")

    __table_args__ = (
        UniqueConstraint("progress_id", "badge_id", name="uq_user_badges_progress_badge"),
    )


class UserStreak(Base):
    __tablename__ = "user_streaks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    progress_id = Column(String(36), ForeignKey("user_progress.id", ondelete="CASCADE"), nullable=False, index=True)
    streak_type = Column(String(100), nullable=False, comment="Trigger event the streak counts")
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_activity_date = Column(DateTime, nullable=True)

    progress = relationship("UserProgress", back_populates="streaks")

    __table_args__ = (
        UniqueConstraint("progress_id", "streak_type", name="uq_user_streaks_progress_type"),
    )


class UserMilestone(Base):
    __tablename__ = "user_milestones"

    id = Column(Integer, primary_key=True, autoincrement=True)
    progress_id = Column(String(36), ForeignKey("user_progress.id", ondelete="CASCADE"), nullable=False, index=True)
    rule_id = Column(String(36), ForeignKey("rules.id", ondelete="CASCADE"), nullable=False)
    progress_count = Column(Integer, nullable=False, default=0)
    achieved = Column(Boolean, nullable=False, default=False)
    achieved_at = Column(DateTime, nullable=True)

    progress = relationship("UserProgress", back_populates="milestones")
    rule = relationship("Rule")

    __table_args__ = (
        UniqueConstraint("progress_id", "rule_id", name="uq_user_milestones_progress_rule"),
    )


class ProgressEvent(Base):
    """
    One entry of a user's append-only event history.

    The autoincrement id preserves insertion order.
    """

    __tablename__ = "progress_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    progress_id = Column(String(36), ForeignKey("user_progress.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    timestamp = Column(DateTime, nullable=False)
    points = Column(Integer, nullable=False, default=0)
    rule_id = Column(String(36), ForeignKey("rules.id", ondelete="SET NULL"), nullable=True)
    details = Column(JSON, nullable=False, default=dict)

    progress = relationship("UserProgress", back_populates="events")

    __table_args__ = (
        Index("ix_progress_events_progress_rule", "progress_id", "rule_id"),
    )


class ProcessedEvent(Base, TimestampMixin):
    """
    Stored result of an event submitted with a client request id.
    """

    __tablename__ = "processed_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), nullable=False)
    request_id = Column(String(255), nullable=False)
    event_type = Column(String(100), nullable=False)
    result = Column(JSON, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "request_id", name="uq_processed_events_user_request"),
    )
