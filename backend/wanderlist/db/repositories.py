"""
Repository pattern implementation for data access.
"""

from datetime import datetime
from typing import Type, TypeVar, Generic, Optional, List, Dict, Any

from sqlalchemy import select, func, and_, or_
from sqlalchemy.orm import Session, selectinload

from .base import Base
from .models import (
    Rule,
    Badge,
    Campaign,
    UserProgress,
    UserBadge,
    ProcessedEvent,
    campaign_rules,
)

T = TypeVar('T', bound=Base)


class BaseRepository(Generic[T]):
    """
    Base repository class for CRUD operations.
    """

    def __init__(self, model_class: Type[T], session: Session):
        """
        Initialize repository.

        Args:
            model_class: SQLAlchemy model class
            session: Database session
        """
        self.model_class = model_class
        self.session = session

    def get(self, id: Any, **kwargs) -> Optional[T]:
        """
        Get a record by ID.

        Args:
            id: Record ID
            **kwargs: Additional equality filters

        Returns:
            Model instance or None
        """
        query = select(self.model_class).where(self.model_class.id == id)

        for key, value in kwargs.items():
            if hasattr(self.model_class, key):
                query = query.where(getattr(self.model_class, key) == value)

        return self.session.execute(query).unique().scalar_one_or_none()

    def get_by(self, **kwargs) -> Optional[T]:
        """
        Get a single record by multiple criteria.
        """
        query = select(self.model_class).where(self._build_filter_conditions(kwargs))
        return self.session.execute(query).unique().scalar_one_or_none()

    def get_all(
        self,
        skip: int = 0,
        limit: Optional[int] = 100,
        order_by: Optional[List[str]] = None,
        **filters
    ) -> List[T]:
        """
        Get all records with optional filtering and pagination.

        Args:
            skip: Number of records to skip
            limit: Maximum number of records to return, None for no limit
            order_by: Column names; a leading '-' sorts descending
            **filters: Filter criteria, see ``_build_filter_conditions``

        Returns:
            List of model instances
        """
        query = select(self.model_class)

        if filters:
            query = query.where(self._build_filter_conditions(filters))

        if order_by:
            order_clauses = []
            for order in order_by:
                if order.startswith('-'):
                    order_clauses.append(getattr(self.model_class, order[1:]).desc())
                else:
                    order_clauses.append(getattr(self.model_class, order).asc())
            query = query.order_by(*order_clauses)

        query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)

        return list(self.session.execute(query).unique().scalars().all())

    def create(self, **kwargs) -> T:
        """
        Create a new record and flush it so defaults and ids are populated.
        """
        instance = self.model_class(**kwargs)
        self.session.add(instance)
        self.session.flush()
        return instance

    def update(self, id: Any, **kwargs) -> Optional[T]:
        """
        Update a record.

        Args:
            id: Record ID
            **kwargs: Attributes to update

        Returns:
            Updated model instance or None if not found
        """
        instance = self.get(id)
        if instance:
            for key, value in kwargs.items():
                if hasattr(instance, key):
                    setattr(instance, key, value)
            self.session.flush()
        return instance

    def count(self, **filters) -> int:
        """
        Count records matching criteria.
        """
        query = select(func.count()).select_from(self.model_class)

        if filters:
            query = query.where(self._build_filter_conditions(filters))

        return self.session.execute(query).scalar() or 0

    def exists(self, **kwargs) -> bool:
        return self.count(**kwargs) > 0

    def _build_filter_conditions(self, filters: Dict[str, Any]):
        """
        Build SQLAlchemy filter conditions from dictionary.

        Values may be a scalar (equality), a list/tuple (IN), or a dict of
        operators: eq, neq, gt, gte, lt, lte, is_null, is_not_null, between.

        Args:
            filters: Filter dictionary

        Returns:
            SQLAlchemy filter conditions
        """
        conditions = []

        for key, value in filters.items():
            if not hasattr(self.model_class, key) or value is None:
                continue
            column = getattr(self.model_class, key)

            if isinstance(value, (list, tuple)):
                conditions.append(column.in_(value))
            elif isinstance(value, dict):
                for op, op_value in value.items():
                    if op == 'eq':
                        conditions.append(column == op_value)
                    elif op == 'neq':
                        conditions.append(column != op_value)
                    elif op == 'gt':
                        conditions.append(column > op_value)
                    elif op == 'gte':
                        conditions.append(column >= op_value)
                    elif op == 'lt':
                        conditions.append(column < op_value)
                    elif op == 'lte':
                        conditions.append(column <= op_value)
                    elif op == 'is_null':
                        conditions.append(column.is_(None))
                    elif op == 'is_not_null':
                        conditions.append(column.is_not(None))
                    elif op == 'between':
                        if isinstance(op_value, (list, tuple)) and len(op_value) == 2:
                            conditions.append(column.between(op_value[0], op_value[1]))
                    else:
                        raise ValueError(f"Unsupported filter operator: {op}")
            else:
                conditions.append(column == value)

        return and_(*conditions) if conditions else True


class RuleRepository(BaseRepository[Rule]):
    """Read access to reward rules."""

    def __init__(self, session: Session):
        super().__init__(Rule, session)

    def find_active_for_event(self, event_type: str, now: datetime) -> List[Rule]:
        """
        Rules triggered by ``event_type`` that are active and inside their
        optional date window at ``now``.

        Ordered by creation time then id so evaluation order is stable.
        """
        query = (
            select(Rule)
            .where(
                Rule.trigger_event == event_type,
                Rule.is_active.is_(True),
                or_(Rule.start_date.is_(None), Rule.start_date <= now),
                or_(Rule.end_date.is_(None), Rule.end_date >= now),
            )
            .order_by(Rule.created_at.asc(), Rule.id.asc())
        )
        return list(self.session.execute(query).unique().scalars().all())


class BadgeRepository(BaseRepository[Badge]):
    """Read access to badges."""

    def __init__(self, session: Session):
        super().__init__(Badge, session)

    def get_active(self, badge_id: str) -> Optional[Badge]:
        return self.get(badge_id, is_active=True)


class CampaignRepository(BaseRepository[Campaign]):
    """Campaign lookups used by campaign rules and profile queries."""

    def __init__(self, session: Session):
        super().__init__(Campaign, session)

    def has_active_for_rule(self, rule_id: str, now: datetime) -> bool:
        """
        True when at least one active campaign referencing ``rule_id``
        satisfies ``start_date <= now <= end_date``.
        """
        query = (
            select(func.count())
            .select_from(Campaign)
            .join(campaign_rules, campaign_rules.c.campaign_id == Campaign.id)
            .where(
                campaign_rules.c.rule_id == rule_id,
                Campaign.is_active.is_(True),
                Campaign.start_date <= now,
                Campaign.end_date >= now,
            )
        )
        return (self.session.execute(query).scalar() or 0) > 0

    def find_active(self, now: datetime) -> List[Campaign]:
        return self.get_all(
            limit=None,
            order_by=['start_date', 'id'],
            is_active=True,
            start_date={'lte': now},
            end_date={'gte': now},
        )


class UserProgressRepository(BaseRepository[UserProgress]):
    """Load and rank per-user progress records."""

    def __init__(self, session: Session):
        super().__init__(UserProgress, session)

    def get_for_user(self, user_id: str) -> Optional[UserProgress]:
        """
        Load a user's progress with all child collections eagerly loaded.
        """
        query = (
            select(UserProgress)
            .where(UserProgress.user_id == user_id)
            .options(
                selectinload(UserProgress.badges),
                selectinload(UserProgress.streaks),
                selectinload(UserProgress.milestones),
                selectinload(UserProgress.events),
            )
        )
        return self.session.execute(query).scalar_one_or_none()

    def leaderboard(self, since: Optional[datetime], limit: int) -> List[Dict[str, Any]]:
        """
        Rank progress records by points then level, both descending.

        Args:
            since: Only include records created at or after this time
            limit: Maximum number of rows

        Returns:
            Rows with user_id, points, level and badge count
        """
        badge_count = func.count(UserBadge.id).label("badge_count")
        query = (
            select(
                UserProgress.user_id,
                UserProgress.points,
                UserProgress.level,
                badge_count,
            )
            .outerjoin(UserBadge, UserBadge.progress_id == UserProgress.id)
            .group_by(UserProgress.id, UserProgress.user_id, UserProgress.points, UserProgress.level)
            .order_by(
                UserProgress.points.desc(),
                UserProgress.level.desc(),
                UserProgress.user_id.asc(),
            )
            .limit(limit)
        )
        if since is not None:
            query = query.where(UserProgress.created_at >= since)

        return [
            {
                "user_id": row.user_id,
                "points": row.points,
                "level": row.level,
                "badges": row.badge_count,
            }
            for row in self.session.execute(query)
        ]


class ProcessedEventRepository(BaseRepository[ProcessedEvent]):
    """Stored results of events submitted with a request id."""

    def __init__(self, session: Session):
        super().__init__(ProcessedEvent, session)

    def get_result(self, user_id: str, request_id: str) -> Optional[Dict[str, Any]]:
        record = self.get_by(user_id=user_id, request_id=request_id)
        return record.result if record else None
