"""
Progress changes made outside the rule pipeline: manual and coupon badge
awards, and point redemption.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from wanderlist.core.config import GamificationConfig
from wanderlist.core.constants import ErrorMessages, EventTypes, GamificationConstants
from wanderlist.core.exceptions import NotFoundError, ValidationError
from wanderlist.db.models import ProgressEvent, UserBadge
from wanderlist.db.repositories import BadgeRepository, UserProgressRepository
from wanderlist.schemas import BadgeRead

from .queries import ProgressQueries
from .state import level_for_points
from .transaction import load_or_create_progress, touch

logger = logging.getLogger(__name__)


class ManualAwards:
    def __init__(self, session: Session, config: GamificationConfig, clock: Callable[[], datetime]):
        self.session = session
        self.config = config
        self.clock = clock
        self.badges = BadgeRepository(session)
        self.progress = UserProgressRepository(session)

    def award_badge(
        self,
        user_id: str,
        badge_id: str,
        reason: str = GamificationConstants.DEFAULT_BADGE_AWARD_REASON,
    ) -> Dict[str, Any]:
        """
        Grant a badge directly. Granting a badge the user already holds is
        a no-op.

        Args:
            user_id: Recipient
            badge_id: Badge to grant
            reason: Stored on the ``badge_awarded`` history entry

        Returns:
            ``{"awarded": bool, "badge": {...}, "profile": {...}}``

        Raises:
            NotFoundError: Badge does not exist or is inactive
        """
        badge = self.badges.get_active(badge_id)
        if badge is None:
            raise NotFoundError(
                message=ErrorMessages.BADGE_UNAVAILABLE,
                resource_type="badge",
                resource_id=badge_id,
            )

        now = self.clock()
        progress = load_or_create_progress(self.session, user_id, now)

        awarded = not progress.has_badge(badge.id)
        if awarded:
            progress.badges.append(UserBadge(badge_id=badge.id, badge=badge, earned_at=now))
            progress.events.append(ProgressEvent(
                event_type=EventTypes.BADGE_AWARDED,
                timestamp=now,
                points=0,
                details={"badgeId": badge.id, "reason": reason},
            ))
            touch(progress, now)
            self.session.flush()
            logger.info(
                f"Awarded badge {badge.id} to user {user_id} ({reason})",
                extra={"user_id": user_id, "badge_id": badge.id, "operation": "award_badge"},
            )
        else:
            logger.debug(f"User {user_id} already holds badge {badge.id}")

        return {
            "awarded": awarded,
            "badge": BadgeRead.model_validate(badge).model_dump(mode="json"),
            "profile": ProgressQueries(self.session, self.config, self.clock).build_profile(progress),
        }

    def award_coupon_badge(self, user_id: str, coupon_code: str) -> Dict[str, Any]:
        """
        Grant the badge configured for ``coupon_code``.

        Raises:
            ValidationError: Unknown coupon code
            NotFoundError: Mapped badge does not exist or is inactive
        """
        badge_id = self.config.coupon_badges.get(coupon_code) if coupon_code else None
        if not badge_id:
            raise ValidationError(
                message=ErrorMessages.INVALID_COUPON,
                field_errors={"coupon_code": [ErrorMessages.INVALID_COUPON]},
            )
        return self.award_badge(user_id, badge_id, reason=f"coupon:{coupon_code}")

    def redeem_points(self, user_id: str, points: int, deal_id: str) -> int:
        """
        Spend ``points`` on a deal.

        Returns:
            Remaining points

        Raises:
            ValidationError: Non-positive amount or insufficient balance
            NotFoundError: User has no progress record
        """
        if isinstance(points, bool) or not isinstance(points, int) or points < 1:
            raise ValidationError(
                message="Redeemed points must be a positive integer",
                field_errors={"points": [f"got {points!r}"]},
            )

        progress = self.progress.get_for_user(user_id)
        if progress is None:
            raise NotFoundError(
                message=ErrorMessages.PROGRESS_NOT_FOUND,
                resource_type="user_progress",
                resource_id=user_id,
            )

        if progress.points < points:
            raise ValidationError(
                message=ErrorMessages.INSUFFICIENT_POINTS,
                details={"available": progress.points, "requested": points},
            )

        now = self.clock()
        progress.points -= points
        progress.level = level_for_points(progress.points, self.config.points_per_level)
        progress.events.append(ProgressEvent(
            event_type=EventTypes.POINTS_REDEMPTION,
            timestamp=now,
            points=-points,
            details={"dealId": deal_id},
        ))
        touch(progress, now)
        self.session.flush()

        logger.info(
            f"User {user_id} redeemed {points} points for deal {deal_id}",
            extra={"user_id": user_id, "operation": "redeem_points"},
        )
        return progress.points
