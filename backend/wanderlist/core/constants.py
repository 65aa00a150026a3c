"""
Application constants and enumerations.
"""

from enum import Enum


class EventTypes:
    """Event types submitted by calling code and written to progress history."""

    # Trackable user actions
    USER_LOGIN = "user_login"
    BUCKET_LIST_ADD = "bucket_list_add"
    BUCKET_LIST_COMPLETE = "bucket_list_complete"

    # History-only entries written outside the rule pipeline
    BADGE_AWARDED = "badge_awarded"
    POINTS_REDEMPTION = "points_redemption"


class EventDataKeys:
    """Keys read from ``event_data`` by the rule gates."""

    CONTENT_TYPE = "contentType"
    REFERRER = "referrer"
    RULE_NAME = "ruleName"


class LeaderboardTimeframe(str, Enum):
    """Leaderboard windows."""
    ALL = "all"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class GamificationConstants:
    """Reward engine defaults."""

    POINTS_PER_LEVEL = 1000
    DEFAULT_BADGE_AWARD_REASON = "manual_award"


class ErrorMessages:
    """Standard error messages."""

    INVALID_EVENT = "Event must carry a non-empty user id and event type"
    PROGRESS_NOT_FOUND = "User progress not found"
    INSUFFICIENT_POINTS = "Insufficient points"
    INVALID_COUPON = "Invalid coupon code"
    BADGE_UNAVAILABLE = "Badge not found or inactive"
    CONCURRENT_UPDATE = "User progress was modified concurrently"
    STORE_UNREACHABLE = "Gamification store is unreachable"
    STORE_FAILURE = "Gamification store operation failed"
