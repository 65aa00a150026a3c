"""
Tests for profile, leaderboard, manual awards and redemption.
"""

from datetime import datetime, timedelta

import pytest

from wanderlist.core.config import GamificationConfig
from wanderlist.core.exceptions import NotFoundError, ValidationError
from wanderlist.services.gamification import GamificationService
from wanderlist.services.gamification.queries import one_month_before


def earn(service, user_id, times=1, event_type="bucket_list_add"):
    for _ in range(times):
        service.process_event(user_id, event_type)


class TestUserProfile:
    def test_unknown_user_has_no_profile(self, service):
        assert service.get_user_profile("nobody") is None

    def test_profile_shape(self, service, admin, make_rule, clock):
        rule = make_rule(rewards={"points": 150})
        earn(service, "user-1")
        admin.create_campaign({
            "name": "Spring",
            "description": "Running now",
            "type": "seasonal",
            "startDate": (clock() - timedelta(days=1)).isoformat(),
            "endDate": (clock() + timedelta(days=1)).isoformat(),
        })
        admin.create_campaign({
            "name": "Autumn",
            "description": "Not yet",
            "type": "seasonal",
            "startDate": (clock() + timedelta(days=100)).isoformat(),
            "endDate": (clock() + timedelta(days=120)).isoformat(),
        })

        profile = service.get_user_profile("user-1")

        assert profile["user_id"] == "user-1"
        assert profile["points"] == 150
        assert profile["level"] == 1
        assert profile["next_level_progress"] == {"points_needed": 850, "percentage": 15.0}
        assert profile["completed_rules"] == [{
            "rule_id": rule.id,
            "count": 1,
            "last_completed_at": clock().isoformat(),
        }]
        assert [c["name"] for c in profile["active_campaigns"]] == ["Spring"]
        assert profile["badges"] == []
        assert profile["created_at"] == clock().isoformat()

    def test_next_level_progress_uses_configured_level_size(self, session_factory, clock, make_rule):
        make_rule(rewards={"points": 600})
        service = GamificationService(session_factory, GamificationConfig(points_per_level=500), clock)

        earn(service, "user-1")
        profile = service.get_user_profile("user-1")

        assert profile["level"] == 2
        assert profile["next_level_progress"] == {"points_needed": 400, "percentage": 20.0}


class TestLeaderboard:
    def test_ranked_by_points_then_level(self, service, make_rule, make_badge):
        badge = make_badge()
        make_rule(rewards={"points": 100})
        make_rule(triggerEvent="user_login", rewards={"points": 0, "badgeId": badge.id})
        earn(service, "alice", times=3)
        earn(service, "bob", times=5)
        earn(service, "carol", times=1)
        earn(service, "carol", event_type="user_login")

        board = service.get_leaderboard()

        assert [(e["rank"], e["user_id"], e["points"]) for e in board] == [
            (1, "bob", 500),
            (2, "alice", 300),
            (3, "carol", 100),
        ]
        assert [e["badges"] for e in board] == [0, 0, 1]
        assert all(e["level"] == 1 for e in board)

    def test_limit(self, service, make_rule):
        make_rule(rewards={"points": 100})
        for user in ("a", "b", "c"):
            earn(service, user)

        assert len(service.get_leaderboard(limit=2)) == 2

    def test_limit_is_capped(self, session_factory, clock, make_rule):
        make_rule(rewards={"points": 100})
        service = GamificationService(session_factory, GamificationConfig(leaderboard_max_limit=2), clock)
        for user in ("a", "b", "c"):
            earn(service, user)

        assert len(service.get_leaderboard(limit=50)) == 2

    def test_timeframes_filter_on_progress_creation(self, service, make_rule, clock):
        make_rule(rewards={"points": 100})
        earn(service, "veteran", times=5)
        clock.advance(days=10)
        earn(service, "regular", times=3)
        clock.advance(days=3)
        earn(service, "newcomer")
        # Old users stay out of short windows even when recently active
        earn(service, "veteran")

        assert [e["user_id"] for e in service.get_leaderboard("all")] == ["veteran", "regular", "newcomer"]
        assert [e["user_id"] for e in service.get_leaderboard("daily")] == ["newcomer"]
        assert [e["user_id"] for e in service.get_leaderboard("weekly")] == ["regular", "newcomer"]
        assert [e["user_id"] for e in service.get_leaderboard("monthly")] == ["veteran", "regular", "newcomer"]

    def test_unknown_timeframe(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.get_leaderboard("yearly")
        assert "timeframe" in exc_info.value.details["field_errors"]

    @pytest.mark.parametrize("limit", [0, -1, "10", True])
    def test_invalid_limit(self, service, limit):
        with pytest.raises(ValidationError):
            service.get_leaderboard("all", limit)


@pytest.mark.parametrize("moment, expected", [
    (datetime(2024, 3, 31, 8, 30), datetime(2024, 2, 29, 8, 30)),
    (datetime(2023, 3, 31), datetime(2023, 2, 28)),
    (datetime(2024, 1, 15), datetime(2023, 12, 15)),
    (datetime(2024, 7, 10), datetime(2024, 6, 10)),
])
def test_one_month_before(moment, expected):
    assert one_month_before(moment) == expected


class TestAwardBadge:
    def test_award_creates_progress_and_history(self, service, make_badge, history):
        badge = make_badge(name="Early bird")

        result = service.award_badge("user-1", badge.id)

        assert result["awarded"] is True
        assert result["badge"]["id"] == badge.id
        assert result["badge"]["name"] == "Early bird"
        assert [b["badge_id"] for b in result["profile"]["badges"]] == [badge.id]
        assert result["profile"]["points"] == 0
        assert history("user-1") == [{
            "event_type": "badge_awarded",
            "points": 0,
            "rule_id": None,
            "details": {"badgeId": badge.id, "reason": "manual_award"},
        }]

    def test_award_is_idempotent(self, service, make_badge, history):
        badge = make_badge()

        service.award_badge("user-1", badge.id, reason="support")
        again = service.award_badge("user-1", badge.id, reason="support")

        assert again["awarded"] is False
        assert len(again["profile"]["badges"]) == 1
        assert len(history("user-1")) == 1

    def test_missing_or_inactive_badge(self, service, admin, make_badge):
        with pytest.raises(NotFoundError):
            service.award_badge("user-1", "missing-badge")

        badge = make_badge()
        admin.update_badge(badge.id, {"isActive": False})
        with pytest.raises(NotFoundError):
            service.award_badge("user-1", badge.id)

        assert service.get_user_profile("user-1") is None


class TestCouponBadge:
    def test_coupon_maps_to_badge(self, session_factory, clock, make_badge, history):
        badge = make_badge(name="Product Hunt", type="partner")
        service = GamificationService(
            session_factory,
            GamificationConfig(coupon_badges={"PHUSER": badge.id}),
            clock,
        )

        result = service.award_coupon_badge("user-1", "PHUSER")

        assert result["awarded"] is True
        assert history("user-1")[0]["details"]["reason"] == "coupon:PHUSER"

    def test_unknown_coupon(self, service):
        with pytest.raises(ValidationError):
            service.award_coupon_badge("user-1", "NOPE")

    def test_coupon_for_missing_badge(self, session_factory, clock):
        service = GamificationService(
            session_factory,
            GamificationConfig(coupon_badges={"NITW25": "deleted-badge"}),
            clock,
        )
        with pytest.raises(NotFoundError):
            service.award_coupon_badge("user-1", "NITW25")


class TestRedeemPoints:
    def test_redeem_deducts_points_and_records_history(self, service, make_rule, history):
        make_rule(rewards={"points": 1200})
        earn(service, "user-1")

        remaining = service.redeem_points("user-1", 500, "deal-42")

        assert remaining == 700
        profile = service.get_user_profile("user-1")
        assert profile["points"] == 700
        assert profile["level"] == 1
        assert history("user-1")[-1] == {
            "event_type": "points_redemption",
            "points": -500,
            "rule_id": None,
            "details": {"dealId": "deal-42"},
        }

    def test_redeem_entire_balance(self, service, make_rule):
        make_rule(rewards={"points": 300})
        earn(service, "user-1")

        assert service.redeem_points("user-1", 300, "deal-1") == 0

    def test_insufficient_points(self, service, make_rule):
        make_rule(rewards={"points": 100})
        earn(service, "user-1")

        with pytest.raises(ValidationError) as exc_info:
            service.redeem_points("user-1", 101, "deal-1")

        assert exc_info.value.details == {"available": 100, "requested": 101}
        assert service.get_user_profile("user-1")["points"] == 100

    def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.redeem_points("nobody", 10, "deal-1")

    @pytest.mark.parametrize("points", [0, -5, 2.5, True])
    def test_amount_must_be_positive_integer(self, service, make_rule, points):
        make_rule(rewards={"points": 100})
        earn(service, "user-1")

        with pytest.raises(ValidationError):
            service.redeem_points("user-1", points, "deal-1")
