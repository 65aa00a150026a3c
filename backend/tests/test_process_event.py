"""
Tests for event processing through GamificationService.
"""

import logging
from datetime import timedelta

import pytest
from sqlalchemy import select

from wanderlist.core.config import GamificationConfig
from wanderlist.core.exceptions import ValidationError
from wanderlist.db.models import ProcessedEvent, Rule
from wanderlist.services.gamification import GamificationService


class TestImmediateRules:
    """Immediate rules and level bookkeeping."""

    def test_first_event_creates_progress_and_awards_points(self, service, make_rule):
        make_rule(rewards={"points": 150})

        result = service.process_event("user-1", "bucket_list_add", {"contentType": "city"})

        assert result == {"points": 150, "badges": [], "milestones": [], "current_level": 1}
        profile = service.get_user_profile("user-1")
        assert profile["points"] == 150
        assert profile["level"] == 1

    def test_reaching_threshold_levels_up(self, service, make_rule):
        make_rule(triggerEvent="bucket_list_complete", rewards={"points": 999})
        make_rule(triggerEvent="user_login", rewards={"points": 1})

        assert service.process_event("user-1", "bucket_list_complete")["current_level"] == 1
        result = service.process_event("user-1", "user_login")

        assert result["current_level"] == 2
        assert service.get_user_profile("user-1")["points"] == 1000

    def test_level_matches_points_after_every_event(self, service, make_rule):
        make_rule(rewards={"points": 350})

        for _ in range(7):
            result = service.process_event("user-1", "bucket_list_add")
            profile = service.get_user_profile("user-1")
            assert profile["level"] == profile["points"] // 1000 + 1
            assert result["current_level"] == profile["level"]

    def test_points_from_all_matching_rules_are_summed(self, service, make_rule):
        make_rule(rewards={"points": 100})
        make_rule(name="Bonus", rewards={"points": 25})
        make_rule(triggerEvent="user_login", rewards={"points": 1000})

        result = service.process_event("user-1", "bucket_list_add")

        assert result["points"] == 125

    def test_event_without_rules_still_creates_progress(self, service):
        result = service.process_event("user-1", "bucket_list_add")

        assert result["points"] == 0
        assert service.get_user_profile("user-1")["points"] == 0

    def test_inactive_and_out_of_window_rules_are_ignored(self, service, make_rule, clock):
        make_rule(isActive=False)
        make_rule(startDate=(clock() + timedelta(days=1)).isoformat())
        make_rule(endDate=(clock() - timedelta(days=1)).isoformat())
        make_rule(
            startDate=(clock() - timedelta(days=1)).isoformat(),
            endDate=(clock() + timedelta(days=1)).isoformat(),
            rewards={"points": 7},
        )

        assert service.process_event("user-1", "bucket_list_add")["points"] == 7

    def test_rewarding_rules_are_written_to_history(self, service, make_rule, history):
        rule = make_rule(rewards={"points": 100})
        make_rule(name="City only", conditions={"contentType": "city"}, rewards={"points": 5})

        service.process_event("user-1", "bucket_list_add", {"contentType": "beach", "placeId": "p-9"})

        entries = history("user-1")
        assert entries == [{
            "event_type": "bucket_list_add",
            "points": 100,
            "rule_id": rule.id,
            "details": {"contentType": "beach", "placeId": "p-9", "ruleName": "Add to bucket list"},
        }]


class TestGates:
    def test_max_count_stops_rewards_after_n_triggers(self, service, make_rule):
        make_rule(conditions={"maxCount": 2})

        awarded = [service.process_event("user-1", "bucket_list_add")["points"] for _ in range(4)]

        assert awarded == [100, 100, 0, 0]

    def test_max_count_is_per_user(self, service, make_rule):
        make_rule(conditions={"maxCount": 1})

        assert service.process_event("user-1", "bucket_list_add")["points"] == 100
        assert service.process_event("user-2", "bucket_list_add")["points"] == 100
        assert service.process_event("user-1", "bucket_list_add")["points"] == 0

    def test_referrer_rule(self, service, make_rule):
        make_rule(triggerEvent="user_login", conditions={"referrer": "partner.example"}, rewards={"points": 300})

        assert service.process_event("user-1", "user_login", {"referrer": "https://www.partner.example/promo"})["points"] == 300
        assert service.process_event("user-2", "user_login", {"referrer": "https://elsewhere.example"})["points"] == 0
        assert service.process_event("user-3", "user_login")["points"] == 0

    def test_content_collection_rule(self, service, make_rule):
        make_rule(rewards={"points": 10})
        make_rule(
            name="Collector",
            triggerEvent="bucket_list_complete",
            conditions={"requiredContentTypes": ["city", "beach"]},
            rewards={"points": 500},
        )

        service.process_event("user-1", "bucket_list_add", {"contentType": "city"})
        assert service.process_event("user-1", "bucket_list_complete")["points"] == 0

        service.process_event("user-1", "bucket_list_add", {"contentType": "beach"})
        assert service.process_event("user-1", "bucket_list_complete")["points"] == 500


class TestMilestones:
    def test_milestone_progress_and_achievement(self, service, make_rule, make_badge):
        badge = make_badge(name="Dreamer")
        rule = make_rule(
            name="Three places",
            type="milestone",
            conditions={"milestoneCount": 3},
            rewards={"points": 200, "badgeId": badge.id},
        )

        results = [service.process_event("user-1", "bucket_list_add") for _ in range(4)]

        assert [r["points"] for r in results] == [0, 0, 200, 0]
        assert [r["milestones"][0]["progress"] for r in results] == [1, 2, 3, 4]
        assert [r["milestones"][0]["achieved"] for r in results] == [False, False, True, True]
        assert results[2]["badges"] == [badge.id]
        assert results[3]["badges"] == []

        milestones = service.get_user_profile("user-1")["milestones"]
        assert len(milestones) == 1
        assert milestones[0]["rule_id"] == rule.id
        assert milestones[0]["rule_name"] == "Three places"
        assert milestones[0]["progress"] == 4

    def test_milestone_progress_never_decreases(self, service, make_rule):
        make_rule(type="milestone", conditions={"milestoneCount": 2})

        seen = []
        for _ in range(5):
            result = service.process_event("user-1", "bucket_list_add")
            seen.append(result["milestones"][0]["progress"])

        assert seen == sorted(seen)


class TestStreaks:
    def test_daily_streak(self, service, make_rule, clock):
        make_rule(
            name="Three day login",
            type="streak",
            triggerEvent="user_login",
            conditions={"streakDays": 3},
            rewards={"points": 50},
        )

        def login():
            points = service.process_event("user-1", "user_login")["points"]
            streak = service.get_user_profile("user-1")["streaks"][0]
            return points, streak["current_streak"], streak["longest_streak"]

        assert login() == (0, 1, 1)
        clock.advance(hours=24)
        assert login() == (0, 2, 2)
        clock.advance(hours=25)
        assert login() == (50, 3, 3)
        # Same calendar day: unchanged, still long enough to pay
        clock.advance(hours=2)
        assert login() == (50, 3, 3)
        clock.advance(hours=60)
        assert login() == (0, 1, 3)

    def test_one_streak_per_type(self, service, make_rule):
        for name in ("Streak A", "Streak B"):
            make_rule(name=name, type="streak", triggerEvent="user_login", conditions={"streakDays": 1})

        result = service.process_event("user-1", "user_login")

        streaks = service.get_user_profile("user-1")["streaks"]
        assert len(streaks) == 1
        assert streaks[0]["type"] == "user_login"
        assert streaks[0]["current_streak"] == 1
        assert result["points"] == 200


class TestCampaignRules:
    def test_running_campaign_pays(self, service, admin, make_rule, clock):
        rule = make_rule(type="campaign", rewards={"points": 400})
        admin.create_campaign({
            "name": "Spring",
            "description": "Spring promotion",
            "type": "seasonal",
            "startDate": (clock() - timedelta(days=1)).isoformat(),
            "endDate": (clock() + timedelta(days=1)).isoformat(),
            "rules": [rule.id],
        })

        assert service.process_event("user-1", "bucket_list_add")["points"] == 400

    def test_expired_campaign_pays_nothing(self, service, admin, make_rule, clock):
        rule = make_rule(type="campaign", rewards={"points": 400})
        admin.create_campaign({
            "name": "Winter",
            "description": "Ended yesterday",
            "type": "time_limited",
            "startDate": (clock() - timedelta(days=30)).isoformat(),
            "endDate": (clock() - timedelta(days=1)).isoformat(),
            "rules": [rule.id],
        })

        assert service.process_event("user-1", "bucket_list_add")["points"] == 0

    def test_inactive_or_unrelated_campaign_pays_nothing(self, service, admin, make_rule, clock):
        rule = make_rule(type="campaign", rewards={"points": 400})
        other = make_rule(name="Other", type="campaign", triggerEvent="user_login")
        window = {
            "startDate": (clock() - timedelta(days=1)).isoformat(),
            "endDate": (clock() + timedelta(days=1)).isoformat(),
        }
        admin.create_campaign({"name": "Paused", "description": "x", "type": "partner",
                               "isActive": False, "rules": [rule.id], **window})
        admin.create_campaign({"name": "Other", "description": "x", "type": "partner",
                               "rules": [other.id], **window})

        assert service.process_event("user-1", "bucket_list_add")["points"] == 0


class TestBadgeGrants:
    def test_badge_granted_once_even_when_two_rules_award_it(self, service, make_rule, make_badge):
        badge = make_badge()
        make_rule(rewards={"points": 10, "badgeId": badge.id})
        make_rule(name="Again", rewards={"points": 10, "badgeId": badge.id})

        first = service.process_event("user-1", "bucket_list_add")
        second = service.process_event("user-1", "bucket_list_add")

        assert first["badges"] == [badge.id]
        assert second["badges"] == []
        badges = service.get_user_profile("user-1")["badges"]
        assert [b["badge_id"] for b in badges] == [badge.id]
        assert badges[0]["name"] == "Explorer"

    def test_manually_awarded_badge_is_not_granted_again(self, service, make_rule, make_badge):
        badge = make_badge()
        make_rule(rewards={"points": 10, "badgeId": badge.id})

        service.award_badge("user-1", badge.id)
        result = service.process_event("user-1", "bucket_list_add")

        assert result["badges"] == []
        assert result["points"] == 10
        assert len(service.get_user_profile("user-1")["badges"]) == 1

    def test_inactive_badge_is_skipped(self, service, admin, make_rule, make_badge):
        badge = make_badge()
        make_rule(rewards={"points": 10, "badgeId": badge.id})
        admin.update_badge(badge.id, {"isActive": False})

        result = service.process_event("user-1", "bucket_list_add")

        assert result["badges"] == []
        assert result["points"] == 10
        assert service.get_user_profile("user-1")["badges"] == []


class TestEventLogging:
    def test_records_carry_event_context(self, service, make_rule, make_badge, caplog):
        badge = make_badge()
        make_rule(rewards={"points": 10, "badgeId": badge.id})
        caplog.set_level(logging.DEBUG, logger="wanderlist")

        service.process_event("user-1", "bucket_list_add", request_id="req-9")

        processed = [r for r in caplog.records if r.getMessage().startswith("Processed bucket_list_add")]
        assert len(processed) == 1
        assert processed[0].user_id == "user-1"
        assert processed[0].event_type == "bucket_list_add"
        assert processed[0].request_id == "req-9"

        timed = [r for r in caplog.records if hasattr(r, "duration_ms")]
        assert timed and timed[-1].user_id == "user-1"
        assert timed[-1].duration_ms >= 0

    def test_skipped_badge_names_rule_and_badge(self, service, admin, make_rule, make_badge, caplog):
        badge = make_badge()
        rule = make_rule(rewards={"points": 10, "badgeId": badge.id})
        admin.update_badge(badge.id, {"isActive": False})
        caplog.set_level(logging.WARNING, logger="wanderlist")

        service.process_event("user-1", "bucket_list_add")

        warning = next(r for r in caplog.records if r.levelno == logging.WARNING)
        assert warning.rule_id == rule.id
        assert warning.badge_id == badge.id
        assert warning.user_id == "user-1"


class TestIdempotency:
    def test_repeated_request_id_replays_stored_result(self, service, make_rule, session_factory):
        make_rule(rewards={"points": 100})

        first = service.process_event("user-1", "bucket_list_add", request_id="req-1")
        replay = service.process_event("user-1", "bucket_list_add", request_id="req-1")

        assert replay == first
        assert service.get_user_profile("user-1")["points"] == 100
        with session_factory() as session:
            stored = session.execute(select(ProcessedEvent)).scalars().all()
            assert [(p.user_id, p.request_id) for p in stored] == [("user-1", "req-1")]

    def test_request_ids_are_scoped_per_user(self, service, make_rule):
        make_rule(rewards={"points": 100})

        service.process_event("user-1", "bucket_list_add", request_id="req-1")
        service.process_event("user-2", "bucket_list_add", request_id="req-1")
        service.process_event("user-1", "bucket_list_add", request_id="req-2")

        assert service.get_user_profile("user-1")["points"] == 200
        assert service.get_user_profile("user-2")["points"] == 100


class TestFailurePolicy:
    @staticmethod
    def corrupt_conditions(session_factory, rule_id):
        with session_factory() as session:
            rule = session.get(Rule, rule_id)
            rule.conditions = {"maxCount": "many"}
            session.commit()

    def test_failing_rule_aborts_whole_event(self, service, make_rule, session_factory):
        make_rule(rewards={"points": 100})
        broken = make_rule(name="Broken")
        self.corrupt_conditions(session_factory, broken.id)

        with pytest.raises(ValidationError):
            service.process_event("user-1", "bucket_list_add")

        assert service.get_user_profile("user-1") is None

    def test_isolated_failures_skip_only_the_broken_rule(self, session_factory, clock, make_rule):
        make_rule(rewards={"points": 100})
        broken = make_rule(name="Broken")
        self.corrupt_conditions(session_factory, broken.id)
        isolating = GamificationService(
            session_factory=session_factory,
            config=GamificationConfig(isolate_rule_failures=True),
            clock=clock,
        )

        result = isolating.process_event("user-1", "bucket_list_add")

        assert result["points"] == 100


class TestEventValidation:
    @pytest.mark.parametrize("user_id, event_type, event_data", [
        ("", "bucket_list_add", {}),
        ("user-1", "", {}),
        ("user-1", "bucket_list_add", ["not", "a", "dict"]),
    ])
    def test_invalid_event_is_rejected(self, service, user_id, event_type, event_data):
        with pytest.raises(ValidationError) as exc_info:
            service.process_event(user_id, event_type, event_data)

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert "field_errors" in exc_info.value.details

    @pytest.mark.parametrize("with_rule", [True, False])
    def test_unserializable_event_data_is_rejected(self, service, make_rule, with_rule):
        if with_rule:
            make_rule(rewards={"points": 100})

        with pytest.raises(ValidationError) as exc_info:
            service.process_event("user-1", "bucket_list_add", {("city", "beach"): 1})

        assert "event_data" in exc_info.value.details["field_errors"]
        assert service.get_user_profile("user-1") is None

    def test_non_json_values_are_stored_as_text(self, service, make_rule, history, clock):
        make_rule(rewards={"points": 100})

        service.process_event("user-1", "bucket_list_add", {"contentType": "city", "addedAt": clock()})

        assert history("user-1")[0]["details"]["addedAt"] == str(clock())
