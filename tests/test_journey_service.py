"""
Tests for milestones, points, levels and journey stages.
"""
import pytest

from app.models import Client, FollowUp, JourneyStage, UserJourneyMilestone, UserJourneyProgress
from app.services import journey_service
from app.services.journey_service import ActivityCounts
from datetime import datetime, timedelta


def _add_clients(db_session, user, count):
    for i in range(count):
        db_session.add(Client(user_id=user.id, name=f"Client {i}"))
    db_session.commit()


def _milestone(db_session, user, milestone_type):
    return (
        db_session.query(UserJourneyMilestone)
        .filter(UserJourneyMilestone.user_id == user.id, UserJourneyMilestone.milestone_type == milestone_type)
        .one()
    )


@pytest.mark.unit
class TestLevelsAndStages:
    def test_level_every_fifty_points(self):
        assert journey_service.calculate_level(0) == 1
        assert journey_service.calculate_level(49) == 1
        assert journey_service.calculate_level(50) == 2
        assert journey_service.calculate_level(175) == 4

    def test_stage_needs_both_thresholds(self):
        assert journey_service.determine_stage(0, 0) == JourneyStage.ONBOARDING
        assert journey_service.determine_stage(60, 2) == JourneyStage.ONBOARDING
        assert journey_service.determine_stage(60, 3) == JourneyStage.EXPLORING
        assert journey_service.determine_stage(150, 8) == JourneyStage.ACTIVE
        assert journey_service.determine_stage(400, 11) == JourneyStage.ACTIVE
        assert journey_service.determine_stage(300, 12) == JourneyStage.POWER_USER
        assert journey_service.determine_stage(500, 15) == JourneyStage.EXPERT

    def test_count_predicates(self):
        assert journey_service.is_milestone_satisfied("five_clients_milestone", ActivityCounts(clients=5))
        assert not journey_service.is_milestone_satisfied("five_clients_milestone", ActivityCounts(clients=4))
        assert journey_service.is_milestone_satisfied("ten_follow_ups_milestone", ActivityCounts(follow_ups=10))
        # Types without a predicate are satisfied whenever they are triggered
        assert journey_service.is_milestone_satisfied("first_export", ActivityCounts())

    def test_catalog_has_fourteen_milestones(self):
        assert len(journey_service.MILESTONE_DEFINITIONS) == 14
        assert journey_service.MILESTONE_DEFINITIONS["profile_completed"].auto_complete is False


@pytest.mark.integration
class TestJourneyPersistence:
    def test_initialize_seeds_rows_with_two_completed(self, db_session, user):
        progress = journey_service.initialize_user_journey(db_session, user.id)

        assert db_session.query(UserJourneyMilestone).filter_by(user_id=user.id).count() == 14
        assert progress.total_points == 15
        assert progress.completed_milestones == 2
        assert progress.current_level == 1
        assert progress.journey_stage == JourneyStage.ONBOARDING

    def test_initialize_is_idempotent(self, db_session, user):
        journey_service.initialize_user_journey(db_session, user.id)
        journey_service.initialize_user_journey(db_session, user.id)

        assert db_session.query(UserJourneyMilestone).filter_by(user_id=user.id).count() == 14
        assert db_session.query(UserJourneyProgress).filter_by(user_id=user.id).count() == 1

    def test_predicate_must_hold(self, db_session, user):
        journey_service.initialize_user_journey(db_session, user.id)

        assert journey_service.check_and_complete_milestone(db_session, user.id, "first_client_added") is False

        _add_clients(db_session, user, 1)
        assert journey_service.check_and_complete_milestone(db_session, user.id, "first_client_added") is True
        assert _milestone(db_session, user, "first_client_added").completed_at is not None

    def test_completed_milestone_is_never_reset(self, db_session, user):
        journey_service.initialize_user_journey(db_session, user.id)
        _add_clients(db_session, user, 1)
        journey_service.check_and_complete_milestone(db_session, user.id, "first_client_added")
        completed_at = _milestone(db_session, user, "first_client_added").completed_at

        assert journey_service.check_and_complete_milestone(db_session, user.id, "first_client_added") is False
        assert _milestone(db_session, user, "first_client_added").completed_at == completed_at

    def test_fifth_client_awards_thirty_points_once(self, db_session, user):
        journey_service.initialize_user_journey(db_session, user.id)
        _add_clients(db_session, user, 5)

        newly = journey_service.check_milestones(db_session, user.id, journey_service.CLIENT_MILESTONES)
        assert newly == ["first_client_added", "five_clients_milestone"]
        progress = db_session.query(UserJourneyProgress).filter_by(user_id=user.id).one()
        assert progress.total_points == 15 + 20 + 30

        _add_clients(db_session, user, 1)
        assert journey_service.check_milestones(db_session, user.id, journey_service.CLIENT_MILESTONES) == []

    def test_unknown_type_raises(self, db_session, user):
        with pytest.raises(ValueError):
            journey_service.check_and_complete_milestone(db_session, user.id, "moon_landing")

    def test_check_all_leaves_manual_milestones_alone(self, db_session, user, sample_client):
        journey_service.initialize_user_journey(db_session, user.id)
        db_session.add(FollowUp(
            user_id=user.id, client_id=sample_client.id, title="Call", due_date=datetime.utcnow() + timedelta(days=1)
        ))
        db_session.commit()

        newly = journey_service.check_all_milestones(db_session, user.id)

        assert set(newly) == {"first_client_added", "first_follow_up_scheduled"}
        assert _milestone(db_session, user, "first_export").is_completed is False
        assert _milestone(db_session, user, "account_upgraded").is_completed is False

    def test_milestone_without_row_is_created(self, db_session, user):
        assert journey_service.check_and_complete_milestone(db_session, user.id, "first_export") is True
        assert _milestone(db_session, user, "first_export").is_completed is True

    def test_journey_data_initializes_lazily_in_catalog_order(self, db_session, user):
        data = journey_service.get_user_journey_data(db_session, user.id)

        assert data["progress"].total_points == 15
        assert [m.milestone_type for m in data["milestones"]] == list(journey_service.MILESTONE_DEFINITIONS)

    def test_safe_check_swallows_errors(self, db_session, user, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("db down")

        monkeypatch.setattr(journey_service, "get_activity_counts", explode)
        assert journey_service.safe_check_milestones(db_session, user.id, "first_client_added") == []
