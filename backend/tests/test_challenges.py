from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from conftest import actor_for, auth_headers, reload
from models import (
    db,
    ActivityLog,
    ActivityTypeEnum,
    Challenge,
    ChallengeParticipation,
    ParticipationStatusEnum,
    Student,
    TargetEnum,
)
from services.activity_services import ActivityService
from services.challenge_services import ChallengeService
from services.store import Store
from utils.errors import AlreadyCompleted, ExpiredOrInactive, Forbidden, InternalFailure, InvalidPayload, NotFound


def test_completing_a_150_point_challenge_awards_first_steps(make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school)
    challenge = make_challenge(school, points=150)

    result = ChallengeService.complete_challenge(actor_for(student), challenge.id)

    assert result["points_earned"] == 150
    assert result["total_points"] == 150
    assert result["challenges_completed"] == 1
    assert [b["id"] for b in result["new_badges"]] == ["first-steps"]

    challenge = reload(Challenge, challenge.id)
    assert challenge.completed_count == 1
    assert challenge.total_participants == 1
    participation = challenge.participants.one()
    assert participation.status == ParticipationStatusEnum.completed
    assert participation.points_earned == 150
    assert participation.completed_at is not None


def test_completion_appends_challenge_and_badge_activity(make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school)
    challenge = make_challenge(school, points=150, category="Water")

    ChallengeService.complete_challenge(actor_for(student), challenge.id)

    logs = ActivityLog.query.filter_by(user_id=student.id).order_by(ActivityLog.id).all()
    assert [log.activity_type for log in logs] == [ActivityTypeEnum.challenge, ActivityTypeEnum.badge]
    assert logs[0].points_earned == 150
    assert logs[0].details == {"difficulty": "medium", "category": "Water", "schoolId": school.id}
    assert logs[1].points_earned == 0
    assert logs[1].details["badgeId"] == "first-steps"


def test_second_completion_is_rejected_without_rescoring(make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school)
    challenge = make_challenge(school, points=40)
    actor = actor_for(student)
    ChallengeService.complete_challenge(actor, challenge.id)

    with pytest.raises(AlreadyCompleted):
        ChallengeService.complete_challenge(actor, challenge.id)

    student = reload(Student, student.id)
    assert student.eco_points == 40
    assert student.challenges_completed == 1
    assert reload(Challenge, challenge.id).completed_count == 1


def test_completing_after_enrolling_updates_the_same_participation(make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school)
    challenge = make_challenge(school, points=25)
    actor = actor_for(student)

    enrolled = ChallengeService.enroll(actor, challenge.id)
    assert enrolled["status"] == "enrolled"
    assert reload(Challenge, challenge.id).total_participants == 1

    ChallengeService.complete_challenge(actor, challenge.id)

    participations = ChallengeParticipation.query.filter_by(student_id=student.id).all()
    assert len(participations) == 1
    assert participations[0].id == enrolled["id"]
    assert participations[0].status == ParticipationStatusEnum.completed
    assert reload(Challenge, challenge.id).completed_count == 1


def test_enroll_twice_returns_existing_row(make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school)
    challenge = make_challenge(school)
    actor = actor_for(student)

    first = ChallengeService.enroll(actor, challenge.id)
    second = ChallengeService.enroll(actor, challenge.id)

    assert first["id"] == second["id"]
    assert reload(Challenge, challenge.id).total_participants == 1


def test_enroll_respects_grade_targeting(make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school, grade="10th")
    challenge = make_challenge(school, target_students=TargetEnum.grade_specific, target_grades=["9th"])

    with pytest.raises(Forbidden):
        ChallengeService.enroll(actor_for(student), challenge.id)


def test_missing_challenge(make_school, make_student):
    student = make_student(make_school())
    with pytest.raises(NotFound):
        ChallengeService.complete_challenge(actor_for(student), 999)


@pytest.mark.parametrize("kwargs", [
    {"is_active": False},
    {"end_date": datetime.utcnow() - timedelta(minutes=1)},
])
def test_inactive_or_expired_challenge(make_school, make_student, make_challenge, kwargs):
    school = make_school()
    student = make_student(school)
    challenge = make_challenge(school, **kwargs)

    with pytest.raises(ExpiredOrInactive):
        ChallengeService.complete_challenge(actor_for(student), challenge.id)
    assert reload(Student, student.id).eco_points == 0


def test_future_end_date_is_still_open(make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school)
    challenge = make_challenge(school, points=5, end_date=datetime.utcnow() + timedelta(days=1))

    assert ChallengeService.complete_challenge(actor_for(student), challenge.id)["total_points"] == 5


def test_student_from_another_school_is_forbidden(make_school, make_student, make_challenge):
    challenge = make_challenge(make_school("Greenwood"))
    outsider = make_student(make_school("Riverside"))

    with pytest.raises(Forbidden):
        ChallengeService.complete_challenge(actor_for(outsider), challenge.id)
    assert ChallengeParticipation.query.count() == 0


def test_non_student_actor_is_forbidden(make_school, make_challenge):
    school = make_school()
    challenge = make_challenge(school)

    with pytest.raises(Forbidden):
        ChallengeService.complete_challenge(actor_for(school), challenge.id)


def test_eco_points_never_decrease_across_actions(make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school)
    actor = actor_for(student)
    challenges = [make_challenge(school, points=p, title=f"C{p}") for p in (0, 120, 400, 5)]

    seen = [0]
    for challenge in challenges + challenges[:2]:
        try:
            seen.append(ChallengeService.complete_challenge(actor, challenge.id)["total_points"])
        except AlreadyCompleted:
            seen.append(reload(Student, student.id).eco_points)

    assert seen == sorted(seen)
    assert seen[-1] == 525
    student = reload(Student, student.id)
    assert student.badge_keys() == {"first-steps", "eco-warrior"}


def test_badges_stay_after_later_actions(make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school, eco_points=499)
    actor = actor_for(student)
    ChallengeService.complete_challenge(actor, make_challenge(school, points=1, title="a").id)
    ChallengeService.complete_challenge(actor, make_challenge(school, points=0, title="b").id)

    assert "eco-warrior" in reload(Student, student.id).badge_keys()


def test_list_for_student_filters_school_window_and_grade(make_school, make_student, make_challenge):
    school = make_school()
    other = make_school("Other")
    student = make_student(school, grade="10th")
    visible = make_challenge(school, title="Visible")
    make_challenge(school, title="Closed", is_active=False)
    make_challenge(school, title="Expired", end_date=datetime.utcnow() - timedelta(days=1))
    make_challenge(school, title="Grade 9", target_students=TargetEnum.grade_specific, target_grades=["9th"])
    make_challenge(other, title="Elsewhere")
    ChallengeService.complete_challenge(actor_for(student), visible.id)

    items = ChallengeService.list_for_student(actor_for(student))

    assert [c["title"] for c in items] == ["Visible"]
    assert items[0]["my_status"] == "completed"


def test_create_challenge_validates_payload(make_school):
    actor = actor_for(make_school())
    with pytest.raises(InvalidPayload):
        ChallengeService.create_challenge(actor, {"title": ""})
    with pytest.raises(InvalidPayload):
        ChallengeService.create_challenge(actor, {"title": "x", "points": -5})
    with pytest.raises(InvalidPayload):
        ChallengeService.create_challenge(actor, {"title": "x", "difficulty": "extreme"})
    with pytest.raises(InvalidPayload):
        ChallengeService.create_challenge(actor, {"title": "x", "target_students": "grade-specific"})

    created = ChallengeService.create_challenge(actor, {"title": "Tree Planting", "points": 75, "difficulty": "hard"})
    assert created["points"] == 75
    assert created["difficulty"] == "hard"
    assert created["is_active"] is True


def test_challenge_stats_for_owner_only(make_school, make_student, make_challenge):
    school = make_school()
    challenge = make_challenge(school, points=20)
    done = make_student(school)
    make_student(school)
    ChallengeService.complete_challenge(actor_for(done), challenge.id)

    stats = ChallengeService.challenge_stats(actor_for(school), challenge.id)
    assert stats["completed_count"] == 1
    assert stats["completion_rate"] == 100
    assert stats["points_awarded"] == 20

    with pytest.raises(Forbidden):
        ChallengeService.challenge_stats(actor_for(make_school("Other")), challenge.id)


def test_lost_completion_race_awards_nothing(monkeypatch, make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school)
    challenge = make_challenge(school, points=50)
    actor = actor_for(student)
    ChallengeService.enroll(actor, challenge.id)
    # Another request completed the row between our read and the guarded update.
    monkeypatch.setattr(Store, "conditional_update", lambda self, *args, **kwargs: False)

    with pytest.raises(AlreadyCompleted):
        ChallengeService.complete_challenge(actor, challenge.id)

    student = reload(Student, student.id)
    assert student.eco_points == 0
    assert student.challenges_completed == 0
    assert ChallengeParticipation.query.filter_by(student_id=student.id).one().status == ParticipationStatusEnum.enrolled
    assert ActivityLog.query.filter_by(user_id=student.id).count() == 0


def test_failed_activity_append_keeps_the_award(monkeypatch, make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school)
    challenge = make_challenge(school, points=150)
    record = ActivityService.record

    def record_without_title(store, user_id, activity_type, activity_id, title=None, **kwargs):
        return record(store, user_id, activity_type, activity_id, None, **kwargs)

    monkeypatch.setattr(ActivityService, "record", staticmethod(record_without_title))

    result = ChallengeService.complete_challenge(actor_for(student), challenge.id)

    assert result["total_points"] == 150
    student = reload(Student, student.id)
    assert student.eco_points == 150
    assert student.badge_keys() == {"first-steps"}
    assert ActivityLog.query.filter_by(user_id=student.id).count() == 0


def test_commit_failure_maps_to_503(monkeypatch, client, make_school, make_student, make_challenge):
    school = make_school()
    student = make_student(school)
    challenge = make_challenge(school, points=30)
    headers = auth_headers(student)

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db.session(), "commit", failing_commit)
    response = client.post(f"/student/challenges/{challenge.id}/complete", headers=headers)
    monkeypatch.undo()

    assert response.status_code == 503
    assert response.get_json() == {"error": InternalFailure.default_message}
    assert reload(Student, student.id).eco_points == 0
    assert ChallengeParticipation.query.filter_by(student_id=student.id).count() == 0
