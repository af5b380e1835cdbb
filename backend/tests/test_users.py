import pytest

from conftest import actor_for, auth_headers, reload
from models import (
    ActivityLog,
    Challenge,
    ChallengeParticipation,
    Ngo,
    Quiz,
    QuizSubmission,
    Student,
    User,
    UserBadge,
)
from services.challenge_services import ChallengeService
from services.quiz_services import QuizService
from services.user_services import UserService
from utils.errors import Conflict, Forbidden, InvalidPayload, NotFound


def registration(**overrides):
    data = {"name": "Dana", "email": "dana@example.com", "password": "recycle1", "role": "student"}
    data.update(overrides)
    return data


# Registration
def test_register_student_returns_usable_token(client, make_school):
    school = make_school()

    response = client.post("/auth/register", json=registration(school_id=school.id, grade="9th"))

    assert response.status_code == 201
    body = response.get_json()
    assert body["user"]["role"] == "student"
    assert body["user"]["school_id"] == school.id
    assert body["user"]["eco_points"] == 0
    headers = {"Authorization": f"Bearer {body['access_token']}"}
    assert client.get("/student/profile", headers=headers).status_code == 200

    login = client.post("/auth/login", json={"email": "DANA@example.com", "password": "recycle1"})
    assert login.status_code == 200


def test_register_school_and_ngo(app):
    school = UserService.register(registration(email="hq@school.org", role="school"))
    ngo = UserService.register(registration(email="ngo@example.org", role="ngo", organization="Green Earth"))

    assert UserService.list_schools() == [{"id": school.id, "name": "Dana"}]
    assert isinstance(reload(User, ngo.id), Ngo)
    assert reload(User, ngo.id).organization == "Green Earth"


@pytest.mark.parametrize("overrides", [
    {"school_id": None},
    {"school_id": "1"},
    {"role": "admin"},
    {"role": "teacher"},
    {"password": "abc"},
    {"email": "not-an-email"},
    {"name": " "},
])
def test_register_rejects_invalid_payloads(make_school, overrides):
    school = make_school()
    data = registration(school_id=school.id)
    data.update(overrides)

    with pytest.raises(InvalidPayload):
        UserService.register(data)
    assert User.query.filter_by(email="dana@example.com").count() == 0


def test_register_student_needs_an_existing_school(app):
    with pytest.raises(NotFound):
        UserService.register(registration(school_id=4242))


def test_register_duplicate_email_is_a_conflict(client, make_school):
    school = make_school()
    client.post("/auth/register", json=registration(school_id=school.id))

    response = client.post("/auth/register", json=registration(school_id=school.id, name="Other"))

    assert response.status_code == 409
    assert response.get_json() == {"error": "Email already registered"}
    assert User.query.filter_by(email="dana@example.com").count() == 1


# Role changes
def test_admin_changes_a_role(client, make_school, make_student, make_admin):
    student = make_student(make_school())
    headers = auth_headers(make_admin())

    response = client.put(f"/admin/users/{student.id}", json={"role": "ngo"}, headers=headers)

    assert response.status_code == 200
    assert response.get_json()["user"]["role"] == "ngo"
    assert isinstance(reload(User, student.id), Ngo)
    assert Student.query.filter_by(id=student.id).first() is None


def test_role_change_rules(make_school, make_student, make_admin):
    school = make_school()
    make_student(school)
    admin = make_admin()
    actor = actor_for(admin)

    with pytest.raises(Forbidden):
        UserService.update_role(actor, admin.id, "student")
    with pytest.raises(Conflict):
        UserService.update_role(actor, school.id, "ngo")
    with pytest.raises(InvalidPayload):
        UserService.update_role(actor, school.id, "principal")
    with pytest.raises(NotFound):
        UserService.update_role(actor, 9999, "ngo")
    with pytest.raises(Forbidden):
        UserService.update_role(actor_for(school), school.id, "admin")


def test_only_admins_reach_user_management_routes(client, make_school, make_student):
    school = make_school()
    student = make_student(school)
    headers = auth_headers(school)

    assert client.put(f"/admin/users/{student.id}", json={"role": "ngo"}, headers=headers).status_code == 403
    assert client.delete(f"/admin/users/{student.id}", headers=headers).status_code == 403


# Deletion
def test_deleting_a_student_removes_their_records(client, make_school, make_student, make_admin, make_challenge, make_quiz):
    school = make_school()
    student = make_student(school)
    other = make_student(school)
    challenge = make_challenge(school, points=150)
    quiz = make_quiz(school, points=30)
    ChallengeService.complete_challenge(actor_for(student), challenge.id)
    ChallengeService.complete_challenge(actor_for(other), challenge.id)
    QuizService.submit_quiz(actor_for(student), quiz.id, [0, 1, 2])
    student_id = student.id

    response = client.delete(f"/admin/users/{student_id}", headers=auth_headers(make_admin()))

    assert response.status_code == 200
    assert reload(User, student_id) is None
    assert ChallengeParticipation.query.filter_by(student_id=student_id).count() == 0
    assert QuizSubmission.query.filter_by(student_id=student_id).count() == 0
    assert UserBadge.query.filter_by(user_id=student_id).count() == 0
    assert ActivityLog.query.filter_by(user_id=student_id).count() == 0

    challenge = reload(Challenge, challenge.id)
    assert (challenge.total_participants, challenge.completed_count) == (1, 1)
    quiz = reload(Quiz, quiz.id)
    assert (quiz.total_participants, quiz.average_score) == (0, 0)
    assert reload(Student, other.id).eco_points == 150


def test_deletion_rules(make_school, make_student, make_admin):
    school = make_school()
    make_student(school)
    empty_school = make_school("Empty")
    admin = make_admin()
    actor = actor_for(admin)

    with pytest.raises(Forbidden):
        UserService.delete_user(actor, admin.id)
    with pytest.raises(Conflict):
        UserService.delete_user(actor, school.id)
    with pytest.raises(NotFound):
        UserService.delete_user(actor, 9999)

    empty_school_id = empty_school.id
    UserService.delete_user(actor, empty_school_id)
    assert reload(User, empty_school_id) is None
