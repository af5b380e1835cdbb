import itertools

import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from app import create_app
from config import TestConfig
from models import db, School, Student, Admin, Challenge, Quiz, QuizQuestion, DifficultyEnum
from utils.context import Actor

_ids = itertools.count(1)
PASSWORD_HASH = generate_password_hash("secret123", method="pbkdf2:sha256:1000")


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_school(app):
    def factory(name="Greenwood High"):
        school = School(name=name, email=f"school{next(_ids)}@example.com", password_hash=PASSWORD_HASH)
        db.session.add(school)
        db.session.commit()
        return school
    return factory


@pytest.fixture
def make_student(app):
    def factory(school=None, name=None, eco_points=0, challenges_completed=0, quizzes_taken=0, grade="10th"):
        n = next(_ids)
        student = Student(
            name=name or f"Student {n}",
            email=f"student{n}@example.com",
            password_hash=PASSWORD_HASH,
            school_id=school.id if school else None,
            grade=grade,
            eco_points=eco_points,
            challenges_completed=challenges_completed,
            quizzes_taken=quizzes_taken,
        )
        db.session.add(student)
        db.session.commit()
        return student
    return factory


@pytest.fixture
def make_admin(app):
    def factory():
        admin = Admin(name="Admin", email=f"admin{next(_ids)}@example.com", password_hash=PASSWORD_HASH)
        db.session.add(admin)
        db.session.commit()
        return admin
    return factory


@pytest.fixture
def make_challenge(app):
    def factory(school, points=10, **kwargs):
        kwargs.setdefault("title", "Water Conservation")
        kwargs.setdefault("difficulty", DifficultyEnum.medium)
        kwargs.setdefault("category", "Water")
        kwargs.setdefault("is_active", True)
        challenge = Challenge(school_id=school.id, created_by=school.id, points=points, **kwargs)
        db.session.add(challenge)
        db.session.commit()
        return challenge
    return factory


@pytest.fixture
def make_quiz(app):
    def factory(school, correct=(0, 1, 2), points=30, passing_score=60, **kwargs):
        kwargs.setdefault("title", "Environmental Basics")
        kwargs.setdefault("is_active", True)
        quiz = Quiz(school_id=school.id, created_by=school.id, points=points, passing_score=passing_score, **kwargs)
        quiz.questions = [
            QuizQuestion(position=i, prompt=f"Question {i + 1}", options=["a", "b", "c", "d"], correct_option=answer)
            for i, answer in enumerate(correct)
        ]
        db.session.add(quiz)
        db.session.commit()
        return quiz
    return factory


def actor_for(user):
    return Actor(user.id, user.role)


def auth_headers(user):
    token = create_access_token(identity=str(user.id), additional_claims={"role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


def reload(model, entity_id):
    db.session.expire_all()
    return db.session.get(model, entity_id)
