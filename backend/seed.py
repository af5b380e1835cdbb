from datetime import datetime, timedelta
from werkzeug.security import generate_password_hash

from app import create_app
from models import db, School, Student, Ngo, Admin, RoleEnum
from services.challenge_services import ChallengeService
from services.quiz_services import QuizService
from utils.context import Actor


def seed_database():
    print("🔄 Resetting database...")
    db.drop_all()
    db.create_all()

    greenwood = School(
        name="Greenwood High",
        email="school@example.com",
        password_hash=generate_password_hash("school123"),
    )
    riverside = School(
        name="Riverside Academy",
        email="riverside@example.com",
        password_hash=generate_password_hash("river123"),
    )
    db.session.add_all([greenwood, riverside])
    db.session.commit()

    students = [
        Student(name="Asha Patel", email="asha@example.com", password_hash=generate_password_hash("asha123"),
                school_id=greenwood.id, grade="10th", student_number="GW2025001"),
        Student(name="Ben Okafor", email="ben@example.com", password_hash=generate_password_hash("ben123"),
                school_id=greenwood.id, grade="10th", student_number="GW2025002"),
        Student(name="Chen Li", email="chen@example.com", password_hash=generate_password_hash("chen123"),
                school_id=greenwood.id, grade="9th", student_number="GW2025003"),
        Student(name="Dara Murphy", email="dara@example.com", password_hash=generate_password_hash("dara123"),
                school_id=riverside.id, grade="11th", student_number="RA2025001"),
    ]
    db.session.add_all(students)
    db.session.add_all([
        Ngo(name="Clean Rivers Trust", email="ngo@example.com",
            password_hash=generate_password_hash("ngo123"), organization="Clean Rivers Trust"),
        Admin(name="Platform Admin", email="admin@example.com",
              password_hash=generate_password_hash("admin123")),
    ])
    db.session.commit()

    school_actor = Actor(greenwood.id, RoleEnum.school)
    water = ChallengeService.create_challenge(school_actor, {
        "title": "Water Conservation Week",
        "description": "Track and cut your household water use for a week",
        "points": 150,
        "difficulty": "medium",
        "category": "Water",
        "end_date": (datetime.utcnow() + timedelta(days=14)).isoformat(),
    })
    energy = ChallengeService.create_challenge(school_actor, {
        "title": "Home Energy Audit",
        "description": "Find three ways to reduce energy at home",
        "points": 200,
        "difficulty": "hard",
        "category": "Energy",
    })
    plastic = ChallengeService.create_challenge(school_actor, {
        "title": "Plastic Free Lunch",
        "points": 50,
        "category": "Waste",
        "target_students": "grade-specific",
        "target_grades": ["9th"],
    })
    basics = QuizService.create_quiz(school_actor, {
        "title": "Environmental Basics",
        "points": 120,
        "passing_score": 60,
        "questions": [
            {"prompt": "What is sustainability?",
             "options": ["Long-term balance", "Using more", "Ignoring waste"], "correct_option": 0},
            {"prompt": "Why recycle?",
             "options": ["Fun", "Reduce waste", "No reason"], "correct_option": 1},
            {"prompt": "Best renewable energy?",
             "options": ["Coal", "Oil", "Solar power"], "correct_option": 2},
        ],
    })
    print("🎯 Created challenges and quizzes")

    asha, ben, chen = (Actor(s.id, RoleEnum.student) for s in students[:3])
    ChallengeService.complete_challenge(asha, water["id"])
    ChallengeService.complete_challenge(asha, energy["id"])
    QuizService.submit_quiz(asha, basics["id"], [0, 1, 2], time_taken=4)
    ChallengeService.complete_challenge(ben, water["id"])
    QuizService.submit_quiz(ben, basics["id"], [0, 1, 0], time_taken=6)
    ChallengeService.enroll(chen, plastic["id"])
    ChallengeService.complete_challenge(chen, plastic["id"])
    print("🏅 Awarded points and badges")

    print("✅ Seed complete")


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        seed_database()
