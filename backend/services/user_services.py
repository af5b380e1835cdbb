from flask import current_app
from werkzeug.security import check_password_hash, generate_password_hash

from models import (
    User,
    Student,
    School,
    Ngo,
    RoleEnum,
    Challenge,
    ChallengeParticipation,
    Quiz,
    QuizSubmission,
    UserBadge,
    ActivityLog,
)
from services.store import Store
from services.badge_services import BadgeService
from services.activity_services import ActivityService
from services.leaderboard_services import LeaderboardService
from services.ledger_services import ledger_drift
from services.challenge_services import ChallengeService, load_student
from services.quiz_services import QuizService
from utils.constants import SELF_REGISTER_ROLES, MIN_PASSWORD_LENGTH
from utils.errors import Conflict, InvalidPayload, Forbidden, NotFound
from utils.helpers import is_int


def _parse_role(value, allowed=None):
    allowed = allowed or [role.value for role in RoleEnum]
    if value not in allowed:
        raise InvalidPayload(f"role must be one of {', '.join(allowed)}")
    return RoleEnum(value)


def _require_admin(actor, message):
    if actor.role != RoleEnum.admin:
        raise Forbidden(message)


class UserService:

    @staticmethod
    def authenticate(email, password):
        """Return the user for a valid email/password pair, else None."""
        if not email or not password:
            return None
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user or not check_password_hash(user.password_hash, password):
            current_app.logger.info("Failed login for %s", email)
            return None
        return user

    @staticmethod
    def register(data):
        """Create a student, school or NGO account. Students must name an existing school."""
        store = Store()
        data = data or {}
        name = (data.get("name") or "").strip()
        email = (data.get("email") or "").strip().lower()
        password = data.get("password") or ""
        if not name or not email or not password:
            raise InvalidPayload("name, email and password are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidPayload(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
        role = _parse_role(data.get("role", "student"), SELF_REGISTER_ROLES)
        if User.query.filter_by(email=email).first():
            raise Conflict("Email already registered")

        fields = {"name": name, "password_hash": generate_password_hash(password)}
        try:
            if role == RoleEnum.student:
                school_id = data.get("school_id")
                if not is_int(school_id):
                    raise InvalidPayload("school_id is required for students")
                if not store.get(School, school_id):
                    raise NotFound("School not found")
                user = Student(
                    email=email,
                    school_id=school_id,
                    grade=data.get("grade"),
                    student_number=data.get("student_number"),
                    eco_points=0,
                    challenges_completed=0,
                    quizzes_taken=0,
                    **fields,
                )
            elif role == RoleEnum.school:
                user = School(email=email, **fields)
            else:
                user = Ngo(email=email, organization=data.get("organization"), **fields)
        except ValueError as e:
            raise InvalidPayload(str(e))

        # The unique email index catches a concurrent sign-up with the same address.
        if not store.add(user):
            raise Conflict("Email already registered")
        store.save()
        current_app.logger.info("Registered %s account %s", role.value, user.id)
        return user

    @staticmethod
    def profile(actor):
        store = Store()
        student = load_student(store, actor)
        global_rank, global_total = LeaderboardService.rank(student, "global")
        school_rank, school_total = LeaderboardService.rank(student, "school")
        data = student.to_dict()
        data["school_name"] = store.get(School, student.school_id).name if student.school_id else None
        data["badge_progress"] = BadgeService.badge_progress(student)
        data["global_rank"] = {
            "rank": global_rank,
            "total_in_scope": global_total,
            "percentile": LeaderboardService.percentile(global_rank, global_total),
        }
        data["school_rank"] = {
            "rank": school_rank,
            "total_in_scope": school_total,
            "percentile": LeaderboardService.percentile(school_rank, school_total),
        }
        return data

    @staticmethod
    def activity(actor, limit=None, activity_type=None):
        limit = limit or current_app.config.get("ACTIVITY_FEED_LIMIT", 20)
        if activity_type and activity_type not in ("challenge", "quiz", "badge"):
            raise InvalidPayload("type must be one of challenge, quiz, badge")
        entries = ActivityService.recent(actor.user_id, limit=max(1, limit), activity_type=activity_type)
        return [entry.to_dict() for entry in entries]

    @staticmethod
    def list_schools():
        schools = School.query.order_by(School.name).all()
        return [{"id": s.id, "name": s.name} for s in schools]

    @staticmethod
    def list_users(actor, role=None):
        _require_admin(actor, "Only admins can list users")
        query = User.query
        if role:
            query = query.filter(User.role == _parse_role(role))
        return [u.to_dict() for u in query.order_by(User.id).all()]

    @staticmethod
    def _school_in_use(school_id):
        return (
            Student.query.filter_by(school_id=school_id).first() is not None
            or Challenge.query.filter_by(school_id=school_id).first() is not None
            or Quiz.query.filter_by(school_id=school_id).first() is not None
        )

    @staticmethod
    def update_role(actor, user_id, role):
        _require_admin(actor, "Only admins can change roles")
        store = Store()
        user = store.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        new_role = _parse_role(role)
        if user.id == actor.user_id and new_role != RoleEnum.admin:
            raise Forbidden("Admins cannot change their own role")
        if new_role == user.role:
            return user.to_dict()
        if user.role == RoleEnum.school and UserService._school_in_use(user.id):
            raise Conflict("School still has students or content")

        old_role = user.role
        store.conditional_update(User, user.id, {"role": new_role})
        # The role column picks the mapped class, so load the row again as its new type.
        store.session.expunge(user)
        store.save()
        current_app.logger.info("User %s role changed from %s to %s", user_id, old_role.value, new_role.value)
        return store.get(User, user_id).to_dict()

    @staticmethod
    def delete_user(actor, user_id):
        """Delete an account with its participations, submissions, badges and activity."""
        _require_admin(actor, "Only admins can delete users")
        store = Store()
        user = store.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        if user.id == actor.user_id:
            raise Forbidden("Admins cannot delete their own account")
        role = user.role
        if role == RoleEnum.school and UserService._school_in_use(user.id):
            raise Conflict("School still has students or content")

        if role == RoleEnum.student:
            challenges = (
                Challenge.query
                .join(ChallengeParticipation, ChallengeParticipation.challenge_id == Challenge.id)
                .filter(ChallengeParticipation.student_id == user.id)
                .all()
            )
            quizzes = (
                Quiz.query
                .join(QuizSubmission, QuizSubmission.quiz_id == Quiz.id)
                .filter(QuizSubmission.student_id == user.id)
                .all()
            )
            ChallengeParticipation.query.filter_by(student_id=user.id).delete(synchronize_session="fetch")
            QuizSubmission.query.filter_by(student_id=user.id).delete(synchronize_session="fetch")
            UserBadge.query.filter_by(user_id=user.id).delete(synchronize_session="fetch")
            for challenge in challenges:
                ChallengeService._refresh_counts(challenge)
            for quiz in quizzes:
                QuizService._refresh_counts(store, quiz)
        ActivityLog.query.filter_by(user_id=user.id).delete(synchronize_session="fetch")

        store.session.delete(user)
        store.save()
        current_app.logger.info("User %s (%s) deleted by admin %s", user_id, role.value, actor.user_id)

    @staticmethod
    def ledger_drift_report(actor):
        """Students whose stored totals disagree with their participation/submission rows."""
        _require_admin(actor, "Only admins can inspect the ledger")
        report = []
        for student in Student.query.order_by(Student.id).all():
            drift = ledger_drift(student)
            if drift:
                report.append({"user_id": student.id, "name": student.name, "drift": drift})
        if report:
            current_app.logger.warning("Ledger drift found for %d students", len(report))
        return {
            "strategy": current_app.config.get("LEDGER_STRATEGY", "running_total"),
            "students_with_drift": len(report),
            "students": report,
        }
