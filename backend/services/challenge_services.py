from datetime import datetime
from flask import current_app

from models import (
    Challenge,
    ChallengeParticipation,
    ParticipationStatusEnum,
    DifficultyEnum,
    TargetEnum,
    ActivityTypeEnum,
    RoleEnum,
    Student,
    School,
)
from services.store import Store
from services.badge_services import BadgeService
from services.activity_services import ActivityService
from services.ledger_services import get_ledger
from utils.errors import (
    NotFound,
    ExpiredOrInactive,
    Forbidden,
    AlreadyCompleted,
    InternalFailure,
    InvalidPayload,
)
from utils.helpers import parse_datetime, is_int, percent


COMPLETED = ParticipationStatusEnum.completed


def load_student(store, actor):
    if actor.role != RoleEnum.student:
        raise Forbidden("Only students can do this")
    student = store.get(Student, actor.user_id)
    if not student:
        raise NotFound("Student not found")
    return student


def load_school(store, actor):
    if actor.role != RoleEnum.school:
        raise Forbidden("Only schools can do this")
    school = store.get(School, actor.user_id)
    if not school:
        raise NotFound("School not found")
    return school


def parse_targeting(data):
    """Validate ``target_students``/``target_grades`` from a create payload."""
    try:
        target = TargetEnum(data.get("target_students", "all"))
    except ValueError:
        raise InvalidPayload("target_students must be 'all' or 'grade-specific'")
    grades = data.get("target_grades") or []
    if not isinstance(grades, list) or not all(isinstance(g, str) for g in grades):
        raise InvalidPayload("target_grades must be a list of strings")
    if target == TargetEnum.grade_specific and not grades:
        raise InvalidPayload("target_grades is required for grade-specific content")
    return target, grades


def parse_window(data):
    try:
        start_date = parse_datetime(data.get("start_date")) or datetime.utcnow()
        end_date = parse_datetime(data.get("end_date"))
    except ValueError:
        raise InvalidPayload("start_date and end_date must be ISO-8601 timestamps")
    if end_date and end_date <= start_date:
        raise InvalidPayload("end_date must be after start_date")
    return start_date, end_date


class ChallengeService:

    @staticmethod
    def _participation(challenge_id, student_id):
        return ChallengeParticipation.query.filter_by(
            challenge_id=challenge_id, student_id=student_id
        ).first()

    @staticmethod
    def _load_open_challenge(store, challenge_id):
        challenge = store.get(Challenge, challenge_id)
        if not challenge:
            raise NotFound("Challenge not found")
        if not challenge.is_open():
            raise ExpiredOrInactive("Challenge is inactive or has expired")
        return challenge

    @staticmethod
    def _refresh_counts(challenge):
        challenge.completed_count = challenge.participants.filter_by(status=COMPLETED).count()
        challenge.total_participants = challenge.participants.count()

    @staticmethod
    def _mark_completed(store, challenge, student, points, now):
        """Move the student's participation to completed exactly once."""
        participation = ChallengeService._participation(challenge.id, student.id)
        if participation is None:
            participation = ChallengeParticipation(
                challenge_id=challenge.id,
                student_id=student.id,
                status=COMPLETED,
                enrolled_at=now,
                completed_at=now,
                points_earned=points,
            )
            if store.add(participation):
                return participation
            # Another request created the row first.
            participation = ChallengeService._participation(challenge.id, student.id)
            if participation is None:
                raise InternalFailure()

        if participation.status == COMPLETED:
            raise AlreadyCompleted()

        changed = store.conditional_update(
            ChallengeParticipation,
            participation.id,
            {"status": COMPLETED, "completed_at": now, "points_earned": points},
            ChallengeParticipation.status != COMPLETED,
        )
        if not changed:
            store.rollback()
            raise AlreadyCompleted()
        return store.refresh(participation)

    @staticmethod
    def complete_challenge(actor, challenge_id):
        """Complete a challenge for the acting student and award its points."""
        store = Store()
        challenge = ChallengeService._load_open_challenge(store, challenge_id)
        student = load_student(store, actor)
        if student.school_id != challenge.school_id:
            raise Forbidden("Student is not enrolled in the issuing school")

        points = challenge.points or 0
        ChallengeService._mark_completed(store, challenge, student, points, datetime.utcnow())
        ChallengeService._refresh_counts(challenge)

        student = get_ledger().credit(store, student, points, "challenges_completed")
        new_badges = BadgeService.grant_badges(store, student)

        ActivityService.record(
            store,
            student.id,
            ActivityTypeEnum.challenge,
            challenge.id,
            title=challenge.title,
            description=challenge.description,
            points_earned=points,
            details={
                "difficulty": challenge.difficulty.value if challenge.difficulty else None,
                "category": challenge.category,
                "schoolId": challenge.school_id,
            },
        )
        ActivityService.record_badges(store, student, new_badges)

        result = {
            "points_earned": points,
            "total_points": student.eco_points,
            "challenges_completed": student.challenges_completed,
            "new_badges": [badge.to_dict() for badge in new_badges],
        }
        store.save()

        current_app.logger.info(
            "Student %s completed challenge %s (+%s pts, total %s)",
            student.id, challenge_id, points, result["total_points"],
        )
        return result

    @staticmethod
    def enroll(actor, challenge_id):
        """Join a challenge before completing it. Joining twice returns the same row."""
        store = Store()
        challenge = ChallengeService._load_open_challenge(store, challenge_id)
        student = load_student(store, actor)
        if student.school_id != challenge.school_id:
            raise Forbidden("Student is not enrolled in the issuing school")
        if not challenge.targets_grade(student.grade):
            raise Forbidden("Challenge is not open to your grade")

        participation = ChallengeService._participation(challenge.id, student.id)
        if participation is None:
            participation = ChallengeParticipation(
                challenge_id=challenge.id,
                student_id=student.id,
                status=ParticipationStatusEnum.enrolled,
                enrolled_at=datetime.utcnow(),
            )
            if not store.add(participation):
                participation = ChallengeService._participation(challenge_id, actor.user_id)
                return participation.to_dict()
            ChallengeService._refresh_counts(challenge)
            store.save()
        return participation.to_dict()

    @staticmethod
    def list_for_student(actor):
        """Open challenges of the student's school that target their grade."""
        store = Store()
        student = load_student(store, actor)
        now = datetime.utcnow()
        challenges = (
            Challenge.query
            .filter(Challenge.school_id == student.school_id, Challenge.is_active.is_(True))
            .filter((Challenge.end_date.is_(None)) | (Challenge.end_date > now))
            .order_by(Challenge.created_at.desc())
            .all()
        )
        own = {
            p.challenge_id: p
            for p in ChallengeParticipation.query.filter_by(student_id=student.id).all()
        }
        items = []
        for challenge in challenges:
            if not challenge.targets_grade(student.grade):
                continue
            data = challenge.to_dict()
            participation = own.get(challenge.id)
            data["my_status"] = participation.status.value if participation else None
            data["my_points_earned"] = participation.points_earned if participation else 0
            items.append(data)
        return items

    @staticmethod
    def create_challenge(actor, data):
        store = Store()
        school = load_school(store, actor)
        data = data or {}

        title = (data.get("title") or "").strip()
        if not title:
            raise InvalidPayload("Challenge title is required")
        points = data.get("points", 10)
        if not is_int(points) or points < 0:
            raise InvalidPayload("points must be a non-negative integer")
        try:
            difficulty = DifficultyEnum(data.get("difficulty", "easy"))
        except ValueError:
            raise InvalidPayload("difficulty must be one of easy, medium, hard")
        target, grades = parse_targeting(data)
        start_date, end_date = parse_window(data)

        challenge = Challenge(
            title=title,
            description=data.get("description"),
            points=points,
            difficulty=difficulty,
            category=data.get("category"),
            school_id=school.id,
            created_by=school.id,
            start_date=start_date,
            end_date=end_date,
            is_active=bool(data.get("is_active", True)),
            target_students=target,
            target_grades=grades,
            total_participants=0,
            completed_count=0,
        )
        store.session.add(challenge)
        store.save()
        return challenge.to_dict()

    @staticmethod
    def list_for_school(actor):
        store = Store()
        school = load_school(store, actor)
        challenges = (
            Challenge.query.filter_by(school_id=school.id)
            .order_by(Challenge.created_at.desc())
            .all()
        )
        return [c.to_dict() for c in challenges]

    @staticmethod
    def challenge_stats(actor, challenge_id):
        store = Store()
        school = load_school(store, actor)
        challenge = store.get(Challenge, challenge_id)
        if not challenge:
            raise NotFound("Challenge not found")
        if challenge.school_id != school.id:
            raise Forbidden("Challenge belongs to another school")

        participants = challenge.participants.order_by(ChallengeParticipation.enrolled_at).all()
        completed = [p for p in participants if p.status == COMPLETED]
        return {
            "challenge": challenge.to_dict(),
            "total_participants": len(participants),
            "completed_count": len(completed),
            "completion_rate": percent(len(completed), len(participants)),
            "points_awarded": sum(p.points_earned or 0 for p in completed),
            "participants": [p.to_dict() for p in participants],
        }
