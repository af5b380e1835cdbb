from flask import current_app
from sqlalchemy import func, or_, and_

from models import db, Student, UserBadge, RoleEnum
from services.store import Store
from utils.constants import RANK_SCOPES
from utils.errors import NotFound, Forbidden, InvalidPayload
from utils.helpers import percent


def _points():
    return func.coalesce(Student.eco_points, 0)


def _challenges():
    return func.coalesce(Student.challenges_completed, 0)


def ranking_order():
    """Points desc, then completed challenges desc; id keeps pages stable."""
    return (_points().desc(), _challenges().desc(), Student.id.asc())


def students_in_scope(school_id=None, scope="global"):
    query = Student.query
    if scope == "school":
        query = query.filter(Student.school_id == school_id)
    return query


class LeaderboardService:

    @staticmethod
    def resolve_scope(store, actor, scope):
        """Return the school id a scope refers to for this actor (None for global)."""
        scope = scope or "global"
        if scope not in RANK_SCOPES:
            raise InvalidPayload(f"scope must be one of {', '.join(RANK_SCOPES)}")
        if scope == "global":
            return scope, None
        if actor.role == RoleEnum.school:
            return scope, actor.user_id
        if actor.role == RoleEnum.student:
            student = store.get(Student, actor.user_id)
            if not student:
                raise NotFound("Student not found")
            return scope, student.school_id
        raise Forbidden("School scope needs a student or school account")

    @staticmethod
    def rank(student, scope="global"):
        """1 + number of students in scope strictly ahead of ``student``."""
        points = student.eco_points or 0
        challenges = student.challenges_completed or 0
        ahead = (
            students_in_scope(student.school_id, scope)
            .filter(
                or_(
                    _points() > points,
                    and_(_points() == points, _challenges() > challenges),
                )
            )
            .count()
        )
        total = students_in_scope(student.school_id, scope).count()
        return ahead + 1, total

    @staticmethod
    def percentile(rank, total):
        if not total:
            return 0
        return percent(total - rank, total)

    @staticmethod
    def get_rank(actor, scope="global"):
        store = Store()
        if actor.role != RoleEnum.student:
            raise Forbidden("Only students have a rank")
        scope, _ = LeaderboardService.resolve_scope(store, actor, scope)
        student = store.get(Student, actor.user_id)
        if not student:
            raise NotFound("Student not found")
        rank, total = LeaderboardService.rank(student, scope)
        return {
            "rank": rank,
            "total_in_scope": total,
            "percentile": LeaderboardService.percentile(rank, total),
            "eco_points": student.eco_points or 0,
            "challenges_completed": student.challenges_completed or 0,
            "quizzes_taken": student.quizzes_taken or 0,
        }

    @staticmethod
    def top_students(limit, school_id=None, scope="global"):
        """Top ``limit`` students with a 1-based rank equal to their position."""
        badge_counts = (
            db.session.query(UserBadge.user_id, func.count(UserBadge.id).label("badge_count"))
            .group_by(UserBadge.user_id)
            .subquery()
        )
        rows = (
            students_in_scope(school_id, scope)
            .add_columns(func.coalesce(badge_counts.c.badge_count, 0))
            .outerjoin(badge_counts, badge_counts.c.user_id == Student.id)
            .order_by(*ranking_order())
            .limit(limit)
            .all()
        )
        return [
            {
                "rank": position,
                "user_id": student.id,
                "name": student.name,
                "eco_points": student.eco_points or 0,
                "challenges_completed": student.challenges_completed or 0,
                "quizzes_taken": student.quizzes_taken or 0,
                "badge_count": badge_count,
            }
            for position, (student, badge_count) in enumerate(rows, start=1)
        ]

    @staticmethod
    def clamp_limit(limit):
        default = current_app.config.get("LEADERBOARD_DEFAULT_LIMIT", 10)
        maximum = current_app.config.get("LEADERBOARD_MAX_LIMIT", 100)
        if limit is None or limit < 1:
            limit = default
        return min(limit, maximum)

    @staticmethod
    def leaderboard(actor, scope="global", limit=None):
        store = Store()
        scope, school_id = LeaderboardService.resolve_scope(store, actor, scope)
        entries = LeaderboardService.top_students(LeaderboardService.clamp_limit(limit), school_id, scope)
        for entry in entries:
            entry["is_current_user"] = entry["user_id"] == actor.user_id
        return entries
