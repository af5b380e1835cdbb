from flask import current_app
from sqlalchemy import func, or_, and_

from models import db, Student, School, RoleEnum
from services.leaderboard_services import LeaderboardService
from utils.errors import NotFound
from utils.helpers import percent, round_half_up


class DashboardService:

    @staticmethod
    def school_dashboard(school_id):
        """Summary of a school's student population. Read-only."""
        school = School.query.filter_by(id=school_id).first()
        if not school:
            raise NotFound("School not found")

        points = func.coalesce(Student.eco_points, 0)
        challenges = func.coalesce(Student.challenges_completed, 0)
        in_school = and_(Student.role == RoleEnum.student, Student.school_id == school_id)

        total_students, total_challenges, total_points = (
            db.session.query(
                func.count(Student.id),
                func.coalesce(func.sum(challenges), 0),
                func.coalesce(func.sum(points), 0),
            )
            .filter(in_school)
            .one()
        )
        active = (
            Student.query
            .filter(in_school, or_(points > 0, challenges > 0))
            .count()
        )
        top_n = current_app.config.get("DASHBOARD_TOP_N", 10)

        return {
            "school_id": school.id,
            "school_name": school.name,
            "total_students": total_students,
            "active_participants": active,
            "total_challenges_completed": int(total_challenges),
            "total_points_earned": int(total_points),
            "participation_rate": percent(active, total_students),
            "average_points": round_half_up(int(total_points) / total_students) if total_students else 0,
            "top_students": LeaderboardService.top_students(top_n, school_id, "school"),
        }
