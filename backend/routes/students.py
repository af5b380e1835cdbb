from flask import Blueprint, jsonify, request

from services.challenge_services import ChallengeService
from services.quiz_services import QuizService
from services.leaderboard_services import LeaderboardService
from services.user_services import UserService
from utils.context import current_actor
from utils.role_required import role_required

students_bp = Blueprint("students_bp", __name__)


# Challenges
@students_bp.route("/challenges", methods=["GET"])
@role_required("student")
def get_student_challenges():
    return jsonify(ChallengeService.list_for_student(current_actor())), 200


@students_bp.route("/challenges/<int:challenge_id>/enroll", methods=["POST"])
@role_required("student")
def enroll_in_challenge(challenge_id):
    participation = ChallengeService.enroll(current_actor(), challenge_id)
    return jsonify({"message": "Enrolled", "participation": participation}), 200


@students_bp.route("/challenges/<int:challenge_id>/complete", methods=["POST"])
@role_required("student")
def complete_challenge(challenge_id):
    result = ChallengeService.complete_challenge(current_actor(), challenge_id)
    return jsonify({"message": "Challenge completed", **result}), 200


# Quizzes
@students_bp.route("/quizzes", methods=["GET"])
@role_required("student")
def get_student_quizzes():
    return jsonify(QuizService.list_for_student(current_actor())), 200


@students_bp.route("/quizzes/<int:quiz_id>/submit", methods=["POST"])
@role_required("student")
def submit_quiz(quiz_id):
    data = request.get_json(silent=True) or {}
    result = QuizService.submit_quiz(
        current_actor(),
        quiz_id,
        data.get("answers"),
        time_taken=data.get("time_taken"),
    )
    return jsonify({"message": "Quiz submitted", **result}), 200


# Leaderboard and profile
@students_bp.route("/leaderboard", methods=["GET"])
@role_required("student")
def get_leaderboard():
    scope = request.args.get("scope", "global")
    limit = request.args.get("limit", type=int)
    entries = LeaderboardService.leaderboard(current_actor(), scope, limit)
    return jsonify({"scope": scope, "leaderboard": entries}), 200


@students_bp.route("/rank", methods=["GET"])
@role_required("student")
def get_student_rank():
    scope = request.args.get("scope", "global")
    return jsonify(LeaderboardService.get_rank(current_actor(), scope)), 200


@students_bp.route("/profile", methods=["GET"])
@role_required("student")
def get_student_profile():
    return jsonify(UserService.profile(current_actor())), 200


@students_bp.route("/activity", methods=["GET"])
@role_required("student")
def get_student_activity():
    limit = request.args.get("limit", type=int)
    activity_type = request.args.get("type")
    return jsonify(UserService.activity(current_actor(), limit, activity_type)), 200
