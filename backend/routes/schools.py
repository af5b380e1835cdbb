from flask import Blueprint, jsonify, request

from services.challenge_services import ChallengeService
from services.quiz_services import QuizService
from services.dashboard_services import DashboardService
from services.leaderboard_services import LeaderboardService
from services.user_services import UserService
from utils.context import current_actor
from utils.role_required import role_required

schools_bp = Blueprint("schools_bp", __name__)


# Public route - students pick their school from this list
@schools_bp.route("/list", methods=["GET"])
def get_registered_schools():
    return jsonify(UserService.list_schools()), 200


@schools_bp.route("/dashboard", methods=["GET"])
@role_required("school")
def get_school_dashboard():
    return jsonify(DashboardService.school_dashboard(current_actor().user_id)), 200


@schools_bp.route("/leaderboard", methods=["GET"])
@role_required("school")
def get_school_leaderboard():
    limit = request.args.get("limit", type=int)
    entries = LeaderboardService.leaderboard(current_actor(), "school", limit)
    return jsonify({"scope": "school", "leaderboard": entries}), 200


# Challenge management
@schools_bp.route("/challenges", methods=["POST"])
@role_required("school")
def create_challenge():
    challenge = ChallengeService.create_challenge(current_actor(), request.get_json(silent=True))
    return jsonify(challenge), 201


@schools_bp.route("/challenges", methods=["GET"])
@role_required("school")
def get_school_challenges():
    return jsonify(ChallengeService.list_for_school(current_actor())), 200


@schools_bp.route("/challenges/<int:challenge_id>/stats", methods=["GET"])
@role_required("school")
def get_challenge_stats(challenge_id):
    return jsonify(ChallengeService.challenge_stats(current_actor(), challenge_id)), 200


# Quiz management
@schools_bp.route("/quizzes", methods=["POST"])
@role_required("school")
def create_quiz():
    quiz = QuizService.create_quiz(current_actor(), request.get_json(silent=True))
    return jsonify(quiz), 201


@schools_bp.route("/quizzes", methods=["GET"])
@role_required("school")
def get_school_quizzes():
    return jsonify(QuizService.list_for_school(current_actor())), 200


@schools_bp.route("/quizzes/<int:quiz_id>/stats", methods=["GET"])
@role_required("school")
def get_quiz_stats(quiz_id):
    return jsonify(QuizService.quiz_stats(current_actor(), quiz_id)), 200
