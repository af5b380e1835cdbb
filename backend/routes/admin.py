from flask import Blueprint, jsonify, request

from services.user_services import UserService
from utils.context import current_actor
from utils.role_required import role_required

admin_bp = Blueprint("admin_bp", __name__)


@admin_bp.route("/users", methods=["GET"])
@role_required("admin")
def list_users():
    return jsonify(UserService.list_users(current_actor(), request.args.get("role"))), 200


@admin_bp.route("/users/<int:user_id>", methods=["PUT"])
@role_required("admin")
def update_user_role(user_id):
    data = request.get_json(silent=True) or {}
    user = UserService.update_role(current_actor(), user_id, data.get("role"))
    return jsonify({"message": "Role updated", "user": user}), 200


@admin_bp.route("/users/<int:user_id>", methods=["DELETE"])
@role_required("admin")
def delete_user(user_id):
    UserService.delete_user(current_actor(), user_id)
    return jsonify({"message": "User deleted"}), 200


@admin_bp.route("/ledger/drift", methods=["GET"])
@role_required("admin")
def ledger_drift_report():
    """Students whose totals disagree with their challenge/quiz records."""
    return jsonify(UserService.ledger_drift_report(current_actor())), 200
