from flask import Blueprint, jsonify, request
from flask_jwt_extended import create_access_token

from services.user_services import UserService

auth_bp = Blueprint("auth_bp", __name__)


def _token_for(user):
    return create_access_token(identity=str(user.id), additional_claims={"role": user.role.value})


@auth_bp.route("/register", methods=["POST"])
def register():
    user = UserService.register(request.get_json(silent=True))
    return jsonify({"access_token": _token_for(user), "user": user.to_dict()}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    user = UserService.authenticate(data.get("email"), data.get("password"))
    if not user:
        return jsonify({"error": "Invalid email or password"}), 401

    return jsonify({"access_token": _token_for(user), "user": user.to_dict()}), 200
