from collections import namedtuple
from flask_jwt_extended import get_jwt, get_jwt_identity

from models import RoleEnum

# Who is calling a service. Built once per request at the HTTP edge.
Actor = namedtuple("Actor", ["user_id", "role"])


def current_actor():
    """Build the Actor for the JWT of the current request."""
    claims = get_jwt()
    role = claims.get("role")
    return Actor(int(get_jwt_identity()), RoleEnum(role) if role else None)
