from .auth import auth_bp
from .students import students_bp
from .schools import schools_bp
from .admin import admin_bp


def register_blueprints(app):
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(students_bp, url_prefix="/student")
    app.register_blueprint(schools_bp, url_prefix="/school")
    app.register_blueprint(admin_bp, url_prefix="/admin")
