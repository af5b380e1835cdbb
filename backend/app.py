from flask import Flask, jsonify
from flask_cors import CORS
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from sqlalchemy import event

from config import Config
from models import db
from routes import register_blueprints
from utils.constants import LEDGER_STRATEGIES
from utils.errors import EcoPointsError

migrate = Migrate()
jwt = JWTManager()


def _enable_sqlite_savepoints(engine):
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside the transaction on SQLite."""

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    if app.config["LEDGER_STRATEGY"] not in LEDGER_STRATEGIES:
        raise RuntimeError(f"LEDGER_STRATEGY must be one of {', '.join(LEDGER_STRATEGIES)}")

    # -------------------- CORS --------------------
    origins = [o.strip() for o in app.config["CORS_ORIGINS"].split(",") if o.strip()]
    CORS(
        app,
        resources={r"/*": {"origins": origins}},
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    )

    # -------------------- Extensions --------------------
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        with app.app_context():
            _enable_sqlite_savepoints(db.engine)

    # -------------------- Errors --------------------
    @app.errorhandler(EcoPointsError)
    def handle_eco_points_error(error):
        db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    # -------------------- Blueprints --------------------
    register_blueprints(app)

    @app.route("/")
    def home():
        return {"message": "Backend running!"}

    return app


if __name__ == "__main__":
    create_app().run(port=5555, debug=True, threaded=True)
