import os


def _normalize_database_url(url: str) -> str:
    # Render/Heroku sometimes provide postgres:// which SQLAlchemy expects as postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "supersecret")
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(os.getenv("DATABASE_URL", "sqlite:///ecopoints.db"))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSONIFY_PRETTYPRINT_REGULAR = True

    # CORS: comma-separated origins for web builds
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173")

    # "running_total" or "derived"
    LEDGER_STRATEGY = os.getenv("LEDGER_STRATEGY", "running_total")

    LEADERBOARD_DEFAULT_LIMIT = int(os.getenv("LEADERBOARD_DEFAULT_LIMIT", "10"))
    LEADERBOARD_MAX_LIMIT = int(os.getenv("LEADERBOARD_MAX_LIMIT", "100"))
    DASHBOARD_TOP_N = int(os.getenv("DASHBOARD_TOP_N", "10"))
    ACTIVITY_FEED_LIMIT = int(os.getenv("ACTIVITY_FEED_LIMIT", "20"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length"
    LEDGER_STRATEGY = "running_total"
    LOG_LEVEL = "WARNING"
