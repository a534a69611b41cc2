import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    APP_ENV = os.getenv("APP_ENV", "development")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    PORT = int(os.getenv("PORT", "5000"))

    # SQLite locally, Postgres on Render
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///site.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Only applied to server databases; see create_app
    POOL_OPTIONS = {
        "pool_size": 5,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_timeout": 10,
    }

    JWT_SECRET = os.getenv("JWT_SECRET", "default_fallback_secret")
    JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "30"))
    CRON_SECRET = os.getenv("CRON_SECRET", "")

    GEMINI_API_URL = os.getenv("GEMINI_API_URL", "")
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
    GEMINI_TIMEOUT = int(os.getenv("GEMINI_TIMEOUT", "25"))

    UNSPLASH_ACCESS_KEY = os.getenv("UNSPLASH_ACCESS_KEY", "")
    UNSPLASH_TIMEOUT = int(os.getenv("UNSPLASH_TIMEOUT", "10"))

    CACHE_WINDOW_MINUTES = int(os.getenv("CACHE_WINDOW_MINUTES", "60"))
    GENERATION_INTERVAL_HOURS = int(os.getenv("GENERATION_INTERVAL_HOURS", "3"))
    RUN_GENERATION_INLINE = False

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024  # 10 MB
