import logging

import click
from flask import Flask, jsonify, request
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

import auth
import blog_routes
from cache import generate_if_stale
from config import Config
from generator import generate_blog_post
from models import BlogPost, db

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level):
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    root.setLevel(level)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Reuse pooled connections across requests for server databases
    if not app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", dict(app.config["POOL_OPTIONS"]))

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    app.register_blueprint(auth.bp)
    app.register_blueprint(blog_routes.bp)
    register_misc_routes(app)
    register_error_handlers(app)
    register_commands(app)

    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = app.config.get("CORS_ORIGINS", "*")
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
        return response

    # CREATE TABLE IF NOT EXISTS semantics; safe on every start
    with app.app_context():
        db.create_all()

    return app


# ===== Health & diagnostics =====
def register_misc_routes(app):
    @app.route("/")
    def index():
        return "Backend is running!"

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.route("/api/diagnostics")
    def diagnostics():
        cfg = app.config
        try:
            db.session.execute(text("SELECT 1"))
            database, post_count = "connected", BlogPost.query.count()
        except Exception as e:
            logger.error("Diagnostics database check failed: %s", e)
            database, post_count = "error", None

        return jsonify(
            {
                "database": database,
                "postCount": post_count,
                "environment": cfg.get("APP_ENV"),
                "cacheWindowMinutes": cfg.get("CACHE_WINDOW_MINUTES"),
                "configured": {
                    "gemini": bool(cfg.get("GEMINI_API_URL") and cfg.get("GEMINI_API_KEY")),
                    "unsplash": bool(cfg.get("UNSPLASH_ACCESS_KEY")),
                    "jwtSecret": cfg.get("JWT_SECRET") != "default_fallback_secret",
                    "cronSecret": bool(cfg.get("CRON_SECRET")),
                },
            }
        )

    @app.route("/api/cors-test", methods=["GET", "POST", "OPTIONS"])
    def cors_test():
        return jsonify(
            {
                "message": "CORS is working",
                "origin": request.headers.get("Origin"),
                "method": request.method,
            }
        )


def register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        logger.info("Route not found: %s %s", request.method, request.path)
        return jsonify({"error": "Not Found", "message": f"Route {request.path} does not exist"}), 404

    @app.errorhandler(Exception)
    def server_error(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.name, "message": e.description}), e.code
        logger.exception("Server error")
        message = str(e) if app.debug else "Internal server error"
        return jsonify({"error": "Server error occurred", "message": message}), 500


def register_commands(app):
    @app.cli.command("generate-blog")
    @click.option("--genre", default=None, help="Genre slug to write about.")
    @click.option("--force", is_flag=True, help="Generate even if a fresh post exists.")
    def generate_blog_command(genre, force):
        """Generate one blog post now."""
        post = generate_blog_post(genre) if force else generate_if_stale(genre)
        if post is None:
            click.echo("A fresh post already exists; nothing generated.")
        else:
            click.echo(f"Saved #{post.id}: {post.title} ({post.genre})")


# Local dev entrypoint (production uses gunicorn "app:create_app()")
if __name__ == "__main__":
    from scheduler import setup_scheduler

    app = create_app()
    setup_scheduler(app)
    app.run(debug=app.config["APP_ENV"] == "development", host="127.0.0.1", port=app.config["PORT"], use_reloader=False)
