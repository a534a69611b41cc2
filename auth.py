import hmac
import logging
from datetime import timedelta
from functools import wraps
from types import SimpleNamespace

import jwt
from flask import Blueprint, current_app, g, jsonify, request

from models import GENRES, BlogPost, User, db, utcnow, validate_credentials

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

JWT_ALGORITHM = "HS256"


# ===== Tokens =====
def generate_token(user_id):
    cfg = current_app.config
    payload = {
        "id": user_id,
        "exp": utcnow() + timedelta(days=cfg.get("JWT_EXPIRES_DAYS", 30)),
    }
    return jwt.encode(payload, cfg["JWT_SECRET"], algorithm=JWT_ALGORITHM)


def decode_token(token):
    return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[JWT_ALGORITHM])


def _cron_user():
    return SimpleNamespace(id="cron-system", email="cron@techinsightsai.local", role="admin")


def protect(view):
    """Require a Bearer token; sets ``g.current_user``.

    The configured CRON_SECRET is accepted as an admin token so the scheduled
    job can call protected routes.
    """

    @wraps(view)
    def wrapper(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer ") or not header[7:].strip():
            return jsonify({"message": "Not authorized, no token provided"}), 401
        token = header[7:].strip()

        cron_secret = current_app.config.get("CRON_SECRET")
        if cron_secret and hmac.compare_digest(token.encode(), cron_secret.encode()):
            g.current_user = _cron_user()
            return view(*args, **kwargs)

        try:
            payload = decode_token(token)
        except jwt.PyJWTError as e:
            logger.warning("Token verification failed: %s", e)
            return jsonify({"message": "Not authorized, token failed"}), 401

        user = db.session.get(User, payload.get("id")) if isinstance(payload.get("id"), int) else None
        if user is None:
            return jsonify({"message": "Not authorized, user not found"}), 401

        g.current_user = user
        return view(*args, **kwargs)

    return wrapper


def admin_required(view):
    """Use below ``protect``."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        user = g.get("current_user")
        if user is None or user.role != "admin":
            return jsonify({"message": "Not authorized as an admin"}), 403
        return view(*args, **kwargs)

    return wrapper


def _require_account():
    """Profile routes need a real account, not the cron identity."""
    user = g.current_user
    if not isinstance(user, User):
        return None, (jsonify({"message": "User not found"}), 404)
    return user, None


# ===== Routes =====
@bp.route("/register", methods=["POST"])
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    error = validate_credentials(email, password)
    if error:
        return jsonify({"message": error}), 400

    if User.query.filter_by(email=email).first():
        return jsonify({"message": "User already exists"}), 400

    user = User(email=email, preferences=[])
    user.set_password(password)
    try:
        db.session.add(user)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error in register")
        return jsonify({"message": "Server error during registration", "error": str(e)}), 500

    logger.info("Registered user id=%s", user.id)
    return jsonify(user.to_dict(token=generate_token(user.id))), 201


@bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first() if email else None
    if user is None or not user.check_password(password):
        logger.info("Failed login for %s", email or "<empty>")
        return jsonify({"message": "Invalid email or password"}), 401

    return jsonify(user.to_dict(token=generate_token(user.id)))


@bp.route("/profile", methods=["GET"])
@protect
def profile():
    user, error = _require_account()
    if error:
        return error
    return jsonify(user.to_dict(with_bookmarks=True))


@bp.route("/preferences", methods=["PUT"])
@protect
def update_preferences():
    user, error = _require_account()
    if error:
        return error

    prefs = (request.get_json(silent=True) or {}).get("preferences")
    if not isinstance(prefs, list) or any(p not in GENRES for p in prefs):
        return jsonify({"message": "preferences must be a list of genres", "genres": GENRES}), 400

    # de-duplicate, keep order
    user.preferences = list(dict.fromkeys(prefs))
    db.session.commit()
    return jsonify(user.to_dict(with_bookmarks=True))


@bp.route("/bookmarks/<int:blog_id>", methods=["POST", "DELETE"])
@protect
def bookmark(blog_id):
    user, error = _require_account()
    if error:
        return error

    post = db.session.get(BlogPost, blog_id)
    if post is None:
        return jsonify({"message": "Blog not found"}), 404

    if request.method == "POST":
        if post not in user.bookmarks:
            user.bookmarks.append(post)
    elif post in user.bookmarks:
        user.bookmarks.remove(post)
    db.session.commit()

    return jsonify({"bookmarks": [p.to_dict() for p in user.bookmarks]})
