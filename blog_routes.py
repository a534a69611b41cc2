import logging
import math
import secrets
import sys
import threading
from datetime import timedelta

from flask import Blueprint, current_app, jsonify, request

from auth import admin_required, protect
from cache import generate_if_stale, get_or_generate, is_fresh, next_refresh
from models import DEFAULT_GENRE, GENRES, BlogPost, db, isoformat, utcnow

logger = logging.getLogger(__name__)

bp = Blueprint("blogs", __name__, url_prefix="/api/blogs")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50
# keeps the row offset inside a 64-bit integer
MAX_PAGE = sys.maxsize // MAX_PAGE_SIZE

SINCE_WINDOWS = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}


def _int_arg(name, default):
    try:
        return int(request.args.get(name, ""))
    except ValueError:
        return default


def _genre_arg(value):
    """Return (genre, error_response)."""
    genre = (value or "").strip() or None
    if genre and genre not in GENRES:
        return None, (jsonify({"error": f"Unknown genre: {genre}", "genres": GENRES}), 400)
    return genre, None


def _escape_like(term):
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def paginate_args():
    page = min(max(_int_arg("page", 1), 1), MAX_PAGE)
    limit = min(max(_int_arg("limit", DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    return page, limit


def total_pages(total, limit):
    return math.ceil(total / limit) if limit else 0


# ===== Routes =====
@bp.route("/latest")
def latest():
    genre, error = _genre_arg(request.args.get("genre"))
    if error:
        return error

    try:
        post, generated = get_or_generate(genre)
    except Exception as e:
        logger.error("Error getting or generating blog: %s", e)
        return jsonify({"error": str(e)}), 500

    return jsonify({"blog": post.to_dict(), "fresh": generated, "nextRefresh": isoformat(next_refresh(post))})


@bp.route("/all")
def all_blogs():
    page, limit = paginate_args()
    genre, error = _genre_arg(request.args.get("genre"))
    if error:
        return error

    query = BlogPost.query
    if genre:
        query = query.filter(BlogPost.genre == genre)

    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{_escape_like(search)}%"
        query = query.filter(
            db.or_(BlogPost.title.ilike(pattern, escape="\\"), BlogPost.body.ilike(pattern, escape="\\"))
        )

    since = (request.args.get("since") or "").strip()
    if since and since != "all":
        if since not in SINCE_WINDOWS:
            return jsonify({"error": f"Unknown since filter: {since}", "allowed": sorted(SINCE_WINDOWS)}), 400
        query = query.filter(BlogPost.created_at >= utcnow() - SINCE_WINDOWS[since])

    total = query.count()
    posts = (
        query.order_by(BlogPost.created_at.desc(), BlogPost.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return jsonify(
        {
            "blogs": [p.to_dict() for p in posts],
            "totalPages": total_pages(total, limit),
            "currentPage": page,
            "total": total,
        }
    )


@bp.route("/<int:blog_id>")
def blog_by_id(blog_id):
    post = db.session.get(BlogPost, blog_id)
    if post is None:
        return jsonify({"error": "Blog not found"}), 404
    return jsonify({"blog": post.to_dict(), "fresh": is_fresh(post)})


def _run_generation(app, request_id, genre):
    with app.app_context():
        try:
            post = generate_if_stale(genre)
            if post is not None:
                logger.info("[%s] Blog generated successfully: %r (%s)", request_id, post.title, post.genre)
        except Exception as e:
            logger.error(
                "[%s] Background blog generation failed for genre %s: %s",
                request_id,
                genre or DEFAULT_GENRE,
                e,
            )


@bp.route("/generate", methods=["POST"])
@protect
@admin_required
def generate():
    genre, error = _genre_arg((request.get_json(silent=True) or {}).get("genre"))
    if error:
        return error

    request_id = secrets.token_hex(4)
    logger.info("[%s] Blog generation started for genre: %s", request_id, genre or DEFAULT_GENRE)

    app = current_app._get_current_object()
    if app.config.get("RUN_GENERATION_INLINE"):
        _run_generation(app, request_id, genre)
    else:
        threading.Thread(
            target=_run_generation,
            args=(app, request_id, genre),
            name=f"generate-{request_id}",
            daemon=True,
        ).start()

    return (
        jsonify(
            {
                "success": True,
                "message": "Blog generation started",
                "requestId": request_id,
                "genre": genre or DEFAULT_GENRE,
            }
        ),
        202,
    )
