"""Time-window gate in front of blog generation."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from flask import current_app

from generator import generate_blog_post
from models import BlogPost, utcnow

logger = logging.getLogger(__name__)


def cache_window() -> timedelta:
    return timedelta(minutes=current_app.config.get("CACHE_WINDOW_MINUTES", 60))


def latest_post(genre: str | None = None) -> BlogPost | None:
    query = BlogPost.query
    if genre:
        query = query.filter_by(genre=genre)
    return query.order_by(BlogPost.created_at.desc(), BlogPost.id.desc()).first()


def is_fresh(post: BlogPost | None, now: datetime | None = None, window: timedelta | None = None) -> bool:
    if post is None or post.created_at is None:
        return False
    now = now or utcnow()
    window = window if window is not None else cache_window()
    return now - post.created_at < window


def next_refresh(post: BlogPost, window: timedelta | None = None) -> datetime:
    window = window if window is not None else cache_window()
    return post.created_at + window


def get_or_generate(genre: str | None = None) -> tuple[BlogPost, bool]:
    """Return the cached post for ``genre`` or a newly generated one.

    The flag is True when the post was generated by this call.
    """
    post = latest_post(genre)
    if is_fresh(post):
        logger.debug("Serving cached post id=%s for genre=%s", post.id, genre or "any")
        return post, False

    logger.info("Cache expired for genre=%s, generating", genre or "any")
    return generate_blog_post(genre), True


def generate_if_stale(genre: str | None = None) -> BlogPost | None:
    """Generate a post unless a fresh one already exists; None when skipped."""
    if is_fresh(latest_post(genre)):
        logger.info("Recent blog already exists for %s, skipping generation", genre or "general")
        return None
    return generate_blog_post(genre)
