from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
import re

from werkzeug.security import check_password_hash, generate_password_hash

db = SQLAlchemy()

# Genre slugs used in URLs and DB
GENRES = ["tech-news", "ai-ml", "cybersecurity", "coding", "emerging-tech", "general"]
DEFAULT_GENRE = "general"

EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+(\.[\w-]+)*\.\w{2,}")
MAX_EMAIL_LENGTH = 254
MIN_PASSWORD_LENGTH = 6


def utcnow():
    """Naive UTC timestamp; SQLite drops tzinfo so everything is stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(dt):
    return dt.isoformat() + "Z" if dt else None


bookmarks = db.Table(
    "bookmarks",
    db.Column("user_id", db.Integer, db.ForeignKey("user.id"), primary_key=True),
    db.Column("blog_post_id", db.Integer, db.ForeignKey("blog_post.id"), primary_key=True),
)


class BlogPost(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    body = db.Column(db.Text, nullable=False)
    image = db.Column(db.String(1000), nullable=False)
    image_alt = db.Column(db.String(500), nullable=False)
    image_caption = db.Column(db.String(500), nullable=False, default="")
    genre = db.Column(db.String(40), nullable=False, default=DEFAULT_GENRE)  # slug, e.g. 'ai-ml'
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    links = db.relationship(
        "BlogLink", backref="post", cascade="all, delete-orphan", order_by="BlogLink.position"
    )

    __table_args__ = (db.Index("ix_blog_post_genre_created_at", "genre", "created_at"),)

    def to_dict(self):
        return {
            "_id": self.id,
            "title": self.title,
            "body": self.body,
            "image": self.image,
            "imageAlt": self.image_alt,
            "imageCaption": self.image_caption or "",
            "genre": self.genre,
            "links": [link.to_dict() for link in self.links],
            "createdAt": isoformat(self.created_at),
        }


class BlogLink(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    post_id = db.Column(db.Integer, db.ForeignKey("blog_post.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    title = db.Column(db.String(300), nullable=False)
    url = db.Column(db.String(1000), nullable=False)
    description = db.Column(db.Text)
    image = db.Column(db.String(1000))
    image_alt = db.Column(db.String(500))
    image_caption = db.Column(db.String(500))

    def to_dict(self):
        return {
            "title": self.title,
            "url": self.url,
            "description": self.description,
            "image": self.image,
            "imageAlt": self.image_alt,
            "imageCaption": self.image_caption,
        }


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(10), nullable=False, default="user")
    preferences = db.Column(db.JSON, nullable=False, default=list)  # e.g. ["ai-ml", "coding"]
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    bookmarks = db.relationship("BlogPost", secondary=bookmarks, lazy="select", order_by="BlogPost.created_at.desc()")

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password or "")

    def to_dict(self, token=None, with_bookmarks=False):
        data = {
            "_id": self.id,
            "email": self.email,
            "role": self.role,
            "preferences": list(self.preferences or []),
        }
        if with_bookmarks:
            data["bookmarks"] = [post.to_dict() for post in self.bookmarks]
        if token:
            data["token"] = token
        return data


def validate_credentials(email, password):
    """Return an error message for bad registration data, or None."""
    if not email or len(email) > MAX_EMAIL_LENGTH or not EMAIL_RE.fullmatch(email):
        return "Please provide a valid email"
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return None
