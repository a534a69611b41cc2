from datetime import timedelta

import pytest

from app import create_app
from auth import generate_token
from models import BlogLink, BlogPost, User, db, utcnow

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "JWT_SECRET": "test-secret",
    "CRON_SECRET": "cron-secret",
    "GEMINI_API_URL": "https://gemini.example/v1/models/test:generateContent",
    "GEMINI_API_KEY": "gemini-key",
    "UNSPLASH_ACCESS_KEY": "unsplash-key",
    "CACHE_WINDOW_MINUTES": 60,
    "RUN_GENERATION_INLINE": True,
}


@pytest.fixture()
def app():
    app = create_app(TEST_CONFIG)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_post(app):
    def _make(title="A post", genre="general", age_minutes=0, body="<p>Body</p>", links=()):
        post = BlogPost(
            title=title,
            body=body,
            image="https://images.example/cover.jpg",
            image_alt=f"Blog post image about {title}",
            genre=genre,
            created_at=utcnow() - timedelta(minutes=age_minutes),
            links=[BlogLink(position=i, title=t, url=u) for i, (t, u) in enumerate(links)],
        )
        db.session.add(post)
        db.session.commit()
        return post

    return _make


@pytest.fixture()
def make_user(app):
    def _make(email="reader@example.com", password="secret123", role="user"):
        user = User(email=email, role=role, preferences=[])
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture()
def auth_header(make_user):
    def _header(role="user", email=None):
        user = make_user(email=email or f"{role}@example.com", role=role)
        return {"Authorization": f"Bearer {generate_token(user.id)}"}

    return _header
