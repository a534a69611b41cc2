"""Client-side data services for the blog API.

``BlogClient`` wraps the HTTP API with retry and exponential backoff, keeps an
``ApiMonitor`` of endpoint health, and mirrors every post it fetches into an
``OfflineStore`` so the latest post, single posts and the archive can still be
served when the API is unreachable.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
import time
from datetime import datetime, timezone

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:5000/api"
LATEST_BLOG_KEY = "latestBlog"


class ApiError(Exception):
    """The API answered with an error status."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class OfflineError(Exception):
    """The API is unreachable and the offline store has no answer."""


# ===== Endpoint health =====
class ApiMonitor:
    """Per-endpoint request statistics and backoff advice."""

    BACKOFF_SECONDS = (1.0, 2.0, 5.0, 10.0)
    UNSTABLE_AFTER = 3

    def __init__(self) -> None:
        self.endpoints: dict[str, dict] = {}

    def record_request(self, endpoint: str, success: bool, response_time: float = 0.0) -> None:
        stats = self.endpoints.setdefault(
            endpoint,
            {
                "total_requests": 0,
                "successful_requests": 0,
                "failed_requests": 0,
                "avg_response_time": 0.0,
                "consecutive_failures": 0,
                "last_status": None,
            },
        )
        stats["total_requests"] += 1
        if success:
            stats["successful_requests"] += 1
            stats["consecutive_failures"] = 0
            # running mean over successful requests only
            n = stats["successful_requests"]
            stats["avg_response_time"] += (response_time - stats["avg_response_time"]) / n
        else:
            stats["failed_requests"] += 1
            stats["consecutive_failures"] += 1
        stats["last_status"] = "success" if success else "failure"

    def backoff_time(self, endpoint: str) -> float:
        stats = self.endpoints.get(endpoint)
        if not stats or stats["consecutive_failures"] == 0:
            return 0.0
        index = min(stats["consecutive_failures"], len(self.BACKOFF_SECONDS)) - 1
        return self.BACKOFF_SECONDS[index]

    def is_unstable(self, endpoint: str) -> bool:
        stats = self.endpoints.get(endpoint)
        return bool(stats) and stats["consecutive_failures"] >= self.UNSTABLE_AFTER

    def reset(self, endpoint: str) -> None:
        self.endpoints.pop(endpoint, None)

    def get_stats(self, endpoint: str) -> dict | None:
        return self.endpoints.get(endpoint)


# ===== Offline store =====
class OfflineStore:
    """SQLite-backed copy of fetched posts, keyed by post ``_id``."""

    def __init__(self, path: str = "offline_blogs.db"):
        self.path = path
        self._conn: sqlite3.Connection | None = None
        self._init_db()

    def connect(self) -> sqlite3.Connection:
        # ":memory:" only survives on one connection, so keep it open
        if self._conn is None:
            self._conn = sqlite3.connect(self.path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _init_db(self) -> None:
        conn = self.connect()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS blogs (
                id TEXT PRIMARY KEY,
                created_at TEXT,
                payload TEXT NOT NULL,
                saved_at TEXT NOT NULL
            );
            """
        )
        conn.execute("CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT);")
        conn.commit()

    def save(self, blog: dict) -> bool:
        blog_id = blog.get("_id")
        if blog_id is None:
            logger.warning("Not caching blog without _id: %s", blog.get("title"))
            return False
        conn = self.connect()
        conn.execute(
            "INSERT OR REPLACE INTO blogs (id, created_at, payload, saved_at) VALUES (?, ?, ?, ?)",
            (str(blog_id), blog.get("createdAt"), json.dumps(blog), datetime.now(timezone.utc).isoformat()),
        )
        conn.commit()
        logger.debug("Blog saved to offline storage: %s", blog_id)
        return True

    def save_latest(self, blog: dict) -> bool:
        if not self.save(blog):
            return False
        conn = self.connect()
        conn.execute(
            "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
            (LATEST_BLOG_KEY, str(blog["_id"])),
        )
        conn.commit()
        return True

    def get(self, blog_id) -> dict | None:
        row = self.connect().execute("SELECT payload FROM blogs WHERE id=?", (str(blog_id),)).fetchone()
        return json.loads(row["payload"]) if row else None

    def get_latest(self) -> dict | None:
        row = self.connect().execute("SELECT value FROM meta WHERE key=?", (LATEST_BLOG_KEY,)).fetchone()
        return self.get(row["value"]) if row else None

    def all(self) -> list[dict]:
        rows = self.connect().execute("SELECT payload FROM blogs ORDER BY created_at DESC, saved_at DESC").fetchall()
        return [json.loads(r["payload"]) for r in rows]


# ===== API client =====
class BlogClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        store: OfflineStore | None = None,
        *,
        session: requests.Session | None = None,
        monitor: ApiMonitor | None = None,
        max_retries: int = 3,
        backoff: float = 1.0,
        timeout: float = 15.0,
        sleep=time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.store = store if store is not None else OfflineStore()
        self.session = session or requests.Session()
        self.monitor = monitor or ApiMonitor()
        self.max_retries = max_retries
        self.backoff = backoff
        self.timeout = timeout
        self.sleep = sleep
        self.token: str | None = None
        self.user: dict | None = None
        self.online = True

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _request(self, method: str, path: str, **kwargs) -> dict:
        """Send a request, retrying network errors and 5xx responses.

        Raises:
            ApiError: On a 4xx answer, a 5xx after the last retry, or a
                success whose body is not JSON.
            requests.RequestException: On a network error after the last retry.
        """
        url = f"{self.base_url}{path}"
        kwargs.setdefault("timeout", self.timeout)
        kwargs["headers"] = {**self._headers(), **kwargs.get("headers", {})}

        attempt = 0
        while True:
            started = time.monotonic()
            try:
                response = self.session.request(method, url, **kwargs)
            except (requests.ConnectionError, requests.Timeout) as exc:
                self.monitor.record_request(path, False)
                if attempt >= self.max_retries:
                    raise
                reason = str(exc)
            else:
                elapsed = time.monotonic() - started
                if response.status_code < 500:
                    return self._handle_response(path, response, elapsed)
                self.monitor.record_request(path, False)
                if attempt >= self.max_retries:
                    raise ApiError(_error_message(response), response.status_code)
                reason = f"status {response.status_code}"

            delay = self.backoff * 2**attempt
            logger.warning("%s %s failed (%s), retrying in %.1fs", method, path, reason, delay)
            self.sleep(delay)
            attempt += 1

    def _handle_response(self, path: str, response, elapsed: float) -> dict:
        self.online = True
        if not response.ok:
            self.monitor.record_request(path, False)
            raise ApiError(_error_message(response), response.status_code)
        try:
            data = response.json()
        except ValueError as exc:
            self.monitor.record_request(path, False)
            raise ApiError("API error: response is not valid JSON", response.status_code) from exc
        self.monitor.record_request(path, True, elapsed)
        return data

    def _offline(self, what: str, exc: Exception):
        self.online = False
        logger.warning("API unreachable, serving %s from offline storage: %s", what, exc)

    # ----- blogs -----
    def fetch_latest(self, genre: str | None = None) -> dict:
        params = {"genre": genre} if genre else {}
        try:
            data = self._request("GET", "/blogs/latest", params=params)
        except requests.RequestException as exc:
            self._offline("latest blog", exc)
            blog = self.store.get_latest()
            if blog is None or (genre and blog.get("genre") != genre):
                candidates = [b for b in self.store.all() if not genre or b.get("genre") == genre]
                blog = candidates[0] if candidates else None
            if blog is None:
                raise OfflineError("No cached blog available offline") from exc
            return blog

        blog = data["blog"]
        self.store.save_latest(blog)
        return blog

    def fetch_by_id(self, blog_id) -> dict:
        try:
            data = self._request("GET", f"/blogs/{blog_id}")
        except requests.RequestException as exc:
            self._offline(f"blog {blog_id}", exc)
            blog = self.store.get(blog_id)
            if blog is None:
                raise OfflineError(f"Blog {blog_id} is not available offline") from exc
            return blog

        blog = data["blog"]
        self.store.save(blog)
        return blog

    def fetch_archive(
        self, page: int = 1, limit: int = 10, genre: str | None = None, search: str | None = None
    ) -> dict:
        params = {"page": page, "limit": limit}
        if genre:
            params["genre"] = genre
        if search:
            params["search"] = search
        try:
            data = self._request("GET", "/blogs/all", params=params)
        except requests.RequestException as exc:
            self._offline("archive", exc)
            return self._offline_archive(page, limit, genre, search)

        for blog in data.get("blogs", []):
            self.store.save(blog)
        return data

    def _offline_archive(self, page, limit, genre, search) -> dict:
        blogs = self.store.all()
        if genre:
            blogs = [b for b in blogs if b.get("genre") == genre]
        if search:
            term = search.lower()
            blogs = [
                b for b in blogs if term in (b.get("title") or "").lower() or term in (b.get("body") or "").lower()
            ]
        page, limit = max(page, 1), max(limit, 1)
        start = (page - 1) * limit
        return {
            "blogs": blogs[start : start + limit],
            "totalPages": math.ceil(len(blogs) / limit),
            "currentPage": page,
            "total": len(blogs),
            "offline": True,
        }

    # ----- auth -----
    def register(self, email: str, password: str) -> dict:
        return self._remember(self._request("POST", "/auth/register", json={"email": email, "password": password}))

    def login(self, email: str, password: str) -> dict:
        return self._remember(self._request("POST", "/auth/login", json={"email": email, "password": password}))

    def _remember(self, data: dict) -> dict:
        if data.get("token"):
            self.token = data["token"]
            self.user = data
        return data

    def logout(self) -> None:
        self.token = None
        self.user = None

    def profile(self) -> dict:
        try:
            return self._request("GET", "/auth/profile")
        except ApiError as exc:
            # expired or revoked token
            if exc.status == 401:
                self.logout()
            raise


def _error_message(response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"API error: {response.reason or response.status_code}"
    if isinstance(data, dict):
        return f"API error: {data.get('error') or data.get('message') or response.reason}"
    return f"API error: {response.reason}"
