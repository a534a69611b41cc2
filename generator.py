"""AI blog post generation.

Builds the writing prompt, calls the Gemini ``generateContent`` REST endpoint,
pulls the JSON payload out of the free-text answer, looks up a cover image on
Unsplash and stores the result as a ``BlogPost``.
"""

from __future__ import annotations

import json
import logging
import re
from urllib.parse import quote

import requests
from flask import current_app

from models import DEFAULT_GENRE, GENRES, BlogLink, BlogPost, db

logger = logging.getLogger(__name__)

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"
UNSPLASH_RANDOM_URL = "https://source.unsplash.com/random/1200x800/?{query}"

# Scored in this order; ties keep the earlier genre.
GENRE_KEYWORDS: dict[str, list[str]] = {
    "ai-ml": [
        "ai",
        "machine learning",
        "artificial intelligence",
        "neural network",
        "deep learning",
        "llm",
    ],
    "cybersecurity": ["security", "cyber", "hack", "breach", "privacy", "encryption", "threat"],
    "coding": ["code", "programming", "developer", "software", "framework", "library", "github"],
    "emerging-tech": ["blockchain", "web3", "metaverse", "vr", "ar", "quantum", "iot"],
    "tech-news": ["announced", "released", "launched", "update", "version", "feature", "company"],
}

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_NON_WORD_RE = re.compile(r"[^\w\s]")

PROMPT_TEMPLATE = """You are a technology blog writer. Create a detailed and informative tech blog post about a current trending technology topic.
{focus}
You are a cutting-edge technology blogger. Generate a comprehensive, informative, and engaging blog post covering the latest in technology. The content should be fresh, well-researched, and valuable for tech enthusiasts, developers, and industry professionals.

Blog Focus Areas:
Your article should include at least three of the following topics:

- Tech Hacks & Coding Tricks - New shortcuts, tools, or techniques to boost productivity.
- Latest Software & Feature Releases - Newly launched software, libraries, or updates from big tech companies.
- AI & Machine Learning Advances - New AI models, research breakthroughs, and their real-world impact.
- Emerging Technologies - Blockchain, Quantum Computing, Web3, AR/VR, etc.
- Cybersecurity Trends - Latest security threats, best practices, or data privacy concerns.
- Major Tech News - Big announcements from companies like Google, Microsoft, OpenAI, etc.

The article should be comprehensive (around 800-1000 words) and include:

1. An engaging title
2. An introduction to the topic
3. Key points and analysis
4. Industry implications
5. Future outlook
6. A conclusion

Also include:
- 3-5 related resource links with titles and brief descriptions
- A detailed description of an image that could accompany this article, including specific search terms

Format your response as JSON with the following structure:
{{
  "title": "The blog post title",
  "body": "The full HTML formatted blog post content with proper h2, h3, p, ul, li tags, etc.",
  "image": "A link to a relevant royalty-free image or detailed description for an image to use",
  "imageAlt": "Alt text for the image",
  "imageCaption": "A brief caption for the image",
  "links": [
    {{
      "title": "Resource title",
      "url": "Resource URL",
      "description": "Brief description of the resource",
      "image": "A link to a relevant royalty-free image",
      "imageAlt": "Alt text for the image",
      "imageCaption": "A brief caption for the image"
    }}
  ]
}}

Focus on providing valuable insights and accurate information about current technology trends."""


class GenerationError(Exception):
    """Base error for blog generation."""


class ContentParseError(GenerationError):
    """The LLM answer did not contain a usable JSON payload."""


def build_prompt(genre: str | None = None) -> str:
    focus = f"Focus specifically on {genre}." if genre else ""
    return PROMPT_TEMPLATE.format(focus=focus)


def call_gemini(prompt: str) -> str:
    """Send the prompt to Gemini and return the first candidate's text.

    Raises:
        GenerationError: When the API is not configured, the request fails,
            or the response has no text candidate.
    """
    cfg = current_app.config
    api_url = cfg.get("GEMINI_API_URL")
    api_key = cfg.get("GEMINI_API_KEY")
    if not api_url or not api_key:
        raise GenerationError("GEMINI_API_URL and GEMINI_API_KEY must be set")

    payload = {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {"temperature": 0.7, "maxOutputTokens": 4096},
    }

    logger.debug("Calling Gemini API (%d prompt chars)", len(prompt))
    try:
        response = requests.post(
            api_url,
            params={"key": api_key},
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=cfg.get("GEMINI_TIMEOUT", 25),
        )
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as exc:
        raise GenerationError(f"Gemini API request failed: {exc}") from exc
    except ValueError as exc:
        raise GenerationError("Gemini API returned invalid JSON") from exc

    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise GenerationError("Unexpected Gemini response shape") from exc

    logger.info("Raw response received from Gemini API")
    return text


def extract_json(text: str) -> dict:
    """Parse the brace-delimited JSON object embedded in ``text``."""
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        logger.error("Failed to parse JSON from response: %s...", (text or "")[:500])
        raise ContentParseError("Failed to parse content from API response")

    try:
        content = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        logger.error("JSON parsing error: %s; raw match: %s...", exc, match.group(0)[:500])
        raise ContentParseError(f"Failed to parse JSON content: {exc}") from exc

    if not isinstance(content, dict):
        raise ContentParseError("Generated content is not a JSON object")
    for field in ("title", "body"):
        if not isinstance(content.get(field), str) or not content[field].strip():
            raise ContentParseError(f"Generated content is missing '{field}'")
    return content


def image_search_query(title: str, words: int = 5) -> str:
    return " ".join(_NON_WORD_RE.sub("", title).split()[:words])


def fallback_image_url(title: str) -> str:
    return UNSPLASH_RANDOM_URL.format(query=quote(" ".join(title.split()[:3]), safe=""))


def fetch_cover_image(title: str) -> str:
    """Look up a landscape photo for ``title``; never raises."""
    access_key = current_app.config.get("UNSPLASH_ACCESS_KEY")
    try:
        if not access_key:
            raise GenerationError("UNSPLASH_ACCESS_KEY not set")
        response = requests.get(
            UNSPLASH_SEARCH_URL,
            params={"query": image_search_query(title), "per_page": 1, "orientation": "landscape"},
            headers={"Authorization": f"Client-ID {access_key}"},
            timeout=current_app.config.get("UNSPLASH_TIMEOUT", 10),
        )
        response.raise_for_status()
        results = response.json().get("results") or []
        if not results:
            raise GenerationError("No image results found")
        url = results[0]["urls"]["regular"]
        logger.info("Fetched cover image from Unsplash")
        return url
    except (requests.RequestException, GenerationError, ValueError, KeyError, TypeError) as exc:
        logger.warning("Unsplash image search failed, using fallback: %s", exc)
        return fallback_image_url(title)


def detect_genre(title: str, body: str) -> str:
    title = (title or "").lower()
    body = (body or "").lower()

    best_genre, best_score = DEFAULT_GENRE, 0
    for genre, words in GENRE_KEYWORDS.items():
        score = sum((2 if word in title else 0) + (1 if word in body else 0) for word in words)
        if score > best_score:
            best_genre, best_score = genre, score
    return best_genre


def _build_links(raw_links) -> list[BlogLink]:
    links = []
    if not isinstance(raw_links, list):
        return links
    for raw in raw_links:
        if not isinstance(raw, dict) or not raw.get("title") or not raw.get("url"):
            continue
        links.append(
            BlogLink(
                position=len(links),
                title=str(raw["title"]),
                url=str(raw["url"]),
                description=raw.get("description"),
                image=raw.get("image"),
                image_alt=raw.get("imageAlt"),
                image_caption=raw.get("imageCaption"),
            )
        )
    return links


def generate_blog_post(genre: str | None = None) -> BlogPost:
    """Generate, illustrate, classify and persist a new blog post.

    Any failure propagates to the caller and nothing is committed.
    """
    if genre is not None and genre not in GENRES:
        raise GenerationError(f"Unknown genre: {genre}")

    try:
        content = extract_json(call_gemini(build_prompt(genre)))
        title = content["title"].strip()
        logger.info("Parsed generated post %r", title)

        post = BlogPost(
            title=title,
            body=content["body"],
            image=fetch_cover_image(title),
            image_alt=content.get("imageAlt") or f"Blog post image about {title}",
            image_caption=content.get("imageCaption") or "",
            genre=genre or detect_genre(title, content["body"]),
            links=_build_links(content.get("links")),
        )
        db.session.add(post)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to generate new blog (genre=%s)", genre or DEFAULT_GENRE)
        raise

    logger.info("Blog saved: %r (%s, id=%s)", post.title, post.genre, post.id)
    return post
