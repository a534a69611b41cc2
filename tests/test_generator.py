"""Tests for the blog generation pipeline."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

import generator
from generator import (
    ContentParseError,
    GenerationError,
    build_prompt,
    call_gemini,
    detect_genre,
    extract_json,
    fallback_image_url,
    fetch_cover_image,
    generate_blog_post,
    image_search_query,
)
from models import BlogLink, BlogPost


def gemini_response(content):
    text = content if isinstance(content, str) else json.dumps(content)
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    return response


def unsplash_response(results):
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = {"results": results}
    return response


SAMPLE = {
    "title": "Quantum Chips Reach a New Milestone",
    "body": "<h2>Intro</h2><p>Quantum computing and blockchain meet IoT.</p>",
    "imageAlt": "A quantum chip",
    "imageCaption": "Qubits up close",
    "links": [
        {"title": "Paper", "url": "https://example.com/paper", "description": "The paper"},
        {"title": "", "url": "https://example.com/untitled"},
        {"title": "Blog", "url": "https://example.com/blog", "imageAlt": "Blog image"},
    ],
}


class TestBuildPrompt:
    def test_generic_prompt_has_json_contract(self):
        prompt = build_prompt()
        assert '"title": "The blog post title"' in prompt
        assert '"links": [' in prompt
        assert "Focus specifically" not in prompt

    def test_genre_focus(self):
        assert "Focus specifically on cybersecurity." in build_prompt("cybersecurity")


class TestExtractJson:
    def test_json_inside_prose_and_fences(self):
        text = 'Sure! Here it is:\n```json\n{"title": "T", "body": "<p>b</p>"}\n```\nEnjoy.'
        assert extract_json(text) == {"title": "T", "body": "<p>b</p>"}

    def test_multiline_nested_object(self):
        text = '{\n "title": "T",\n "body": "B",\n "links": [{"title": "x", "url": "y"}]\n}'
        assert extract_json(text)["links"][0]["url"] == "y"

    def test_no_braces(self):
        with pytest.raises(ContentParseError, match="Failed to parse content"):
            extract_json("I cannot help with that.")

    def test_invalid_json(self):
        with pytest.raises(ContentParseError, match="Failed to parse JSON content"):
            extract_json("{title: unquoted}")

    def test_missing_body(self):
        with pytest.raises(ContentParseError, match="body"):
            extract_json('{"title": "Only a title"}')

    def test_parse_error_is_generation_error(self):
        assert issubclass(ContentParseError, GenerationError)


class TestDetectGenre:
    def test_title_weighs_double(self):
        # "security" in title (2) beats "code" in body (1)
        assert detect_genre("Security roundup", "<p>some code</p>") == "cybersecurity"

    def test_body_only(self):
        assert detect_genre("Weekly notes", "a new framework for every developer") == "coding"

    def test_no_keywords_is_general(self):
        assert detect_genre("Weekly notes", "nothing to see") == "general"

    def test_tie_keeps_first_genre(self):
        # "llm" (ai-ml) and "hack" (cybersecurity) both score 1
        assert detect_genre("Weekly notes", "llm hack") == "ai-ml"

    def test_case_insensitive(self):
        assert detect_genre("BLOCKCHAIN and WEB3", "") == "emerging-tech"


class TestCallGemini:
    def test_returns_candidate_text(self, app):
        with patch("generator.requests.post", return_value=gemini_response("hello")) as post:
            assert call_gemini("prompt") == "hello"

        _, kwargs = post.call_args
        assert kwargs["params"] == {"key": "gemini-key"}
        assert kwargs["json"]["contents"][0]["parts"][0]["text"] == "prompt"
        assert kwargs["json"]["generationConfig"] == {"temperature": 0.7, "maxOutputTokens": 4096}
        assert kwargs["timeout"] == 25

    def test_not_configured(self, app):
        app.config["GEMINI_API_KEY"] = ""
        with pytest.raises(GenerationError, match="must be set"):
            call_gemini("prompt")

    def test_transport_error(self, app):
        with patch("generator.requests.post", side_effect=requests.Timeout("slow")):
            with pytest.raises(GenerationError, match="request failed"):
                call_gemini("prompt")

    def test_unexpected_shape(self, app):
        response = gemini_response("x")
        response.json.return_value = {"candidates": []}
        with patch("generator.requests.post", return_value=response):
            with pytest.raises(GenerationError, match="Unexpected"):
                call_gemini("prompt")


class TestCoverImage:
    def test_search_query_strips_punctuation_and_truncates(self):
        assert image_search_query("AI's Big Day: GPT, Gemini & more today!") == "AIs Big Day GPT Gemini"

    def test_uses_first_result(self, app):
        results = [{"urls": {"regular": "https://images.unsplash.com/photo-1"}}]
        with patch("generator.requests.get", return_value=unsplash_response(results)) as get:
            assert fetch_cover_image("Quantum Chips Reach") == "https://images.unsplash.com/photo-1"

        _, kwargs = get.call_args
        assert kwargs["headers"] == {"Authorization": "Client-ID unsplash-key"}
        assert kwargs["params"]["orientation"] == "landscape"

    def test_empty_results_fall_back(self, app):
        with patch("generator.requests.get", return_value=unsplash_response([])):
            url = fetch_cover_image("Quantum Chips Reach a New Milestone")
        assert url == "https://source.unsplash.com/random/1200x800/?Quantum%20Chips%20Reach"

    def test_http_error_falls_back(self, app):
        with patch("generator.requests.get", side_effect=requests.ConnectionError("down")):
            assert fetch_cover_image("Edge AI") == fallback_image_url("Edge AI")

    def test_missing_key_skips_request(self, app):
        app.config["UNSPLASH_ACCESS_KEY"] = ""
        with patch("generator.requests.get") as get:
            assert fetch_cover_image("Edge AI") == fallback_image_url("Edge AI")
        get.assert_not_called()


class TestGenerateBlogPost:
    def test_persists_post_with_links_and_detected_genre(self, app):
        results = [{"urls": {"regular": "https://images.unsplash.com/q"}}]
        with (
            patch("generator.requests.post", return_value=gemini_response("Here:\n" + json.dumps(SAMPLE))),
            patch("generator.requests.get", return_value=unsplash_response(results)),
        ):
            post = generate_blog_post()

        assert post.id is not None
        assert post.genre == "emerging-tech"
        assert post.image == "https://images.unsplash.com/q"
        assert post.image_alt == "A quantum chip"
        assert post.image_caption == "Qubits up close"
        # link without a title is dropped, order kept
        assert [link.title for link in post.links] == ["Paper", "Blog"]
        assert BlogPost.query.count() == 1

    def test_caller_genre_wins_and_alt_defaults(self, app):
        content = {"title": "Quantum things", "body": "<p>quantum</p>"}
        with (
            patch("generator.requests.post", return_value=gemini_response(content)),
            patch("generator.requests.get", return_value=unsplash_response([])),
        ):
            post = generate_blog_post("coding")

        assert post.genre == "coding"
        assert post.image_alt == "Blog post image about Quantum things"
        assert post.image_caption == ""
        assert post.links == []

    def test_parse_failure_saves_nothing(self, app):
        with patch("generator.requests.post", return_value=gemini_response("no json here")):
            with pytest.raises(ContentParseError):
                generate_blog_post()
        assert BlogPost.query.count() == 0
        assert BlogLink.query.count() == 0

    def test_unknown_genre_rejected_before_calling_api(self, app):
        with patch("generator.requests.post") as post:
            with pytest.raises(GenerationError, match="Unknown genre"):
                generate_blog_post("gardening")
        post.assert_not_called()

    def test_keyword_table_covers_all_scored_genres(self):
        assert list(generator.GENRE_KEYWORDS) == ["ai-ml", "cybersecurity", "coding", "emerging-tech", "tech-news"]
