"""Tests for jsoncrawl.config module."""

from __future__ import annotations

import json

import pytest

from jsoncrawl.config import (
    DEFAULT_HEADERS,
    DEFAULT_MAX_DEPTH,
    FETCH_TIMEOUT_S,
    CrawlOptions,
    build_headers,
    load_headers_file,
    parse_cookie,
    parse_header,
)


class TestDefaults:
    def test_values(self):
        assert DEFAULT_MAX_DEPTH == 3
        assert FETCH_TIMEOUT_S == 10.0
        assert DEFAULT_HEADERS == {
            "accept": "application/json",
            "accept-language": "en-GB,en-US;q=0.9,en;q=0.8",
            "content-type": "application/json",
        }

    def test_options_defaults(self):
        options = CrawlOptions()
        assert options.max_depth == 3
        assert options.headers is None
        assert options.include_cookies is False
        assert options.cookies == {}
        assert options.timeout_s == 10.0


class TestParseHeader:
    def test_basic(self):
        assert parse_header("Authorization: Bearer abc") == ("Authorization", "Bearer abc")

    def test_value_with_colon(self):
        assert parse_header("X-Url: https://a.com") == ("X-Url", "https://a.com")

    def test_empty_value(self):
        assert parse_header("X-Empty:") == ("X-Empty", "")

    @pytest.mark.parametrize("text", ["no-colon", ": value", ""])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_header(text)


class TestParseCookie:
    def test_basic(self):
        assert parse_cookie("sid=abc=def") == ("sid", "abc=def")

    @pytest.mark.parametrize("text", ["sid", "=abc"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_cookie(text)


class TestLoadHeadersFile:
    def test_valid(self, tmp_path):
        path = tmp_path / "headers.json"
        path.write_text(json.dumps({"X-Api-Key": "k"}), encoding="utf-8")
        assert load_headers_file(path) == {"X-Api-Key": "k"}

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "headers.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError, match="JSON object"):
            load_headers_file(path)

    def test_non_string_value(self, tmp_path):
        path = tmp_path / "headers.json"
        path.write_text('{"X-Count": 3}', encoding="utf-8")
        with pytest.raises(ValueError, match="X-Count"):
            load_headers_file(path)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "headers.json"
        path.write_text("{oops", encoding="utf-8")
        with pytest.raises(ValueError, match="not valid JSON"):
            load_headers_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            load_headers_file(tmp_path / "missing.json")


class TestBuildHeaders:
    def test_defaults_only(self):
        headers = build_headers()
        assert headers == DEFAULT_HEADERS
        assert headers is not DEFAULT_HEADERS

    def test_override_is_case_insensitive(self):
        headers = build_headers({"Accept": "application/vnd.api+json"})
        assert headers["Accept"] == "application/vnd.api+json"
        assert "accept" not in headers
        assert headers["content-type"] == "application/json"

    def test_pairs_and_no_defaults(self):
        headers = build_headers([("X-A", "1"), ("X-B", "2")], use_defaults=False)
        assert headers == {"X-A": "1", "X-B": "2"}
