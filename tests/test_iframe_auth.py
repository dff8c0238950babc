"""Tests for iframe token generation, verification and origin checks."""

from __future__ import annotations

import datetime
import hashlib
import hmac
from urllib.parse import parse_qs, urlsplit

import pytest

from n8n_chat_pipe.api.iframe_auth import (
    cors_headers,
    generate_iframe_token,
    get_authenticated_iframe_url,
    is_origin_allowed,
    token_expiry,
    verify_iframe_token,
)

DAY = datetime.datetime(2025, 3, 14, 12, 0, tzinfo=datetime.timezone.utc)


def test_token_is_hmac_of_origin_and_utc_date() -> None:
    expected = hmac.new(b"s3cret", b"https://dao.example.org2025-03-14", hashlib.sha256).hexdigest()
    assert generate_iframe_token("https://dao.example.org", "s3cret", today=DAY) == expected


def test_token_uses_utc_calendar_day() -> None:
    late_local = datetime.datetime(
        2025, 3, 14, 23, 30, tzinfo=datetime.timezone(datetime.timedelta(hours=-5))
    )
    next_utc_day = datetime.datetime(2025, 3, 15, 1, 0, tzinfo=datetime.timezone.utc)
    assert generate_iframe_token("o", "s", today=late_local) == generate_iframe_token("o", "s", today=next_utc_day)


def test_token_changes_with_day_and_origin() -> None:
    token = generate_iframe_token("o", "s", today=DAY)
    assert token != generate_iframe_token("o", "s", today=DAY + datetime.timedelta(days=1))
    assert token != generate_iframe_token("o2", "s", today=DAY)


def test_verify_accepts_matching_token() -> None:
    token = generate_iframe_token("https://a.org", "s", today=DAY)
    assert verify_iframe_token(token, "https://a.org", "s", today=DAY) is True


@pytest.mark.parametrize("token", ["", "zz-not-hex", "abc", "00" * 32])
def test_verify_rejects_bad_tokens(token: str) -> None:
    assert verify_iframe_token(token, "https://a.org", "s", today=DAY) is False


def test_verify_rejects_other_origin() -> None:
    token = generate_iframe_token("https://a.org", "s", today=DAY)
    assert verify_iframe_token(token, "https://b.org", "s", today=DAY) is False


@pytest.mark.parametrize(
    "origin,allowed,expected",
    [
        ("https://dao.com", ["https://dao.com"], True),
        ("http://dao.com", ["https://dao.com"], True),
        ("https://app.dao.com", ["dao.com"], True),
        ("https://notdao.com", ["dao.com"], True),
        ("dao", ["https://dao.com"], True),
        ("https://evil.org", ["https://dao.com", "http://localhost:3000"], False),
        ("https://DAO.com", ["dao.com"], False),
        ("https://dao.com", [], False),
    ],
)
def test_origin_matching_is_loose_substring(origin: str, allowed: list[str], expected: bool) -> None:
    assert is_origin_allowed(origin, allowed) is expected


def test_authenticated_url_sets_token_param() -> None:
    url = get_authenticated_iframe_url("https://chat.example.org/embed?theme=dark&iframe_token=old", "o", "s", today=DAY)
    parts = urlsplit(url)
    query = parse_qs(parts.query)
    assert parts.netloc == "chat.example.org"
    assert parts.path == "/embed"
    assert query["theme"] == ["dark"]
    assert query["iframe_token"] == [generate_iframe_token("o", "s", today=DAY)]


def test_token_expiry_is_24_hours_later() -> None:
    assert token_expiry(DAY) == "2025-03-15T12:00:00.000Z"


def test_cors_headers() -> None:
    headers = cors_headers("https://dao.com")
    assert headers["Access-Control-Allow-Origin"] == "https://dao.com"
    assert headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"
    assert headers["Access-Control-Allow-Credentials"] == "true"
