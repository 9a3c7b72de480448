"""Tests for the in-memory upstream session store."""

from __future__ import annotations

import pytest

from iporesult.session import SessionStore
from iporesult.upstream import CaptchaPage, CaptchaParseError


class TestSessionStore:
    def test_starts_empty_and_invalid(self) -> None:
        store = SessionStore()
        assert store.cookie == ""
        assert store.captcha_identifier == ""
        assert not store.is_valid()

    def test_refresh_replaces_both_fields(self, upstream) -> None:
        store = SessionStore()
        store.cookie = "old=1"
        store.captcha_identifier = "old-id"

        page = store.refresh(upstream)

        assert page is upstream.page
        assert store.cookie == "JSESSIONID=abc; route=r1"
        assert store.captcha_identifier == "cap-123"
        assert store.is_valid()

    def test_failed_refresh_keeps_previous_generation(self, upstream) -> None:
        store = SessionStore()
        store.refresh(upstream)
        upstream.page = CaptchaParseError("Captcha parsing failed")

        with pytest.raises(CaptchaParseError):
            store.refresh(upstream)
        assert store.captcha_identifier == "cap-123"

    def test_clear(self, upstream) -> None:
        store = SessionStore()
        store.refresh(upstream)
        store.clear()
        assert not store.is_valid()

    def test_cookie_alone_is_not_valid(self, upstream) -> None:
        upstream.page = CaptchaPage(cookie="", captcha_identifier="cap-1", captcha_url="u")
        store = SessionStore()
        store.refresh(upstream)
        assert not store.is_valid()
