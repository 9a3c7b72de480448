"""Shared pytest fixtures and fakes for the relay tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from iporesult import main
from iporesult.cache import ResultCache
from iporesult.service import IpoResultService
from iporesult.upstream import CaptchaPage, CheckPayload


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """Scriptable stand-in for UpstreamClient.

    ``captcha_replies`` and ``form_replies`` map a BOID to either a value or
    an exception instance to raise.
    """

    def __init__(self) -> None:
        self.page = CaptchaPage(
            cookie="JSESSIONID=abc; route=r1",
            captcha_identifier="cap-123",
            captcha_url="https://iporesult.cdsc.com.np/captcha/cap-123.png",
        )
        self.captcha_replies: dict[str, Any] = {}
        self.form_replies: dict[str, Any] = {}
        self.calls: list[tuple[str, str]] = []
        self.captcha_calls: list[dict[str, str]] = []

    def fetch_captcha(self) -> CaptchaPage:
        self.calls.append(("fetch_captcha", ""))
        if isinstance(self.page, Exception):
            raise self.page
        return self.page

    def check_with_captcha(self, **kwargs: str) -> CheckPayload:
        self.calls.append(("captcha", kwargs["boid"]))
        self.captcha_calls.append(kwargs)
        reply = self.captcha_replies.get(kwargs["boid"], CheckPayload(success=False, message="Sorry, not allotted"))
        if isinstance(reply, Exception):
            raise reply
        return reply

    def check_form(self, *, company_id: str, boid: str) -> bool:
        self.calls.append(("form", boid))
        reply = self.form_replies.get(boid, False)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def companies_file(tmp_path: Path) -> Path:
    path = tmp_path / "companies.json"
    path.write_text(
        '[{"id": "C1", "name": "Alpha"}, {"id": "C2", "name": "Beta"}, {"id": "C3", "name": "Gamma"}]',
        encoding="utf-8",
    )
    return path


@pytest.fixture
def service(upstream: FakeUpstream, clock: FakeClock, companies_file: Path) -> IpoResultService:
    return IpoResultService(
        upstream,  # type: ignore[arg-type]
        cache=ResultCache(300, clock=clock),
        companies_file=companies_file,
    )


@pytest.fixture
def client(service: IpoResultService, monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient]:
    """HTTP client bound to a fresh service and an empty rate window."""
    monkeypatch.setattr(main, "ipo_result_service", service)
    main.rate_limiter.reset()
    yield TestClient(main.app)
    main.rate_limiter.reset()

