from __future__ import annotations

from dataclasses import dataclass, field
import json
from pathlib import Path
from typing import Any

import structlog

from iporesult.cache import ResultCache
from iporesult.config import settings
from iporesult.schemas import AllotmentResult
from iporesult.session import SessionStore
from iporesult.upstream import (
    CaptchaPage,
    CaptchaParseError,
    IpoResultError,
    UpstreamClient,
    UpstreamError,
    build_upstream_client,
)

log = structlog.get_logger(__name__)

__all__ = [
    "BulkOutcome",
    "CaptchaParseError",
    "CompaniesUnavailableError",
    "IpoResultError",
    "IpoResultService",
    "SessionExpiredError",
    "UpstreamError",
    "ipo_result_service",
]

CHECK_ERROR_MESSAGE = "Error checking result"


class SessionExpiredError(IpoResultError):
    status_code = 400


class CompaniesUnavailableError(IpoResultError):
    pass


@dataclass
class BulkOutcome:
    results: list[AllotmentResult] = field(default_factory=list)
    captcha_error: bool = False

    @property
    def count(self) -> int:
        return len(self.results)


class IpoResultService:
    def __init__(
        self,
        upstream: UpstreamClient,
        *,
        session: SessionStore | None = None,
        cache: ResultCache | None = None,
        companies_file: str | Path = "companies.json",
    ) -> None:
        self.upstream = upstream
        self.session = session if session is not None else SessionStore()
        self.cache = cache if cache is not None else ResultCache()
        self.companies_file = Path(companies_file)

    def _is_captcha_rejection(self, success: bool, message: str | None) -> bool:
        return not success and bool(message) and "captcha" in message.lower()

    def _error_result(self, boid: str, company_id: str) -> AllotmentResult:
        return AllotmentResult(
            boid=boid,
            company_id=company_id,
            allotted=False,
            message=CHECK_ERROR_MESSAGE,
            error=True,
        )

    def load_companies(self) -> list[dict[str, Any]]:
        try:
            payload = json.loads(self.companies_file.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise CompaniesUnavailableError("Companies file not found") from exc
        except (OSError, ValueError) as exc:
            raise CompaniesUnavailableError("Failed to load companies") from exc

        if isinstance(payload, dict):
            payload = payload.get("companies")
        if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
            raise CompaniesUnavailableError("Failed to load companies")
        return payload

    def get_captcha(self) -> CaptchaPage:
        try:
            page = self.session.refresh(self.upstream)
        except CaptchaParseError:
            raise
        except UpstreamError as exc:
            log.error("captcha.fetch_failed", error=str(exc))
            raise UpstreamError("Failed to fetch captcha") from exc
        log.info("captcha.fetched", captcha_url=page.captcha_url)
        return page

    def _check_with_session(self, company_id: str, boid: str, usercaptcha: str) -> tuple[bool, str | None]:
        payload = self.upstream.check_with_captcha(
            company_id=company_id,
            boid=boid,
            captcha_identifier=self.session.captcha_identifier,
            usercaptcha=usercaptcha,
            cookie=self.session.cookie,
        )
        return payload.success, payload.message

    def bulk_check_with_captcha(
        self,
        company_id: str,
        boids: list[str],
        usercaptcha: str,
    ) -> BulkOutcome:
        if not self.session.is_valid():
            raise SessionExpiredError("Captcha session expired. Fetch captcha again.")

        outcome = BulkOutcome()
        try:
            # The first BOID doubles as the captcha check for the whole batch.
            first_boid = boids[0]
            success, message = self._check_with_session(company_id, first_boid, usercaptcha)
            if self._is_captcha_rejection(success, message):
                log.info("bulk_check.captcha_rejected", company_id=company_id, message=message)
                outcome.captcha_error = True
                return outcome
            outcome.results.append(
                AllotmentResult(boid=first_boid, company_id=company_id, allotted=success, message=message)
            )

            for boid in boids[1:]:
                try:
                    success, message = self._check_with_session(company_id, boid, usercaptcha)
                except UpstreamError as exc:
                    log.warning("result_check.failed", boid=boid, company_id=company_id, error=str(exc))
                    outcome.results.append(self._error_result(boid, company_id))
                    continue
                outcome.results.append(
                    AllotmentResult(boid=boid, company_id=company_id, allotted=success, message=message)
                )
        except UpstreamError as exc:
            log.error("bulk_check.failed", company_id=company_id, error=str(exc))
            raise UpstreamError("Bulk check failed") from exc
        finally:
            self.session.clear()

        log.info("bulk_check.completed", company_id=company_id, count=outcome.count)
        return outcome

    def _lookup(self, boid: str, company_id: str) -> AllotmentResult:
        cached = self.cache.get(boid, company_id)
        if cached is not None:
            return cached.model_copy(update={"cached": True})

        allotted = self.upstream.check_form(company_id=company_id, boid=boid)
        result = AllotmentResult(
            boid=boid,
            company_id=company_id,
            allotted=allotted,
            message="Allotted" if allotted else "Not Allotted",
            cached=False,
        )
        self.cache.put(boid, company_id, result)
        return result

    def bulk_check_cached(self, company_id: str, boids: list[str]) -> BulkOutcome:
        outcome = BulkOutcome()
        for boid in boids:
            try:
                outcome.results.append(self._lookup(boid, company_id))
            except Exception as exc:
                log.warning("result_check.failed", boid=boid, company_id=company_id, error=str(exc))
                outcome.results.append(self._error_result(boid, company_id))

        hits = sum(1 for item in outcome.results if item.cached)
        log.info("bulk_check.completed", company_id=company_id, count=outcome.count, cache_hits=hits)
        return outcome

    def check_single(self, boid: str, company_id: str) -> AllotmentResult:
        try:
            return self._lookup(boid, company_id)
        except UpstreamError as exc:
            log.error("result_check.failed", boid=boid, company_id=company_id, error=str(exc))
            raise UpstreamError("Failed to check result") from exc


ipo_result_service = IpoResultService(
    build_upstream_client(),
    cache=ResultCache(settings.cache_ttl_seconds),
    companies_file=settings.companies_file,
)
