from __future__ import annotations

from dataclasses import dataclass

import requests
import structlog
import urllib3
from bs4 import BeautifulSoup

from iporesult.config import settings

log = structlog.get_logger(__name__)


class IpoResultError(Exception):
    status_code = 500


class UpstreamError(IpoResultError):
    pass


class CaptchaParseError(UpstreamError):
    pass


@dataclass(frozen=True)
class CaptchaPage:
    cookie: str
    captcha_identifier: str
    captcha_url: str


@dataclass(frozen=True)
class CheckPayload:
    success: bool
    message: str | None = None


def classify_allotment(text: str) -> bool:
    # "not allotted" must be tested before "allotted", which it contains.
    lowered = text.lower()
    if "not allotted" in lowered:
        return False
    if "allotted" in lowered:
        return True
    return False


class UpstreamClient:
    """Thin wrapper around the CDSC IPO result site."""

    def __init__(
        self,
        base_url: str,
        *,
        user_agent: str,
        timeout: int,
        verify: bool = True,
        check_path: str = "/result/result/check",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self.verify = verify
        self.check_path = check_path
        if not verify:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def check_url(self) -> str:
        return f"{self.base_url}{self.check_path}"

    def _headers(self, **extra: str) -> dict[str, str]:
        return {"User-Agent": self.user_agent, **extra}

    def fetch_captcha(self) -> CaptchaPage:
        try:
            response = requests.get(
                f"{self.base_url}/",
                headers=self._headers(),
                verify=self.verify,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise UpstreamError(f"Failed to fetch captcha: {exc}") from exc

        # name=value pairs only; cookie attributes are dropped.
        cookie = "; ".join(f"{c.name}={c.value}" for c in response.cookies)
        log.debug("captcha.page_fetched", status=response.status_code, has_cookie=bool(cookie))

        soup = BeautifulSoup(response.text, "html.parser")
        identifier_input = soup.find("input", attrs={"name": "captchaIdentifier"})
        image = soup.find("img", id="captcha-image")
        captcha_identifier = identifier_input.get("value") if identifier_input else None
        image_path = image.get("src") if image else None
        if not captcha_identifier or not image_path:
            raise CaptchaParseError("Captcha parsing failed")

        return CaptchaPage(
            cookie=cookie,
            captcha_identifier=captcha_identifier,
            captcha_url=f"{self.base_url}{image_path}",
        )

    def check_with_captcha(
        self,
        *,
        company_id: str,
        boid: str,
        captcha_identifier: str,
        usercaptcha: str,
        cookie: str,
    ) -> CheckPayload:
        try:
            response = requests.post(
                self.check_url,
                json={
                    "companyShareId": company_id,
                    "boid": boid,
                    "captchaIdentifier": captcha_identifier,
                    "usercaptcha": usercaptcha,
                },
                headers=self._headers(Cookie=cookie),
                verify=self.verify,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise UpstreamError(f"Result check failed for {boid}: {exc}") from exc
        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError(f"Result check returned invalid JSON for {boid}") from exc

        if not isinstance(body, dict):
            raise UpstreamError(f"Unexpected result payload for {boid}")
        message = body.get("message")
        return CheckPayload(
            success=body.get("success") is True,
            message=str(message) if message is not None else None,
        )

    def check_form(self, *, company_id: str, boid: str) -> bool:
        try:
            response = requests.post(
                self.check_url,
                data={"boid": boid, "companyShareId": company_id},
                headers=self._headers(),
                verify=self.verify,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise UpstreamError(f"Result check failed for {boid}: {exc}") from exc
        log.debug("result_check.form_response", boid=boid, company_id=company_id, status=response.status_code)
        return classify_allotment(response.text)


def build_upstream_client() -> UpstreamClient:
    return UpstreamClient(
        settings.upstream_base_url,
        user_agent=settings.user_agent,
        timeout=settings.request_timeout_seconds,
        verify=settings.verify_tls,
        check_path=settings.result_check_path,
    )
