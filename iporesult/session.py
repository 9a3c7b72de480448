from __future__ import annotations

import structlog

from iporesult.upstream import CaptchaPage, UpstreamClient

log = structlog.get_logger(__name__)


class SessionStore:
    """Holds the single upstream session (cookie + captcha identifier).

    Only one generation exists at a time. There is no locking: two concurrent
    refreshes can interleave and leave a cookie paired with the other
    request's captcha identifier.
    """

    def __init__(self) -> None:
        self.cookie = ""
        self.captcha_identifier = ""

    def refresh(self, client: UpstreamClient) -> CaptchaPage:
        page = client.fetch_captcha()
        self.cookie = page.cookie
        self.captcha_identifier = page.captcha_identifier
        log.info("session.refreshed", has_cookie=bool(page.cookie))
        return page

    def clear(self) -> None:
        self.cookie = ""
        self.captcha_identifier = ""

    def is_valid(self) -> bool:
        return bool(self.cookie) and bool(self.captcha_identifier)
