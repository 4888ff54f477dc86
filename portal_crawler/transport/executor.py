"""
Single HTTP exchange against the portal using the shared session.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from http.cookiejar import DefaultCookiePolicy
from urllib.parse import urljoin, urlparse

import requests

from portal_crawler.config import DEFAULT_USER_AGENT
from portal_crawler.errors import RedirectLoopError, RequestTimeoutError, TransientNetworkError
from portal_crawler.logging_utils import log_event
from portal_crawler.session.models import StoredCookie
from portal_crawler.session.shared import SharedSession
from portal_crawler.types import CrawlTarget

logger = logging.getLogger(__name__)

REDIRECT_STATUS_CODES = {301, 302, 303, 307, 308}
METHOD_PRESERVING_REDIRECTS = {307, 308}


@dataclass(frozen=True)
class RequestSpec:
    """
    What to send; the executor adds session cookies and default headers.
    """

    method: str = "GET"
    path: str = "/"
    form: tuple[tuple[str, str], ...] = ()
    headers: tuple[tuple[str, str], ...] = ()

    @classmethod
    def get(cls, path: str) -> "RequestSpec":
        return cls(method="GET", path=path)

    @classmethod
    def post(cls, path: str, form: Mapping[str, str]) -> "RequestSpec":
        return cls(method="POST", path=path, form=tuple(form.items()))


@dataclass(frozen=True)
class RawResponse:
    """
    Final response of one exchange, after redirects.
    """

    status_code: int
    body: str
    url: str
    redirects: tuple[str, ...] = ()


def build_http_session() -> requests.Session:
    """
    Connection-pooling session whose own cookie jar accepts nothing;
    cookie state is owned by ``SharedSession``.
    """

    http = requests.Session()
    http.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
    return http


def cookies_from_response(response: requests.Response, request_url: str) -> list[StoredCookie]:
    host = urlparse(request_url).hostname or ""
    captured: list[StoredCookie] = []
    for cookie in response.cookies:
        captured.append(
            StoredCookie(
                domain=cookie.domain or host,
                name=cookie.name,
                value=cookie.value or "",
                path=cookie.path or "/",
                expires=float(cookie.expires) if cookie.expires is not None else None,
                secure=bool(cookie.secure),
            )
        )
    return captured


class RequestExecutor:
    """
    Performs one exchange with a bounded timeout, merging every
    response's cookies into the shared session and following redirects
    by hand.
    """

    def __init__(
        self,
        *,
        session: SharedSession,
        base_url: str,
        http: requests.Session | None = None,
        timeout_seconds: float = 15.0,
        max_redirects: int = 5,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._http = http or build_http_session()
        self._timeout_seconds = timeout_seconds
        self._max_redirects = max(0, max_redirects)
        self._default_headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Origin": self._base_url,
            "Connection": "keep-alive",
        }

    @property
    def session(self) -> SharedSession:
        return self._session

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    def execute(self, spec: RequestSpec, *, target: CrawlTarget | None = None) -> RawResponse:
        """
        Send ``spec`` and return the final status and body.

        Raises:
            RequestTimeoutError: The exchange exceeded its timeout.
            TransientNetworkError: Connection-level failure.
            RedirectLoopError: More than ``max_redirects`` hops.
        """

        start_url = self.url_for(spec.path)
        url = start_url
        method = spec.method.upper()
        form: dict[str, str] | None = dict(spec.form) if spec.form else None
        chain: list[str] = []

        for _ in range(self._max_redirects + 1):
            response = self._send(method=method, url=url, form=form, spec=spec, target=target)
            self._session.merge_cookies(cookies_from_response(response, url))

            location = response.headers.get("Location")
            if response.status_code not in REDIRECT_STATUS_CODES or not location:
                return RawResponse(
                    status_code=response.status_code,
                    body=response.text,
                    url=url,
                    redirects=tuple(chain),
                )

            next_url = urljoin(url, location)
            chain.append(url)
            log_event(
                logger,
                logging.DEBUG,
                "request_redirect",
                target=target.describe() if target else None,
                status_code=response.status_code,
                from_url=url,
                to_url=next_url,
            )
            if response.status_code not in METHOD_PRESERVING_REDIRECTS:
                method = "GET"
                form = None
            url = next_url

        raise RedirectLoopError(start_url, len(chain))

    def _send(
        self,
        *,
        method: str,
        url: str,
        form: dict[str, str] | None,
        spec: RequestSpec,
        target: CrawlTarget | None,
    ) -> requests.Response:
        headers = {**self._default_headers, "Referer": url, **dict(spec.headers)}
        if form is not None:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
        cookie_header = self._session.cookie_header_for(url)
        if cookie_header:
            headers["Cookie"] = cookie_header

        try:
            return self._http.request(
                method,
                url,
                data=form,
                headers=headers,
                timeout=self._timeout_seconds,
                allow_redirects=False,
            )
        except requests.Timeout as exc:
            log_event(
                logger,
                logging.WARNING,
                "request_timeout",
                target=target.describe() if target else None,
                url=url,
                timeout_seconds=self._timeout_seconds,
            )
            raise RequestTimeoutError(f"Request timed out after {self._timeout_seconds}s: {url}") from exc
        except requests.RequestException as exc:
            log_event(
                logger,
                logging.WARNING,
                "request_failed",
                target=target.describe() if target else None,
                url=url,
                error=str(exc),
            )
            raise TransientNetworkError(f"Request failed for {url}: {exc}") from exc
