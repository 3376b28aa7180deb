"""
Session Client
==============
Owns one authenticated economist.com session: a cookie jar, a fixed header
set, an optional HTTP(S) or SOCKS proxy, and the ``AuthResult`` of the last
login.

The login is a ten-step redirect handshake across three origins:

    www.economist.com/user/login          → 302 to the Auth0 authorize URL
    authenticate.economist.com/authorize  → 302 to the hosted login page
    authenticate.economist.com/login      → HTML + ``_csrf`` cookie
    POST /usernamepassword/login (JSON)   → auto-submitting "hiddenform"
    POST /login/callback (form)           → 302 to the site with state/code
    GET  success URL                      → site session cookies

Each step feeds the next, so steps always run in sequence. Any missing
redirect, cookie, marker or form raises ``AuthError`` naming the step.
Cookies set before a failure stay in the jar.

Usage::

    async with SessionClient(Credentials("me@example.com", "pw")) as client:
        result = await client.login("audio-edition")
        soup = await client.fetch_html("https://www.economist.com/audio-edition/latest")
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import aiohttp
from aiohttp.abc import AbstractCookieJar
from aiohttp_socks import ProxyConnector
from bs4 import BeautifulSoup
from yarl import URL

from ..errors import AuthError
from ..utils import SOCKS_PROXY_SCHEMES, parse_query, proxy_scheme
from .base_auth import AuthResult, Credentials, SessionState
from .telemetry import client_header

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Provider constants
# ---------------------------------------------------------------------------

SITE_URL = "https://www.economist.com"
AUTH_URL = "https://authenticate.economist.com"

LOGIN_ENTRY_PATH = "/user/login"
LOGIN_SUBMIT_PATH = "/usernamepassword/login"
CALLBACK_PATH = "/login/callback"

CSRF_COOKIE = "_csrf"
HIDDEN_FORM_SELECTOR = 'form[name="hiddenform"] input[name]'

# Precedes the auth0.js version string in the login page bootstrap script
TELEMETRY_MARKER = 'e.exports={raw:"'

# Fixed fields merged into every login POST
LOGIN_FORM_BASE: Dict[str, str] = {
    "tenant": "theeconomist",
    "_intstate": "deprecated",
    "connection": "Drupal",
}

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)

HTML_PARSER = "lxml"


# ---------------------------------------------------------------------------
# Extraction helpers
# ---------------------------------------------------------------------------

def extract_client_version(body: str) -> str:
    """Return the auth0.js version embedded in the login page.

    The last occurrence of the marker wins.
    """
    start = body.rfind(TELEMETRY_MARKER)
    if start == -1:
        raise AuthError("telemetry marker not found", step="login_page")
    start += len(TELEMETRY_MARKER)
    end = body.find('"', start)
    if end == -1:
        raise AuthError("telemetry marker not found", step="login_page")
    return body[start:end]


def extract_csrf_cookie(jar: AbstractCookieJar, url: str) -> str:
    """Return the ``_csrf`` cookie value the jar would send to *url*."""
    morsel = jar.filter_cookies(URL(url)).get(CSRF_COOKIE)
    if morsel is None or not morsel.value:
        raise AuthError("missing csrf cookie", step="csrf")
    return morsel.value


def extract_hidden_form(soup: BeautifulSoup) -> Dict[str, str]:
    """Collect name/value pairs from the provider's auto-submitting form."""
    inputs = soup.select(HIDDEN_FORM_SELECTOR)
    if not inputs:
        raise AuthError("hidden form not found", step="hidden_form")
    return {element["name"]: element.get("value", "") for element in inputs}


def _check_status(resp: aiohttp.ClientResponse, step: str) -> None:
    if resp.status >= 400:
        raise AuthError(f"server answered HTTP {resp.status}", step=step)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class SessionClient:
    """One cookie jar, one header set, one login result.

    Logins on one instance are serialized; use separate instances for
    sessions that must run in parallel.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        proxy_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        cookie_jar: Optional[AbstractCookieJar] = None,
        site_url: str = SITE_URL,
        auth_url: str = AUTH_URL,
    ):
        """
        Args:
            credentials: Account used by ``login()``.
            proxy_url:   HTTP(S), SOCKS4 or SOCKS5 proxy for every request;
                         other schemes raise ``ValueError``.
            user_agent:  User-Agent for every request.
            cookie_jar:  Jar to use instead of a fresh ``aiohttp.CookieJar``.
            site_url:    Origin of the content site.
            auth_url:    Origin of the sign-on provider.
        """
        self.credentials = credentials
        self.proxy_url = proxy_url or None
        self._proxy_scheme = proxy_scheme(self.proxy_url) if self.proxy_url else None
        self.headers: Dict[str, str] = {
            "User-Agent": user_agent or DEFAULT_USER_AGENT,
        }
        self.site_url = site_url.rstrip("/")
        self.auth_url = auth_url.rstrip("/")

        self.auth_result: Optional[AuthResult] = None
        self.state = SessionState.ANONYMOUS

        self._cookie_jar = cookie_jar
        self._session: Optional[aiohttp.ClientSession] = None
        self._login_lock = asyncio.Lock()

    # ── Session plumbing ──────────────────────────────────────────

    @property
    def cookie_jar(self) -> AbstractCookieJar:
        # created lazily: aiohttp jars need a running loop
        if self._cookie_jar is None:
            self._cookie_jar = aiohttp.CookieJar()
        return self._cookie_jar

    @property
    def is_logged_in(self) -> bool:
        return self.auth_result is not None

    @property
    def _socks(self) -> bool:
        return self._proxy_scheme in SOCKS_PROXY_SCHEMES

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # SOCKS proxies tunnel at the connection level
            connector = ProxyConnector.from_url(self.proxy_url) if self._socks else None
            self._session = aiohttp.ClientSession(
                connector=connector,
                cookie_jar=self.cookie_jar,
                headers=self.headers,
                trust_env=not self._socks,
            )
        return self._session

    def request(self, method: str, url: str, **kwargs: Any):
        """Issue a request under this session.

        Returns aiohttp's request context manager, so both
        ``async with client.request(...) as resp`` and
        ``resp = await client.request(...)`` work. The caller owns the
        response and must release it.
        """
        if self.proxy_url and not self._socks:
            kwargs.setdefault("proxy", self.proxy_url)
        return self._ensure_session().request(method, url, **kwargs)

    async def fetch_html(self, url: str, **kwargs: Any) -> BeautifulSoup:
        """GET *url* and return the parsed document."""
        async with self.request("GET", url, **kwargs) as resp:
            resp.raise_for_status()
            body = await resp.text(errors="replace")
        return BeautifulSoup(body, HTML_PARSER)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "SessionClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ── Login ─────────────────────────────────────────────────────

    async def login(self, destination: Optional[str] = None) -> AuthResult:
        """Run the full sign-on handshake.

        Args:
            destination: Site section to land on after login
                         (e.g. ``"audio-edition"``).

        Returns:
            The ``AuthResult`` parsed from the final redirect.

        Raises:
            AuthError: a redirect, cookie, marker or form was missing, or a
                       step was answered with an HTTP error.
        """
        async with self._login_lock:
            self.auth_result = None
            self.state = SessionState.AUTHENTICATING
            logger.info(f"[AUTH] Logging in (destination={destination or '-'})")
            try:
                result = await self._handshake(destination)
            except BaseException:
                self.state = SessionState.FAILED
                raise
            self.auth_result = result
            self.state = SessionState.AUTHENTICATED
            logger.info(f"[AUTH] Login complete (destination={result.destination})")
            return result

    async def _handshake(self, destination: Optional[str]) -> AuthResult:
        # ── Step 1: site login entry point ────────────────────────
        params = {"destination": destination} if destination else None
        authorize_url = await self._redirect_location(
            "GET",
            self.site_url + LOGIN_ENTRY_PATH,
            step="entry",
            message="no redirect from login entry point",
            params=params,
        )

        # ── Step 2: OAuth parameters ──────────────────────────────
        authorize = parse_query(authorize_url)

        # ── Step 3: authorize endpoint → hosted login page ────────
        location = await self._redirect_location(
            "GET",
            authorize_url,
            step="authorize",
            message="no redirect from authorize endpoint",
        )
        login_page_url = urljoin(self.auth_url, location)

        # ── Step 4: state ─────────────────────────────────────────
        state = parse_query(login_page_url).get("state")

        # ── Step 5: login page → auth0.js version ─────────────────
        async with self.request("GET", login_page_url) as resp:
            _check_status(resp, "login_page")
            body = await resp.text(errors="replace")
        version = extract_client_version(body)
        logger.debug(f"[AUTH] Login page served auth0.js {version}")

        # ── Step 6: csrf cookie ───────────────────────────────────
        csrf = extract_csrf_cookie(self.cookie_jar, self.auth_url + LOGIN_SUBMIT_PATH)

        # ── Step 7: credentials POST ──────────────────────────────
        form = dict(LOGIN_FORM_BASE)
        form.update({
            "_csrf": csrf,
            "state": state,
            "client_id": authorize.get("client_id"),
            "redirect_uri": authorize.get("redirect_uri"),
            "scope": authorize.get("scope"),
            "response_type": authorize.get("response_type"),
            "username": self.credentials.username,
            "password": self.credentials.password,
        })
        form = {key: value for key, value in form.items() if value is not None}

        async with self.request(
            "POST",
            self.auth_url + LOGIN_SUBMIT_PATH,
            data=json.dumps(form),
            headers={
                "Auth0-Client": client_header(version),
                "Referer": login_page_url,
                "Content-Type": "application/json",
            },
        ) as resp:
            _check_status(resp, "login_submit")
            body = await resp.text(errors="replace")

        # ── Step 8: hidden relay form ─────────────────────────────
        relay = extract_hidden_form(BeautifulSoup(body, HTML_PARSER))

        # ── Step 9: relay POST → success URL ──────────────────────
        location = await self._redirect_location(
            "POST",
            self.auth_url + CALLBACK_PATH,
            step="callback",
            message="no redirect from callback",
            data=relay,
            headers={
                "Upgrade-Insecure-Requests": "1",
                "Referer": login_page_url,
                "Origin": self.auth_url,
            },
        )
        success_url = urljoin(self.auth_url + CALLBACK_PATH, location)

        # ── Step 10: result + site cookies ────────────────────────
        result = AuthResult.from_query(parse_query(success_url))
        if result is None:
            raise AuthError("login result has no state or code", step="success")

        async with self.request("GET", success_url) as resp:
            _check_status(resp, "success")
            await resp.read()

        return result

    async def _redirect_location(
        self, method: str, url: str, *, step: str, message: str, **kwargs: Any
    ) -> str:
        """Send one request without following redirects; return ``Location``."""
        async with self.request(method, url, allow_redirects=False, **kwargs) as resp:
            location = resp.headers.get("Location")
            logger.debug(f"[AUTH] {step}: HTTP {resp.status}")
        if not location:
            raise AuthError(message, step=step)
        return location
