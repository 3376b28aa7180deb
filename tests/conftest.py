"""
Shared fixtures: an in-process stand-in for economist.com and its
sign-on provider, served by ``aiohttp.test_utils.TestServer``.

The fake implements the full redirect chain (entry point → authorize →
hosted login page → JSON credentials POST → hidden relay form → callback →
success URL), checks the ``_csrf`` cookie and the ``Auth0-Client`` header,
and serves cover listings, edition pages and zip files behind a site
session cookie. Switches on ``FakeProvider`` break individual steps.
"""

import base64
import io
import json
import zipfile
from datetime import date
from typing import Dict, List, Optional

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from audio_edition.auth.base_auth import Credentials
from audio_edition.auth.session_client import SessionClient
from audio_edition.catalog import EditionCatalog

USERNAME = "reader@example.com"
PASSWORD = "correct horse"
CLIENT_ID = "fake-client-id"
AUTH0_VERSION = "9.8.2"
CSRF_TOKEN = "csrf-token-123"
RELAY_TOKEN = "eyJhbGciOi.fake.jwt"
SITE_SESSION = "site-session-abc"

SECTIONS = [
    "Introduction",
    "The_world_this_week",
    "Leaders",
    "Letters",
    "Briefing",
    "United_States",
    "The_Americas",
    "Asia",
    "China",
    "Middle_East_and_Africa",
    "Europe",
    "Britain",
]

EDITIONS = {
    date(2018, 12, 22): 9124,
    date(2018, 12, 15): 9123,
    date(2017, 12, 23): 9074,
}

LATEST = date(2018, 12, 22)


def ordinal_date(value: date) -> str:
    """December 22nd, 2018"""
    day = value.day
    if 11 <= day % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{value.strftime('%B')} {day}{suffix}, {value.year}"


def zip_bytes(member: str) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        archive.writestr(member, b"ID3" + b"\x00" * 64)
    return buf.getvalue()


def expected_auth0_client(version: str = AUTH0_VERSION) -> str:
    payload = json.dumps({"name": "auth0.js", "version": version}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("ascii")).decode("ascii")


class FakeProvider:
    """Routes for both origins on one server; ``origin`` is set once started."""

    def __init__(self):
        self.origin = ""
        self.requests: List[str] = []
        self.destination: Optional[str] = None
        self.logins = 0
        self.last_year_query: Optional[str] = None

        # switches for failure tests
        self.entry_redirects = True
        self.authorize_redirects = True
        self.serve_marker = True
        self.set_csrf = True
        self.serve_hidden_form = True
        self.callback_redirects = True
        self.include_destination = True

        self.app = web.Application()
        self.app.router.add_get("/user/login", self.entry)
        self.app.router.add_get("/authorize", self.authorize)
        self.app.router.add_get("/login", self.login_page)
        self.app.router.add_post("/usernamepassword/login", self.submit)
        self.app.router.add_post("/login/callback", self.callback)
        self.app.router.add_get("/sso/success", self.success)
        self.app.router.add_get("/audio-edition/covers", self.covers)
        self.app.router.add_get("/audio-edition/{segment}", self.edition)
        self.app.router.add_get("/media/{name}", self.media)
        self.app.middlewares.append(self._record)

    @web.middleware
    async def _record(self, request: web.Request, handler):
        self.requests.append(request.path)
        return await handler(request)

    # ── sign-on chain ─────────────────────────────────────────────

    async def entry(self, request: web.Request) -> web.Response:
        if not self.entry_redirects:
            return web.Response(text="<html>no redirect</html>", content_type="text/html")
        self.destination = request.query.get("destination", "")
        location = (
            f"{self.origin}/authorize?client_id={CLIENT_ID}"
            f"&redirect_uri={self.origin}/sso/callback"
            f"&response_type=code&scope=openid%20profile&prompt=login"
        )
        return web.Response(status=302, headers={"Location": location})

    async def authorize(self, request: web.Request) -> web.Response:
        if not self.authorize_redirects or request.query.get("client_id") != CLIENT_ID:
            return web.Response(status=200, text="authorize")
        return web.Response(
            status=302,
            headers={"Location": f"/login?state=state-{self.logins}&client={CLIENT_ID}&protocol=oauth2"},
        )

    async def login_page(self, request: web.Request) -> web.Response:
        script = 'function(e){e.exports={raw:"%s"}}' % AUTH0_VERSION if self.serve_marker else ""
        resp = web.Response(
            text=f"<html><head><script>{script}</script></head><body>login</body></html>",
            content_type="text/html",
        )
        if self.set_csrf:
            resp.set_cookie("_csrf", CSRF_TOKEN, path="/usernamepassword/login")
        return resp

    async def submit(self, request: web.Request) -> web.Response:
        payload = json.loads(await request.text())
        checks = [
            request.headers.get("Auth0-Client") == expected_auth0_client(),
            request.headers.get("Content-Type", "").startswith("application/json"),
            request.headers.get("Referer", "").startswith(f"{self.origin}/login?state="),
            request.cookies.get("_csrf") == CSRF_TOKEN,
            payload.get("_csrf") == CSRF_TOKEN,
            payload.get("state") == f"state-{self.logins}",
            payload.get("client_id") == CLIENT_ID,
            payload.get("response_type") == "code",
            payload.get("scope") == "openid profile",
            payload.get("tenant") == "theeconomist",
            payload.get("_intstate") == "deprecated",
            payload.get("connection") == "Drupal",
        ]
        if not all(checks):
            return web.json_response({"error": "bad request"}, status=400)
        if payload.get("username") != USERNAME or payload.get("password") != PASSWORD:
            return web.json_response({"error": "access_denied"}, status=401)

        if not self.serve_hidden_form:
            return web.Response(text="<html><body>done</body></html>", content_type="text/html")
        form = (
            f'<form method="post" name="hiddenform" action="{self.origin}/login/callback">'
            '<input type="hidden" name="wa" value="wsignin1.0">'
            f'<input type="hidden" name="wresult" value="{RELAY_TOKEN}">'
            '<input type="hidden" name="wctx" value="{&#34;strategy&#34;:&#34;auth0&#34;}">'
            '<noscript><input type="submit" value="Continue"></noscript>'
            "</form>"
        )
        return web.Response(text=f"<html><body>{form}</body></html>", content_type="text/html")

    async def callback(self, request: web.Request) -> web.Response:
        form = await request.post()
        if form.get("wresult") != RELAY_TOKEN or request.headers.get("Origin") != self.origin:
            return web.Response(status=400, text="bad relay")
        if not self.callback_redirects:
            return web.Response(text="stay")
        self.logins += 1
        location = f"{self.origin}/sso/success?state=state-{self.logins}&code=code-{self.logins}"
        if self.include_destination:
            location += f"&destination={self.destination}"
        return web.Response(status=302, headers={"Location": location})

    async def success(self, request: web.Request) -> web.Response:
        resp = web.Response(text="welcome")
        resp.set_cookie("site_session", SITE_SESSION, path="/")
        return resp

    # ── content ───────────────────────────────────────────────────

    def _authorized(self, request: web.Request) -> bool:
        return request.cookies.get("site_session") == SITE_SESSION

    async def covers(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.Response(status=403)
        year = request.query.get("date_filter[value][year]", "")
        self.last_year_query = year
        links = "".join(
            f'<div class="audio-cover-image"><a href="/audio-edition/{d.isoformat()}">'
            f'<img src="/covers/{d.isoformat()}.jpg"></a></div>'
            for d in sorted(EDITIONS, reverse=True)
            if str(d.year) == year
        )
        other = '<div class="promo"><a href="/audio-edition/not-a-date">promo</a></div>'
        return web.Response(text=f"<html><body>{links}{other}</body></html>", content_type="text/html")

    def _zip_name(self, edition: date, section: Optional[int]) -> str:
        issue = EDITIONS[edition]
        stamp = edition.strftime("%Y%m%d")
        if section is None:
            return f"Issue_{issue}_{stamp}_The_Economist_Full_edition.zip"
        return f"Issue_{issue}_{stamp}_The_Economist_{section:02d}_{SECTIONS[section - 1]}.zip"

    async def edition(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.Response(status=403)
        segment = request.match_info["segment"]
        if segment == "latest":
            edition = LATEST
        else:
            try:
                edition = date.fromisoformat(segment)
            except ValueError:
                return web.Response(status=404)
            if edition not in EDITIONS:
                return web.Response(status=404)

        sections = "".join(
            f'<li><a href="/media/{self._zip_name(edition, n)}">{name}</a></li>'
            for n, name in enumerate(SECTIONS, start=1)
        )
        body = (
            "<html><body>"
            f'<span class="issue-date">{ordinal_date(edition)}</span>'
            f'<div class="audio-issue-full-download-link">'
            f'<a href="/media/{self._zip_name(edition, None)}">Download</a></div>'
            f'<ul class="audio-sections">{sections}</ul>'
            "</body></html>"
        )
        return web.Response(text=body, content_type="text/html")

    async def media(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.Response(status=403)
        name = request.match_info["name"]
        if "_The_Economist_" not in name or not name.endswith(".zip"):
            return web.Response(status=404)
        member = name.rsplit(".", 1)[0] + ".mp3"
        return web.Response(body=zip_bytes(member), content_type="application/zip")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def credentials() -> Credentials:
    return Credentials(username=USERNAME, password=PASSWORD)


@pytest_asyncio.fixture
async def provider():
    fake = FakeProvider()
    server = TestServer(fake.app, host="127.0.0.1")
    await server.start_server()
    fake.origin = f"http://{server.host}:{server.port}"
    yield fake
    await server.close()


def make_client(provider: FakeProvider, credentials: Credentials) -> SessionClient:
    return SessionClient(
        credentials,
        cookie_jar=aiohttp.CookieJar(unsafe=True),
        site_url=provider.origin,
        auth_url=provider.origin,
    )


@pytest_asyncio.fixture
async def client(provider, credentials):
    client = make_client(provider, credentials)
    yield client
    await client.close()


@pytest_asyncio.fixture
async def catalog(client) -> EditionCatalog:
    catalog = EditionCatalog(client)
    await catalog.login()
    return catalog
