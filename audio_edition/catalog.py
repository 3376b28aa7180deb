"""
Edition Catalog
Discovers audio editions and their sections, and resolves zip downloads,
over an authenticated ``SessionClient``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import AsyncIterator, List, Optional, Union
from urllib.parse import urljoin

import aiohttp
from bs4 import BeautifulSoup

from .auth.base_auth import AuthResult
from .auth.session_client import SessionClient
from .errors import InvalidSectionError, NotAuthenticatedError, PageStructureError
from .utils import (
    EditionRef,
    edition_path_segment,
    parse_edition_token,
    parse_issue_date,
)

logger = logging.getLogger(__name__)

AUDIO_EDITION_DESTINATION = "audio-edition"

COVERS_PATH = "/audio-edition/covers"
EDITION_PATH = "/audio-edition/{segment}"
YEAR_FILTER_PARAM = "date_filter[value][year]"

COVER_LINK_SELECTOR = ".audio-cover-image a"
SECTION_LINK_SELECTOR = ".audio-sections a"
FULL_DOWNLOAD_SELECTOR = ".audio-issue-full-download-link a"
ISSUE_DATE_SELECTOR = ".issue-date"

# Section zips are named like Issue_9123_20181222_The_Economist_01_Introduction.zip
SECTION_FILENAME_MARKER = "_The_Economist_"

DEFAULT_CHUNK_SIZE = 64 * 1024

SectionRef = Union[str, int]


def section_name_from_href(href: str) -> str:
    """
    Derive a readable section name from a section zip link.

    ``.../Issue_9123_20181222_The_Economist_02_The_world_this_week.zip``
    becomes ``The_world_this_week``.
    """
    if SECTION_FILENAME_MARKER not in href:
        raise PageStructureError(f"Section link {href!r} is not a section zip")
    tail = href.split(SECTION_FILENAME_MARKER)[-1]
    tokens = tail.split("_")[1:]
    return "_".join(tokens).split(".")[0]


def section_token(section: SectionRef) -> str:
    """Zero-pad ordinals below 10; names pass through unchanged.

    Ordinals start at 1; smaller ones raise ``InvalidSectionError``.
    """
    if isinstance(section, int):
        ordinal = section
    else:
        text = str(section).strip()
        if not text.isdigit():
            return text
        ordinal = int(text)
    if ordinal < 1:
        raise InvalidSectionError(section)
    return f"{ordinal:02d}"


@dataclass
class DownloadArtifact:
    """
    A live zip download and the edition date it belongs to.

    The body is streamed from the network and can be consumed exactly once,
    through ``iter_chunks()`` or ``read()``. Use ``async with`` (or call
    ``release()``) so the connection is returned on every path.
    """
    response: aiohttp.ClientResponse
    edition_date: date
    url: str = ""
    _consumed: bool = field(default=False, init=False, repr=False)

    def _claim(self) -> None:
        if self._consumed:
            raise RuntimeError("Download stream has already been consumed")
        self._consumed = True

    async def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield the body in chunks, releasing the response when done."""
        self._claim()
        try:
            async for chunk in self.response.content.iter_chunked(chunk_size):
                yield chunk
        finally:
            self.release()

    async def read(self) -> bytes:
        """Buffer and return the whole body."""
        self._claim()
        try:
            return await self.response.read()
        finally:
            self.release()

    def release(self) -> None:
        self.response.release()

    @property
    def consumed(self) -> bool:
        return self._consumed

    async def __aenter__(self) -> "DownloadArtifact":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()


class EditionCatalog:
    """
    Edition and section discovery for the audio edition.

    Every operation requires the wrapped client to be logged in with the
    ``audio-edition`` destination; otherwise ``NotAuthenticatedError`` is
    raised before any request is sent.
    """

    def __init__(self, client: SessionClient):
        self.client = client

    async def login(self) -> AuthResult:
        """Log the client in, landing on the audio edition."""
        return await self.client.login(AUDIO_EDITION_DESTINATION)

    def _require_login(self) -> None:
        result = self.client.auth_result
        if result is None:
            raise NotAuthenticatedError("Not logged in")
        if result.destination != AUDIO_EDITION_DESTINATION:
            raise NotAuthenticatedError(
                f"Logged in for {result.destination!r}, "
                f"not {AUDIO_EDITION_DESTINATION!r}"
            )

    def _url(self, path: str) -> str:
        return self.client.site_url + path

    async def list_editions(self, year: Optional[Union[int, str]] = None) -> List[date]:
        """
        List edition dates published in *year* (default: current year).

        Dates come back in page order.

        Raises:
            NotAuthenticatedError: no audio-edition login.
            PageStructureError: a cover link does not end in a date.
        """
        self._require_login()
        year = year or date.today().year

        soup = await self.client.fetch_html(
            self._url(COVERS_PATH), params={YEAR_FILTER_PARAM: str(year)}
        )

        editions: List[date] = []
        for link in soup.select(COVER_LINK_SELECTOR):
            href = link.get("href", "")
            token = href.rstrip("/").split("/")[-1]
            try:
                editions.append(parse_edition_token(token))
            except ValueError as exc:
                raise PageStructureError(f"Cover link {href!r} does not end in a date") from exc

        logger.info(f"[CATALOG] {len(editions)} editions listed for {year}")
        return editions

    async def fetch_edition_page(self, edition: EditionRef = None) -> BeautifulSoup:
        """
        Fetch the page of one edition (``None`` or ``"latest"`` for the newest).

        The returned document can be passed to ``list_sections`` and
        ``resolve_download`` to avoid fetching it again.
        """
        self._require_login()
        segment = edition_path_segment(edition)
        logger.debug(f"[CATALOG] Fetching edition page {segment}")
        return await self.client.fetch_html(self._url(EDITION_PATH.format(segment=segment)))

    async def list_sections(
        self, edition: EditionRef = None, page: Optional[BeautifulSoup] = None
    ) -> List[str]:
        """Section names of an edition, in publication order."""
        self._require_login()
        if page is None:
            page = await self.fetch_edition_page(edition)
        return [
            section_name_from_href(link.get("href", ""))
            for link in page.select(SECTION_LINK_SELECTOR)
        ]

    async def resolve_download(
        self,
        edition: EditionRef = None,
        section: Optional[SectionRef] = None,
        page: Optional[BeautifulSoup] = None,
    ) -> DownloadArtifact:
        """
        Open the zip download of an edition, or of one of its sections.

        Args:
            edition: Edition date or ``"latest"``.
            section: Section name (``"Introduction"``) or ordinal (``1``,
                     ``"01"``). Omit for the full edition.
            page:    An already fetched edition page.

        Returns:
            A ``DownloadArtifact`` whose stream the caller must consume.

        Raises:
            NotAuthenticatedError: no audio-edition login.
            InvalidSectionError: no section link matches *section*, or
                                 *section* is an ordinal below 1.
            PageStructureError: missing full-download link or issue date.
            aiohttp.ClientResponseError: the zip request failed.
        """
        self._require_login()
        token = section_token(section) if section is not None and section != "" else None
        if page is None:
            page = await self.fetch_edition_page(edition)

        if token is not None:
            zip_url = self._find_section_href(page, section, token)
        else:
            link = page.select_one(FULL_DOWNLOAD_SELECTOR)
            zip_url = link.get("href") if link is not None else None
            if not zip_url:
                raise PageStructureError("Full edition download link not found")

        zip_url = urljoin(self.client.site_url + "/", zip_url)
        edition_date = self._issue_date(page)

        logger.info(f"[CATALOG] Downloading {zip_url}")
        resp = await self.client.request("GET", zip_url)
        if resp.status >= 400:
            # raise_for_status releases the connection
            resp.raise_for_status()
        return DownloadArtifact(response=resp, edition_date=edition_date, url=zip_url)

    @staticmethod
    def _find_section_href(page: BeautifulSoup, section: SectionRef, token: str) -> str:
        # substring match on the href, first link wins
        for link in page.select(SECTION_LINK_SELECTOR):
            href = link.get("href", "")
            if token and token in href:
                return href
        raise InvalidSectionError(section)

    @staticmethod
    def _issue_date(page: BeautifulSoup) -> date:
        element = page.select_one(ISSUE_DATE_SELECTOR)
        text = element.get_text(" ", strip=True) if element is not None else ""
        try:
            return parse_issue_date(text)
        except ValueError as exc:
            raise PageStructureError(f"Unrecognised issue date {text!r}") from exc
