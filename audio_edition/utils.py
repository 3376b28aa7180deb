"""
Utility Functions
Query-string parsing and edition date helpers shared by the auth and
catalog layers.
"""

import logging
import re
from datetime import date, datetime
from typing import Dict, Optional, Union
from urllib.parse import parse_qs, urlparse

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

EditionRef = Union[date, datetime, str, None]

LATEST = "latest"

# Path segment format used by the edition pages (e.g. /audio-edition/2018-12-22)
EDITION_PATH_FORMAT = "%Y-%m-%d"

# Displayed issue date, e.g. "December 22nd, 2018"
ISSUE_DATE_FORMAT = "%B %d, %Y"

_ORDINAL_SUFFIX = re.compile(r"(\d+)(st|nd|rd|th)\b", re.IGNORECASE)


def parse_query(url: Optional[str]) -> Dict[str, str]:
    """
    Parse the query string of a URL into a flat dictionary.

    Repeated keys keep their first value. Blank values are kept so that a
    present-but-empty parameter is distinguishable from a missing one.

    Args:
        url: Absolute or relative URL (None yields an empty dict)

    Returns:
        Mapping of query parameter name to value
    """
    if not url:
        return {}
    params = parse_qs(urlparse(url).query, keep_blank_values=True)
    return {key: values[0] for key, values in params.items()}


def edition_path_segment(edition: EditionRef = None) -> str:
    """
    Resolve an edition reference to the path segment the site expects.

    ``None`` and ``"latest"`` map to the site's ``latest`` alias. Dates and
    datetimes are formatted directly; any other string goes through
    dateutil so that ``"22 Dec 2018"`` and ``"2018-12-22"`` both work.
    """
    if edition is None:
        return LATEST
    if isinstance(edition, datetime):
        return edition.date().strftime(EDITION_PATH_FORMAT)
    if isinstance(edition, date):
        return edition.strftime(EDITION_PATH_FORMAT)

    text = str(edition).strip()
    if not text or text.lower() == LATEST:
        return LATEST
    return date_parser.parse(text).date().strftime(EDITION_PATH_FORMAT)


def parse_edition_token(token: str) -> date:
    """Parse a ``YYYY-MM-DD`` path segment into a date."""
    return datetime.strptime(token.strip(), EDITION_PATH_FORMAT).date()


def parse_issue_date(text: str) -> date:
    """
    Parse the issue date as displayed on an edition page.

    The page shows dates like ``December 22nd, 2018``; the ordinal suffix
    is dropped before parsing with ``ISSUE_DATE_FORMAT``.
    """
    cleaned = _ORDINAL_SUFFIX.sub(r"\1", " ".join(text.split()))
    return datetime.strptime(cleaned, ISSUE_DATE_FORMAT).date()


def format_edition_date(value: date) -> str:
    """Format an edition date the way the CLI prints it."""
    return value.strftime(EDITION_PATH_FORMAT)


HTTP_PROXY_SCHEMES = ("http", "https")
SOCKS_PROXY_SCHEMES = ("socks4", "socks5")


def proxy_scheme(proxy_url: str) -> str:
    """
    Return the lower-cased scheme of a proxy URL.

    Raises:
        ValueError: the scheme is not http, https, socks4 or socks5.
    """
    scheme = urlparse(proxy_url).scheme.lower()
    if scheme not in HTTP_PROXY_SCHEMES + SOCKS_PROXY_SCHEMES:
        raise ValueError(
            f"Unsupported proxy URL {proxy_url!r}: "
            f"use an http://, https://, socks4:// or socks5:// URL"
        )
    return scheme
