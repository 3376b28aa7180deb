"""
Session Store
=============
Persists a ``SessionClient`` cookie jar between runs.

Responsibilities:
    1. Load a saved jar into a fresh ``aiohttp.CookieJar`` if it is fresh
    2. Save the jar after a successful command
    3. Ignore stale or corrupt files (logged, never fatal)

Login still runs on every invocation; saved cookies only pre-seed the jar.

Usage::

    store = SessionStore("cookies.pickle")
    jar = store.load_jar()
    async with SessionClient(creds, cookie_jar=jar) as client:
        ...
    store.save_jar(jar)
"""

from __future__ import annotations

import logging
import pickle
import time
from pathlib import Path

import aiohttp

logger = logging.getLogger(__name__)

_MAX_SESSION_AGE_HOURS = 8


class SessionStore:
    """File-backed cookie jar persistence."""

    def __init__(
        self,
        path: str,
        *,
        max_age_hours: float = _MAX_SESSION_AGE_HOURS,
        unsafe: bool = False,
    ):
        """
        Args:
            path:          File the pickled jar is written to.
            max_age_hours: Saved jars older than this are ignored.
            unsafe:        Allow cookies for IP-address hosts.
        """
        self.path = Path(path)
        self.max_age_hours = max_age_hours
        self.unsafe = unsafe

    def has_valid_session(self) -> bool:
        """True if a saved jar exists and is younger than ``max_age_hours``."""
        if not self.path.exists():
            logger.info("[SESSION] No saved cookie file found")
            return False

        age_hours = (time.time() - self.path.stat().st_mtime) / 3600
        if age_hours > self.max_age_hours:
            logger.info(
                f"[SESSION] Cookie file is {age_hours:.1f}h old; ignored "
                f"(max {self.max_age_hours}h)"
            )
            return False
        return True

    def load_jar(self) -> aiohttp.CookieJar:
        """Return a jar seeded from the saved file when it is usable.

        Must be called from a running event loop.
        """
        jar = aiohttp.CookieJar(unsafe=self.unsafe)
        if not self.has_valid_session():
            return jar

        try:
            jar.load(self.path)
        except (OSError, EOFError, pickle.UnpicklingError, AttributeError, TypeError) as exc:
            logger.warning(f"[SESSION] Corrupt cookie file {self.path}: {exc}")
            return aiohttp.CookieJar(unsafe=self.unsafe)

        logger.info(f"[SESSION] Loaded {len(jar)} cookies from {self.path}")
        return jar

    def save_jar(self, jar: aiohttp.CookieJar) -> Path:
        """Write *jar* to ``path``, creating parent directories."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        jar.save(self.path)
        logger.info(f"[SESSION] Saved {len(jar)} cookies to {self.path}")
        return self.path
