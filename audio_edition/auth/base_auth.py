"""
Authentication Primitives
=========================
Value types shared by the sign-on client and its callers.

    - ``Credentials``: immutable username/password pair
    - ``AuthResult``: values returned by the final login redirect
    - ``SessionState``: lifecycle of one ``SessionClient``

Credential resolution (``resolve_credentials``) lives here too: explicit
values win, then ``{PREFIX}_USERNAME`` / ``{PREFIX}_PASSWORD`` environment
variables, then an interactive prompt.
"""

from __future__ import annotations

import getpass
import logging
import os
import sys
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_ENV_PREFIXES = ("ECONOMIST",)


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Credentials:
    """Account credentials. Never logged, never mutated."""
    username: str = ""
    password: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.password)

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class AuthResult:
    """Query values of the post-login redirect.

    ``code`` is an opaque access token and is never parsed. ``destination``
    is empty when the redirect carries none.
    """
    state: str
    code: str
    destination: str = ""

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> Optional["AuthResult"]:
        """Build from parsed query params; None if ``state`` or ``code`` is missing."""
        if "state" not in params or "code" not in params:
            return None
        return cls(
            state=params["state"],
            code=params["code"],
            destination=params.get("destination", ""),
        )


class SessionState(Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Credential resolution
# ---------------------------------------------------------------------------

def resolve_credentials(
    creds: Optional[Credentials] = None,
    *,
    env_prefixes: Iterable[str] = DEFAULT_ENV_PREFIXES,
    environ: Optional[Mapping[str, str]] = None,
    interactive: bool = False,
) -> Credentials:
    """Fill in missing credential fields.

    Resolution order:
        1. Values already present on *creds*
        2. Environment variables (``{PREFIX}_USERNAME``, ``{PREFIX}_PASSWORD``)
        3. Interactive terminal prompt (only if *interactive* and stdin is a TTY)

    Returns:
        A ``Credentials`` instance (may still be incomplete).
    """
    if creds is None:
        creds = Credentials()
    if creds.is_complete:
        return creds

    env = os.environ if environ is None else environ
    username, password = creds.username, creds.password

    for prefix in env_prefixes:
        username = username or env.get(f"{prefix}_USERNAME", "")
        password = password or env.get(f"{prefix}_PASSWORD", "")

    creds = replace(creds, username=username, password=password)
    if creds.is_complete:
        logger.debug("[AUTH] Credentials resolved from environment")
        return creds

    if interactive and sys.stdin.isatty():
        creds = _prompt_credentials(creds)

    return creds


def _prompt_credentials(creds: Credentials) -> Credentials:
    """Prompt on the terminal for whichever fields are still empty."""
    username = creds.username
    password = creds.password

    if not username:
        username = input("economist.com email: ").strip()
    if not password:
        password = getpass.getpass("economist.com password: ")

    return Credentials(username=username, password=password)
