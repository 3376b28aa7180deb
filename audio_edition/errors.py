"""
Exception Types
===============
Every failure raised by the core derives from ``AudioEditionError``.

The core never retries and never swallows these: they propagate to the
caller untouched, and the CLI decides how to present them.
"""

from __future__ import annotations

from typing import Optional, Union


class AudioEditionError(Exception):
    """Base exception for all audio-edition errors."""


class AuthError(AudioEditionError):
    """A step of the sign-on handshake did not produce what was expected.

    ``step`` names the handshake step (``entry``, ``authorize``,
    ``login_page``, ``csrf``, ``login_submit``, ``hidden_form``,
    ``callback``, ``success``) so failures can be told apart.
    """

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step

    def __str__(self) -> str:
        if self.step:
            return f"[{self.step}] {self.message}"
        return self.message


class NotAuthenticatedError(AudioEditionError):
    """A catalog operation was attempted without a matching prior login."""


class InvalidSectionError(AudioEditionError):
    """No section link on the edition page matches the requested section."""

    def __init__(self, section: Union[str, int]):
        super().__init__(f"Invalid section: {section!r}")
        self.section = section


class PageStructureError(AudioEditionError):
    """An edition page or cover listing no longer has the expected shape."""
