"""
Authentication Module
=====================
Sign-on handshake for economist.com.

Architecture:
    - ``SessionClient``: cookie jar + headers + the ten-step login
    - ``Credentials``: immutable username/password pair
    - ``AuthResult``: state/code/destination from the final redirect
    - ``telemetry``: ``Auth0-Client`` header encoding
    - ``SessionStore``: optional cookie persistence between runs

Usage::

    from audio_edition.auth import Credentials, SessionClient

    async with SessionClient(Credentials(user, pw)) as client:
        await client.login("audio-edition")
"""

from .base_auth import AuthResult, Credentials, SessionState, resolve_credentials
from .session_client import SessionClient
from .session_store import SessionStore
from . import telemetry

__all__ = [
    "AuthResult",
    "Credentials",
    "SessionState",
    "resolve_credentials",
    "SessionClient",
    "SessionStore",
    "telemetry",
]
