"""
Audio Edition Downloader
Signs in to economist.com through its single-sign-on redirect chain and
downloads audio editions.

CLI Usage:
    python -m audio_edition [command] [arguments]

    Commands:
        download [issue]              Download an issue (default command)
        list-issues <year>            List the issues of a year
        list-issue-sections <issue>   List the sections of an issue

Library Usage:
    async with SessionClient(Credentials(user, pw)) as client:
        catalog = EditionCatalog(client)
        await catalog.login()
        sections = await catalog.list_sections("latest")
"""

__version__ = '1.0.0'

from .auth import AuthResult, Credentials, SessionClient, SessionStore, telemetry
from .catalog import AUDIO_EDITION_DESTINATION, DownloadArtifact, EditionCatalog
from .errors import (
    AudioEditionError,
    AuthError,
    InvalidSectionError,
    NotAuthenticatedError,
    PageStructureError,
)

__all__ = [
    'AuthResult',
    'Credentials',
    'SessionClient',
    'SessionStore',
    'telemetry',
    'AUDIO_EDITION_DESTINATION',
    'DownloadArtifact',
    'EditionCatalog',
    # Errors
    'AudioEditionError',
    'AuthError',
    'InvalidSectionError',
    'NotAuthenticatedError',
    'PageStructureError',
]
