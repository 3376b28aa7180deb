#!/usr/bin/env python3
"""
Command-line interface
======================
Downloads audio editions of The Economist.

    python -m audio_edition download [issue] [-s SECTION] [-o FILE | -e DIR [-b]]
    python -m audio_edition list-issues <year>
    python -m audio_edition list-issue-sections <issue>

``download`` is the default command. Without ``-o`` or ``-e`` the zip is
written to stdout. Credentials come from flags, ``ECONOMIST_USERNAME`` /
``ECONOMIST_PASSWORD`` (a ``.env`` file is honoured), a JSON ``--config``
file, or an interactive prompt.
"""

import argparse
import asyncio
import logging
import sys
import zipfile
from typing import List, Optional

import aiohttp
from aiohttp_socks import ProxyError
from dotenv import load_dotenv

from . import __version__
from .auth.base_auth import resolve_credentials
from .auth.session_client import SessionClient
from .auth.session_store import SessionStore
from .catalog import EditionCatalog
from .errors import AudioEditionError
from .output import extract_to_directory, write_to_file, write_to_stream
from .run_config import ConfigError, RunConfig
from .utils import format_edition_date

logger = logging.getLogger(__name__)

COMMANDS = ("download", "list-issues", "list-issue-sections")

# Failures reported as a log line + exit code 1
_EXPECTED_ERRORS = (AudioEditionError, aiohttp.ClientError, ProxyError, OSError, ValueError)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="audio-edition",
        description="Download audio editions of The Economist",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  audio-edition download latest -o latest.zip
  audio-edition download 2018-12-22 -s Introduction -e ./audio -b
  audio-edition list-issues 2018
  audio-edition list-issue-sections latest
        """,
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('-l', '--log-level', dest='log_level', type=str,
                        help='Verbosity of log output (default: info)')
    parser.add_argument('-q', '--quiet', action='store_true', default=None,
                        help='Turn logging off')
    parser.add_argument('-u', '--username', type=str, help='Username to log in with')
    parser.add_argument('-p', '--password', type=str, help='Password to log in with')
    parser.add_argument('-f', '--config', type=str, metavar='PATH',
                        help='A JSON configuration file to read from')
    parser.add_argument('-x', '--proxy-url', dest='proxy_url', type=str, metavar='URL',
                        help='Proxy used for all requests (http, https, socks4 or socks5 URL)')
    parser.add_argument('--user-agent', dest='user_agent', type=str,
                        help='User-Agent sent with every request')
    parser.add_argument('--cookie-file', dest='cookie_file', type=str, metavar='PATH',
                        help='Load and save session cookies at this path')

    sub = parser.add_subparsers(dest='command')

    download = sub.add_parser('download', help='Download the zip of an issue or one of its sections')
    download.add_argument('issue', nargs='?', default=None,
                          help='Date of the issue to download (default: latest)')
    download.add_argument('-s', '--section', type=str,
                          help='Name or number of the section (e.g. "Introduction" or 1); '
                               'omit for the entire issue')
    download.add_argument('-o', '--output', type=str, metavar='PATH',
                          help='Path of the resulting zip file (default: stdout)')
    download.add_argument('-e', '--extract', type=str, metavar='DIR',
                          help="Extract the zip into DIR, creating it if it doesn't exist")
    download.add_argument('-b', '--subdir', action='store_true', default=None,
                          help='Extract into a subdirectory named after the issue date')

    list_issues = sub.add_parser('list-issues', help='List all issues for a given year')
    list_issues.add_argument('year', type=int, help='Year to list issues for')

    list_sections = sub.add_parser('list-issue-sections', help='List the sections of an issue')
    list_sections.add_argument('issue', help='Issue to list sections for')

    return parser


def parse_config(argv: Optional[List[str]] = None) -> RunConfig:
    """Parse *argv* into a ``RunConfig``; ``download`` is implied when no command is given."""
    argv = list(sys.argv[1:] if argv is None else argv)
    if not any(arg in COMMANDS for arg in argv) and not any(a in ('-h', '--help', '--version') for a in argv):
        argv.insert(_first_positional(argv), 'download')
    args = build_parser().parse_args(argv)
    return RunConfig.from_cli_args(args)


def _first_positional(argv: List[str]) -> int:
    """Index where the implied ``download`` command belongs."""
    # global options that take a value
    valued = {'-l', '--log-level', '-u', '--username', '-p', '--password', '-f', '--config',
              '-x', '--proxy-url', '--user-agent', '--cookie-file'}
    download_only = {'-s', '--section', '-o', '--output', '-e', '--extract', '-b', '--subdir'}
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg in valued:
            i += 2
        elif arg.split('=', 1)[0] in download_only or not arg.startswith('-'):
            return i
        else:
            i += 1
    return len(argv)


def configure_logging(cfg: RunConfig) -> None:
    level = getattr(logging, str(cfg.log_level).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
        force=True,
    )
    logging.disable(logging.CRITICAL if cfg.quiet else logging.NOTSET)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def login(cfg: RunConfig, catalog: EditionCatalog) -> int:
    """Log the catalog's client in; returns an exit code."""
    client = catalog.client
    if not client.credentials.is_complete:
        logger.error("No username and/or password given")
        return 1
    logger.debug(f"Logging in to user {client.credentials.username}")
    try:
        await catalog.login()
    except _EXPECTED_ERRORS as exc:
        logger.error(f"An error occurred logging in: {exc}")
        return 1
    return 0


async def list_issues(cfg: RunConfig, catalog: EditionCatalog) -> int:
    try:
        issues = await catalog.list_editions(cfg.year)
    except _EXPECTED_ERRORS as exc:
        logger.error(f"Error getting issues for {cfg.year}: {exc}")
        return 1
    for issue in issues:
        print(format_edition_date(issue))
    return 0


async def list_issue_sections(cfg: RunConfig, catalog: EditionCatalog) -> int:
    try:
        sections = await catalog.list_sections(cfg.issue)
    except _EXPECTED_ERRORS as exc:
        logger.error(f"Error getting sections for {cfg.issue}: {exc}")
        return 1
    for section in sections:
        print(section)
    return 0


async def download(cfg: RunConfig, catalog: EditionCatalog) -> int:
    issue = cfg.issue or "latest"
    sect_str = f' section "{cfg.section}"' if cfg.section else ""

    logger.info(f'Downloading audio for issue "{issue}"{sect_str}')
    try:
        artifact = await catalog.resolve_download(issue, cfg.section)
    except _EXPECTED_ERRORS as exc:
        logger.error(f'Error downloading issue "{issue}"{sect_str}: {exc}')
        return 1

    try:
        if cfg.output:
            path = await write_to_file(artifact, cfg.output)
            logger.info(f'Successfully wrote "{issue}"{sect_str} to "{path}"')
        elif cfg.extract:
            path = await extract_to_directory(artifact, cfg.extract, subdir=bool(cfg.subdir))
            logger.info(f'Successfully extracted "{issue}"{sect_str} to "{path}"')
        else:
            await write_to_stream(artifact)
    except _EXPECTED_ERRORS as exc:
        target = cfg.output or cfg.extract or "stdout"
        logger.error(f'Error writing to "{target}": {exc}')
        return 1
    except zipfile.BadZipFile as exc:
        logger.error(f'Error writing "{issue}"{sect_str}: {exc}')
        return 1
    return 0


_HANDLERS = {
    "download": download,
    "list-issues": list_issues,
    "list-issue-sections": list_issue_sections,
}


async def run(cfg: RunConfig) -> int:
    """Resolve credentials, log in, run the command; returns an exit code."""
    try:
        cfg.validate()
    except ConfigError as exc:
        logger.error(str(exc))
        return 1

    creds = resolve_credentials(cfg.credentials, interactive=True)
    store = SessionStore(cfg.cookie_file) if cfg.cookie_file else None
    jar = store.load_jar() if store else None

    async with SessionClient(
        creds,
        proxy_url=cfg.proxy_url,
        user_agent=cfg.user_agent,
        cookie_jar=jar,
    ) as client:
        catalog = EditionCatalog(client)

        code = await login(cfg, catalog)
        if code:
            return code

        code = await _HANDLERS[cfg.command](cfg, catalog)

        if store and code == 0:
            try:
                store.save_jar(client.cookie_jar)
            except OSError as exc:
                logger.warning(f"[SESSION] Could not save cookies: {exc}")
        return code


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    try:
        cfg = parse_config(argv)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except SystemExit as exc:
        # argparse exits 2 on usage errors and 0 after --help / --version
        return 0 if exc.code in (0, None) else 1
    configure_logging(cfg)
    cfg.log_summary()
    return asyncio.run(run(cfg))


if __name__ == '__main__':
    sys.exit(main())
