"""
Unified Run Configuration
=========================
Single source of truth for CLI defaults.

Values are layered, highest priority first:

    1. command-line flags
    2. environment variables (``ENV_KEYS``; a ``.env`` file is loaded first)
    3. JSON config file (``--config``)
    4. ``_DEFAULTS``

The core (``SessionClient`` / ``EditionCatalog``) never reads this object;
the CLI passes the relevant values into their constructors.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .auth.base_auth import Credentials
from .utils import proxy_scheme

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults for every RunConfig field
# ---------------------------------------------------------------------------
_DEFAULTS: Dict[str, Any] = {
    "command": "download",
    "log_level": "info",
    "quiet": False,
    "username": None,
    "password": None,
    "config": None,
    "proxy_url": None,
    "user_agent": None,
    "cookie_file": None,
    # download
    "issue": "latest",
    "section": None,
    "output": None,
    "extract": None,
    "subdir": False,
    # list-issues
    "year": None,
}

# Environment variable → config field
ENV_KEYS: Dict[str, str] = {
    "ECONOMIST_USERNAME": "username",
    "ECONOMIST_PASSWORD": "password",
    "PROXY_URL": "proxy_url",
    "HTTP_PROXY": "proxy_url",
    "USER_AGENT": "user_agent",
    "LOG_LEVEL": "log_level",
    "COOKIE_FILE": "cookie_file",
}


class ConfigError(ValueError):
    """The configuration file or a combination of options is invalid."""


@dataclass
class RunConfig:
    """
    Configuration consumed by the CLI.

    Populate via:
      - ``RunConfig()``                        → all defaults
      - ``RunConfig.from_cli_args(ns)``        → flags + env + config file
    """

    command: str = _DEFAULTS["command"]

    # ---- Logging ----
    log_level: str = _DEFAULTS["log_level"]
    quiet: bool = _DEFAULTS["quiet"]

    # ---- Account / transport ----
    username: Optional[str] = _DEFAULTS["username"]
    password: Optional[str] = _DEFAULTS["password"]
    config: Optional[str] = _DEFAULTS["config"]
    proxy_url: Optional[str] = _DEFAULTS["proxy_url"]
    user_agent: Optional[str] = _DEFAULTS["user_agent"]
    cookie_file: Optional[str] = _DEFAULTS["cookie_file"]

    # ---- download ----
    issue: str = _DEFAULTS["issue"]
    section: Optional[str] = _DEFAULTS["section"]
    output: Optional[str] = _DEFAULTS["output"]
    extract: Optional[str] = _DEFAULTS["extract"]
    subdir: bool = _DEFAULTS["subdir"]

    # ---- list-issues ----
    year: Optional[int] = _DEFAULTS["year"]

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(
        cls, args, environ: Optional[Mapping[str, str]] = None
    ) -> "RunConfig":
        """Build config from an argparse Namespace (``__main__.py``).

        Flags left at ``None`` fall through to the environment, then to the
        config file named by ``--config``, then to the defaults.
        """
        env = os.environ if environ is None else environ
        known = {f.name for f in fields(cls)}

        values: Dict[str, Any] = dict(_DEFAULTS)

        config_path = getattr(args, "config", None) or None
        if config_path:
            values.update(load_config_file(config_path, known))

        values.update(_from_environ(env))

        for name in known:
            flag = getattr(args, name, None)
            if flag is not None:
                values[name] = flag

        values["config"] = config_path
        return cls(**{k: v for k, v in values.items() if k in known})

    @property
    def credentials(self) -> Credentials:
        return Credentials(username=self.username or "", password=self.password or "")

    def validate(self) -> None:
        """Reject option combinations the CLI cannot honour."""
        if self.command == "download" and self.output and self.extract:
            raise ConfigError("Cannot download and extract: use --output or --extract, not both")
        if self.command == "list-issues" and self.year is not None:
            try:
                int(self.year)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"Invalid year: {self.year!r}") from exc
        if self.proxy_url:
            try:
                proxy_scheme(self.proxy_url)
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self) -> None:
        """Emit a structured summary to the logger (never the password)."""
        logger.debug("=" * 60)
        logger.debug("RUN CONFIG")
        logger.debug("=" * 60)
        logger.debug(f"  Command:      {self.command}")
        logger.debug(f"  Username:     {self.username or '-'}")
        logger.debug(f"  Proxy:        {self.proxy_url or '-'}")
        if self.cookie_file:
            logger.debug(f"  Cookie file:  {self.cookie_file}")
        if self.command == "download":
            logger.debug(f"  Issue:        {self.issue}")
            logger.debug(f"  Section:      {self.section or 'full edition'}")
            if self.output:
                logger.debug(f"  Output:       {self.output}")
            elif self.extract:
                logger.debug(f"  Extract to:   {self.extract} (subdir={self.subdir})")
            else:
                logger.debug("  Output:       stdout")
        elif self.command == "list-issues":
            logger.debug(f"  Year:         {self.year}")
        else:
            logger.debug(f"  Issue:        {self.issue}")
        logger.debug("=" * 60)


def load_config_file(path: str, known: Optional[set] = None) -> Dict[str, Any]:
    """Read a JSON object of config values; unknown keys are ignored."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    values = {key.replace("-", "_"): value for key, value in data.items()}
    if known is not None:
        ignored = sorted(set(values) - known)
        if ignored:
            logger.warning(f"Ignoring unknown config keys: {', '.join(ignored)}")
        values = {k: v for k, v in values.items() if k in known}
    return values


def _from_environ(env: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, name in ENV_KEYS.items():
        value = env.get(key) or env.get(key.lower())
        # first matching key wins (PROXY_URL over HTTP_PROXY)
        if value and name not in values:
            values[name] = value
    return values
