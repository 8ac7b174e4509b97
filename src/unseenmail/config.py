"""Config file loading.

Accepts YAML (``.yaml``/``.yml``/anything else) or TOML (``.toml``):

    accounts:
      - name: work
        server: imap.example.com
        port: 993
        username: me@example.com
        password: hunter2
        ntfy_url: https://ntfy.sh
        ntfy_topic: my-mail
    watcher:
      idle_max_wait_seconds: 300

Any failure is raised as ConfigError; the caller decides to exit.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .errors import ConfigError
from .schema import UnseenMailConfig

logger = logging.getLogger(__name__)


def _parse(path: Path, text: str) -> Any:
    if path.suffix.lower() == ".toml":
        try:
            return tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc


def load_config(path: Path | str) -> UnseenMailConfig:
    """Read, parse and validate the config file at *path*.

    Raises:
        ConfigError: file missing/unreadable, bad syntax, or schema violation.
    """
    path = Path(path).expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    data = _parse(path, text)
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at top level")

    try:
        config = UnseenMailConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc

    logger.debug("Loaded %d account(s) from %s", len(config.accounts), path)
    return config
