"""Runtime configuration: output mode, verbosity, paths and environment."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from tplc._constants import CA_CERT_FILE, CRED_DIR, CRED_FILENAME

ENV_USERNAME = "TPLC_USERNAME"
ENV_PASSWORD = "TPLC_PASSWORD"
ENV_CONFIG_DIR = "TPLC_CONFIG_DIR"
ENV_CA_FILE = "TPLC_CA_FILE"

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


class OutputMode(Enum):
    JSON = "json"
    TABLE = "table"


@dataclass(frozen=True)
class RuntimeConfig:
    """Per-invocation settings, built once from the global CLI flags."""

    output_mode: OutputMode = OutputMode.JSON
    verbose: bool = False


def config_dir() -> Path:
    override = os.environ.get(ENV_CONFIG_DIR)
    return Path(override).expanduser() if override else CRED_DIR


def credentials_path() -> Path:
    return config_dir() / CRED_FILENAME


def ca_cert_path() -> Path:
    override = os.environ.get(ENV_CA_FILE)
    return Path(override).expanduser() if override else CA_CERT_FILE


def credentials_from_env() -> tuple[str, str] | None:
    """Return ``(username, password)`` from the environment, if both are set."""
    username = os.environ.get(ENV_USERNAME, "")
    password = os.environ.get(ENV_PASSWORD, "")
    if not username or not password:
        return None
    return username, password


class CliLogHandler(logging.StreamHandler):
    """Stderr handler installed by :func:`configure_logging`."""


def configure_logging(verbose: bool) -> None:
    """Route ``tplc`` log records to stderr; DEBUG when *verbose*."""
    logger = logging.getLogger("tplc")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    for old in [h for h in logger.handlers if isinstance(h, CliLogHandler)]:
        logger.removeHandler(old)
    handler = CliLogHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
