"""Configuration utilities for LedgerSync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

import click

from ledgersync.core.config import ServerConfig

DEFAULT_TIMEOUT = 30.0


def get_config_dir() -> Path:
    """Get the configuration directory for LedgerSync.

    Returns:
        Path from LEDGERSYNC_CONFIG_DIR, or ~/.ledgersync.
    """
    override = os.environ.get("LEDGERSYNC_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".ledgersync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_queue_db_path() -> Path:
    """Get the path to the local queue database."""
    return get_config_dir() / "queue.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def require_server_config() -> ServerConfig:
    """Build the server config, exiting if the client is not configured."""
    config = load_config()
    if not config.get("server_url"):
        click.echo(
            "Error: No server configured. Run 'ledgersync configure --server-url URL' first.",
            err=True,
        )
        sys.exit(1)
    return ServerConfig(
        server_url=config["server_url"],
        timeout=float(config.get("timeout", DEFAULT_TIMEOUT)),
    )
