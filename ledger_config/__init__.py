"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive what they need from the
    returned ``LedgerConfig`` (through ``ledger_config.bridges``) and never
    read files or environment variables themselves.

Architecture position:
    Configuration.  Sits above ``ledger_kernel`` and below
    ``ledger_ingestion``.  The kernel never imports from ``ledger_config``.

Resolution order:
    1. the ``path`` argument
    2. the ``LEDGER_CONFIG_FILE`` environment variable
    3. the packaged ``sets/default.yaml``
    ``LEDGER_DATABASE_URL`` then overrides ``database.url``.

Failure modes:
    - ``FileNotFoundError`` -- the resolved file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema or structural errors.

Audit relevance:
    Every successful call emits a ``ledger_config_loaded`` log entry with
    the config_id, version and SHA-256 checksum of the parsed document.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from ledger_config.loader import load_ledger_config
from ledger_config.schema import (
    AccountSeed,
    DatabaseConfig,
    LedgerConfig,
    PostingRuleDef,
    RetryPolicy,
    TenancyConfig,
)
from ledger_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_FILE_ENV = "LEDGER_CONFIG_FILE"
DATABASE_URL_ENV = "LEDGER_DATABASE_URL"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """
    The only public configuration entrypoint.

    Does not cache; callers hold the returned config for the life of their
    worker.

    Args:
        path: Explicit configuration file.  Overrides LEDGER_CONFIG_FILE.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If the document fails validation.
    """
    resolved = Path(path or os.environ.get(CONFIG_FILE_ENV) or DEFAULT_CONFIG_PATH)
    config = load_ledger_config(resolved)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = dataclasses.replace(
            config,
            database=dataclasses.replace(config.database, url=database_url),
        )

    _logger.info(
        "ledger_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(resolved),
            "account_count": len(config.accounts),
            "rule_count": len(config.posting_rules),
            "database_url_overridden": bool(database_url),
        },
    )
    return config


__all__ = [
    "CONFIG_FILE_ENV",
    "DATABASE_URL_ENV",
    "DEFAULT_CONFIG_PATH",
    "AccountSeed",
    "DatabaseConfig",
    "LedgerConfig",
    "PostingRuleDef",
    "RetryPolicy",
    "TenancyConfig",
    "get_active_config",
]
