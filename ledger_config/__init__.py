"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration.  Sits above ``ledger_kernel``; the kernel MUST NEVER
    import from ``ledger_config``.  ``bridges`` translates the loaded
    configuration into the kernel's ``PostingPolicy``.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``KeyError`` / ``ValueError`` -- schema or value errors in the YAML.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LEDGER_CONFIG_TRACE`` log entry with the config id, version, source
    path, tolerance and section count.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import load_ledger_config
from ledger_config.schema import LedgerConfig

__all__ = ["CONFIG_PATH_ENV", "DEFAULT_CONFIG_PATH", "LedgerConfig", "get_active_config"]

_logger = logging.getLogger("ledger_kernel.config")

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """
    Load the active ledger configuration.

    Resolution order: the explicit ``path`` argument, then the
    ``LEDGER_CONFIG_PATH`` environment variable, then the packaged
    ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        KeyError: If a required key is missing.
        ValueError: If a value cannot be parsed.
    """
    if path is None:
        env_path = os.environ.get(CONFIG_PATH_ENV)
        path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH

    config = load_ledger_config(Path(path))

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "source_path": config.source_path,
            "balance_tolerance": str(config.balance_tolerance),
            "section_count": len(config.withholding.sections),
        },
    )
    return config
