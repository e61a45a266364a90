"""
travel_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way the running system obtains
    configuration.  No other component reads configuration files or
    environment variables for engine behaviour.

Architecture position:
    Configuration layer.  Sits above ``travel_kernel`` and below
    ``travel_services``.  The kernel MUST NEVER import from
    ``travel_config``; ``bridges.build_workflow_policy`` translates the
    parsed configuration into the kernel's ``WorkflowPolicy``.

Failure modes:
    - ``FileNotFoundError`` -- the configured file does not exist.
    - ``ValueError`` -- validation failures, all listed in the message.

Audit relevance:
    Every successful call emits a ``TRAVEL_CONFIG_TRACE`` log entry with
    the config id, version and checksum, so each approval decision can be
    tied back to the configuration that governed it.
"""

from __future__ import annotations

import os
from pathlib import Path

from travel_config.loader import load_configuration
from travel_config.schema import EngineConfiguration
from travel_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "TRAVEL_CONFIG_PATH"


def get_active_config(path: Path | str | None = None) -> EngineConfiguration:
    """The ONLY public configuration entrypoint.

    Resolution order: explicit ``path``, then ``$TRAVEL_CONFIG_PATH``, then
    the bundled ``sets/default.yaml``.
    """
    if path is None:
        path = os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH
    config_path = Path(path)

    config = load_configuration(config_path)

    _logger.info(
        "TRAVEL_CONFIG_TRACE",
        extra={
            "trace_type": "TRAVEL_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(config_path),
            "empty_chain_policy": config.empty_chain_policy,
        },
    )
    return config


__all__ = ["CONFIG_PATH_ENV", "EngineConfiguration", "get_active_config"]
