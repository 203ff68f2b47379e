"""
Logging Setup
=============

Root logger configuration for scripts and long-running workers.
Library modules only ever call ``logging.getLogger(__name__)``.
"""

import logging
import sys
from typing import Optional

from .config import LoggingConfig

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "urllib3", "aiosqlite")


def setup_logging(config: Optional[LoggingConfig] = None, level: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        config: Logging section of the pipeline config
        level: Explicit level override (e.g. from a ``--verbose`` flag)
    """
    config = config or LoggingConfig()
    resolved_level = (level or config.level).upper()

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(config.format))
    root.addHandler(handler)
    root.setLevel(resolved_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
