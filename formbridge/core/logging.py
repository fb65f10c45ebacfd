import logging
import sys
from typing import Any, Optional, Union

import structlog

from formbridge.core.config import get_settings


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = get_settings().log_level
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: Union[int, str, None] = None, log_format: Optional[str] = None) -> None:
    """
    Set up structlog on top of stdlib logging.

    JSON lines for services; ``log_format="console"`` gives the colourless
    key=value renderer used by the admin CLI.
    """
    resolved = _resolve_level(level)
    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if (log_format or get_settings().log_format) == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=resolved)
    logging.getLogger().setLevel(resolved)
    # httpx logs every request at INFO; our client already records the outcome.
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))


def get_logger(*args: Any, **kwargs: Any) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(*args, **kwargs)
