import logging
import sys
from typing import Optional, TextIO

import structlog

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
    ],
)

# Records flow through the stdlib logger "declscan"; the root logger decides
# where they end up.
_std_logger = logging.getLogger("declscan")
_std_logger.setLevel(logging.NOTSET)
_std_logger.propagate = True

logger: structlog.BoundLogger = structlog.get_logger("declscan")

_HANDLER_NAME = "declscan-cli"


def setup_logging(debug: bool, stream: Optional[TextIO] = None) -> None:
    """
    Route extraction logs to *stream* (stderr by default). Only warnings are
    shown unless *debug* is set.
    """
    level = logging.DEBUG if debug else logging.WARNING
    root = logging.getLogger()
    root.setLevel(level)

    handler = next((h for h in root.handlers if h.get_name() == _HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.set_name(_HANDLER_NAME)
        # structlog renders the final message
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
    elif stream is not None:
        handler.setStream(stream)
    handler.setLevel(level)
