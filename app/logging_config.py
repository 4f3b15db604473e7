from __future__ import annotations
import logging
import sys
import structlog

def configure_logging(debug: bool = False, json_logs: bool = True) -> None:
    level = logging.DEBUG if debug else logging.INFO
    # JSON lines for machine-readable logs; console renderer for interactive `listen`
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    # stdlib logging carries the rendered lines to stdout
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
