"""
structlog on top of stdlib logging.

Library loggers are bound to stdlib loggers, so nothing reaches stdout (where
the CLI prints hashes and user operations) and an embedding application's
handlers decide where events go. The CLI calls configure_logging() once.
"""
import logging
import sys

import structlog


def configure_logging(level: str = "INFO", format_json: bool = False) -> None:
    logging.basicConfig(stream=sys.stderr, format="%(message)s")
    logging.getLogger().setLevel(getattr(logging, level.upper()))

    renderer = (structlog.processors.JSONRenderer() if format_json
                else structlog.dev.ConsoleRenderer(colors=False))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def get_logger(name: str):
    return structlog.wrap_logger(logging.getLogger(name))
