"""structlog configuration for opline.

opline modules log through stdlib ``logging``; this module routes those
records (and structlog's own loggers) through one structlog formatter on a
single root handler owned by opline. Handlers installed by the host
application are left alone.

``runtime.configure`` applies the ``[log]`` section when ``log.enabled`` is
set. Applications that own their logging setup leave it off and may call
:func:`configure_logging` themselves.
"""

from __future__ import annotations

import logging
import sys

import structlog

from opline.config.settings import OplineSettings

QUIET_LOGGERS = ("redis", "sqlalchemy")

_handler: logging.Handler | None = None


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_json: bool) -> structlog.types.Processor:
    if log_json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(*, verbose: bool = False, log_json: bool = False) -> logging.Handler:
    """Install (or replace) opline's structlog handler on the root logger.

    Args:
        verbose: DEBUG output for the ``opline`` hierarchy; WARNING otherwise.
        log_json: JSON lines instead of console rendering.

    Returns:
        The handler now owned by opline.
    """
    global _handler
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_json),
            ],
        )
    )

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
    root.addHandler(handler)
    _handler = handler
    if root.level == logging.NOTSET or root.level > logging.WARNING:
        root.setLevel(logging.WARNING)

    logging.getLogger("opline").setLevel(logging.DEBUG if verbose else logging.WARNING)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler


def configure_logging_from_settings(settings: OplineSettings) -> logging.Handler:
    """Apply the ``[log]`` section of *settings*."""
    return configure_logging(verbose=settings.log.verbose, log_json=settings.log.json_output)
