"""Structured logging setup using structlog.

One shared processor chain (context vars, log level, stack info, exception
info, timestamps) feeds either a coloured ConsoleRenderer for local work or a
JSONRenderer for deployed ingestion workers.  The renderer is chosen from the
``app_env`` argument (falling back to the ``APP_ENV`` environment variable),
or forced with ``json_output``.

Standard-library ``logging`` is rewired through the same formatter so that
httpx, openai and aiosqlite records come out in the same shape as ours.
Everything goes to stderr; stdout is reserved for CLI results.
"""

import logging
import os
import sys

import structlog


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    app_env: str | None = None,
) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output regardless of environment.
        app_env: Deployment environment name; ``"production"`` selects JSON.
            Defaults to the ``APP_ENV`` environment variable.

    Returns:
        A configured structlog BoundLogger.
    """
    env = app_env or os.environ.get("APP_ENV", "development")
    use_json = json_output or env == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound with ``logger_name``.

    Configures logging with defaults first if nothing has configured it yet.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)
