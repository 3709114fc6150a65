import logging
import logging.handlers
import pathlib
import time
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

SERVICE_NAME = "manga-metadata-api"

# Third party loggers that are too chatty at INFO for a proxy serving images
NOISY_LOGGERS = ("aiohttp.access", "uvicorn.access")


def _add_service(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "text",
    log_file: str | None = None,
    config_dir: str = "/config",
) -> None:
    """
    Configure structlog for the service.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "text" for the console renderer, "json" for one JSON object per line
        log_file: Optional log file name, written under config_dir/logs
        config_dir: Base configuration directory
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    json_output = log_format.lower() == "json"

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [
            _add_service,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    # aiohttp and uvicorn log through the stdlib root logger
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_dir = pathlib.Path(config_dir) / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=log_dir / log_file,
                maxBytes=20 * 1024 * 1024,  # 20MB
                backupCount=3,
            )
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []
    for handler in handlers:
        handler.setLevel(level)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


@contextmanager
def request_context(**context: Any) -> Iterator[None]:
    """
    Bind provider/operation context to every log line emitted while handling
    one request, including lines from adapters and caches.
    """
    start = time.perf_counter()
    with structlog.contextvars.bound_contextvars(**context):
        try:
            yield
        finally:
            logger.debug(
                "Request handled", duration_ms=round((time.perf_counter() - start) * 1000, 1)
            )


def get_logger() -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.stdlib.get_logger()


logger = get_logger()
