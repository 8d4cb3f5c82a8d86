"""
Logging setup & error-tracking hook.

`setup_logging` runs once at import of `app.main`.  `setup_error_tracking`
runs on the first request (the pipeline's first stage) and tags every
record with the deployment environment so errors can be filtered per
environment by whatever collects stdout.
"""

import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(environment)s | %(message)s"


class EnvironmentFilter(logging.Filter):
    def __init__(self, environment: str) -> None:
        super().__init__()
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "environment"):
            record.environment = self.environment
        return True


def setup_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def setup_error_tracking(environment: str | None = None) -> None:
    """Attach the environment tag to every root handler.  Safe to call twice."""
    environment = environment or settings.ENVIRONMENT
    root = logging.getLogger()
    for handler in root.handlers:
        if any(isinstance(f, EnvironmentFilter) for f in handler.filters):
            continue
        handler.addFilter(EnvironmentFilter(environment))
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger(__name__).info("Error tracking initialised (environment=%s)", environment)
