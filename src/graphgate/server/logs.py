"""Logging setup for the gateway process."""

from __future__ import annotations

import logging
from typing import Iterable

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class HealthcheckLogFilter(logging.Filter):
    """Filter out noisy healthcheck and metrics scrape logs."""

    def __init__(self, paths: Iterable[str] = ("/health", "/metrics")):
        super().__init__()
        self.filtered_paths = tuple(paths)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        for path in self.filtered_paths:
            if f'"{path}' in message or f" {path} " in message:
                return False
        return True


def configure_logging(level: str = "INFO", *, filtered_paths: Iterable[str] = ("/health", "/metrics")) -> None:
    """Set the root log format and quiet uvicorn access logs for probe endpoints."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger().setLevel(level.upper())

    uvicorn_access = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, HealthcheckLogFilter) for f in uvicorn_access.filters):
        uvicorn_access.addFilter(HealthcheckLogFilter(filtered_paths))
