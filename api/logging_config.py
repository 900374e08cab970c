"""
Request-scoped logging for the API.

The API logs into the same ``boxoffice`` hierarchy as the pipeline, so one
file shows a request's HTTP line next to the merge and enrichment lines it
caused. Each API line is prefixed with the request's short id, which is also
returned to the caller in ``X-Request-ID``.
"""

import logging
import os
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

from boxoffice_pipeline.utils import setup_logger

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestLogger(logging.LoggerAdapter):
    """Prefix messages with the current request id."""

    def process(self, msg, kwargs):
        return f"[{request_id_var.get() or '-'}] {msg}", kwargs


def generate_request_id() -> str:
    return uuid.uuid4().hex[:8]


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


logger = RequestLogger(
    setup_logger("api", Path(os.getenv("PROJECT_DIR", Path.cwd())) / "logs"),
    {},
)
