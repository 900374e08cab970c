"""
Typed errors raised by the identity correction pipeline.

Errors raised before or inside the merge transaction leave no observable
side effect. Errors raised after the merge committed (ExternalFetchError,
PersistenceError) leave a correctly re-keyed movie whose metadata can be
repaired by re-running enrichment.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_CONSTRAINT_PATTERNS = (
    re.compile(r"CONSTRAINT `([^`]+)`"),
    re.compile(r"for key '([^']+)'"),
)


@dataclass
class DatabaseErrorDetails:
    """Driver-level diagnostics pulled out of a SQLAlchemy DBAPIError."""

    message: str
    code: Optional[int] = None
    constraint: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "DatabaseErrorDetails":
        orig = getattr(exc, "orig", None) or exc
        args = getattr(orig, "args", ())

        code = None
        message = str(orig)
        # PyMySQL errors carry (errno, message)
        if len(args) >= 2 and isinstance(args[0], int):
            code, message = args[0], str(args[1])

        constraint = None
        for pattern in _CONSTRAINT_PATTERNS:
            match = pattern.search(message)
            if match:
                constraint = match.group(1)
                break

        return cls(message=message, code=code, constraint=constraint)


class CorrectionError(Exception):
    """Base error for the correction pipeline."""

    status_code = 500
    public_error = "Failed to correct movie id"

    def __init__(self, message: str):
        self.message = message
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self, function: str = "correct_movie_id") -> Dict[str, Any]:
        """Structured body for operator triage."""
        return {
            "error": self.public_error,
            "kind": self.kind,
            "details": self.message,
            "function": function,
            "timestamp": self.timestamp,
        }


class InvalidArgumentError(CorrectionError):
    """Malformed or implausible ids. Nothing was mutated."""

    status_code = 400

    def __init__(
        self,
        message: str,
        hint: Optional[str] = None,
        got: Optional[Dict[str, Any]] = None,
    ):
        self.hint = hint
        self.got = got
        super().__init__(message)

    def to_dict(self, function: str = "correct_movie_id") -> Dict[str, Any]:
        content: Dict[str, Any] = {"error": self.message}
        if self.hint:
            content["hint"] = self.hint
        if self.got is not None:
            content["got"] = self.got
        return content


class PlaceholderNotFoundError(CorrectionError):
    """The placeholder movie does not exist (or was already merged)."""

    status_code = 404

    def __init__(self, temp_id: int):
        self.temp_id = temp_id
        super().__init__(f"Temp movie {temp_id} not found")

    def to_dict(self, function: str = "correct_movie_id") -> Dict[str, Any]:
        return {"error": self.message}


class _DatabaseFailure(CorrectionError):
    """Shared shape for errors wrapping a database driver failure."""

    def __init__(self, message: str, db_details: Optional[DatabaseErrorDetails] = None):
        self.db_details = db_details
        super().__init__(message)

    @classmethod
    def from_db_error(cls, exc: BaseException, context: str):
        details = DatabaseErrorDetails.from_exception(exc)
        return cls(f"{context}: {details.message}", db_details=details)

    def to_dict(self, function: str = "correct_movie_id") -> Dict[str, Any]:
        content = super().to_dict(function)
        if self.db_details:
            if self.db_details.constraint:
                content["constraint"] = self.db_details.constraint
            if self.db_details.code is not None:
                content["code"] = self.db_details.code
        return content


class TransactionError(_DatabaseFailure):
    """Failure inside the merge transaction. Fully rolled back."""


class PersistenceError(_DatabaseFailure):
    """Upsert or backfill failure after the merge committed."""


class ExternalFetchError(CorrectionError):
    """The metadata provider failed: non-success status, unreadable body or unreachable host."""

    def __init__(self, url: str, status_code: Optional[int] = None, body: str = ""):
        self.url = url
        self.http_status = status_code
        self.body = body
        if status_code is None:
            message = f"Request to {url} failed: {body}"
        else:
            message = f"{status_code} from {url}: {body}"
        super().__init__(message)

    def to_dict(self, function: str = "correct_movie_id") -> Dict[str, Any]:
        content = super().to_dict(function)
        if self.http_status is not None:
            content["code"] = self.http_status
        return content
