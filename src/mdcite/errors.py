"""Structured errors for mdcite.

Errors carry a stable code so the CLI can emit machine-readable output with
--json-errors. Validation findings are never raised; they are recorded on the
citation itself. Only infrastructural failures become exceptions.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes for CLI and programmatic consumers."""

    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INVALID_LINE_RANGE = "INVALID_LINE_RANGE"
    MISSING_ARGUMENT = "MISSING_ARGUMENT"
    UNKNOWN_OPTION = "UNKNOWN_OPTION"
    UNKNOWN_COMMAND = "UNKNOWN_COMMAND"
    USAGE_ERROR = "USAGE_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class MdciteError(Exception):
    """Base error with a code, message and optional details."""

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def format_error_json(code: ErrorCode | str, message: str, details: dict | None = None) -> str:
    """Format an error as JSON for --json-errors output."""
    code_value = code.value if isinstance(code, ErrorCode) else code
    error: dict[str, dict[str, object]] = {"error": {"code": code_value, "message": message}}
    if details:
        error["error"]["details"] = details
    return json.dumps(error)
