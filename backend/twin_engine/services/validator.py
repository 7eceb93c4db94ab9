"""
Response Validator.

Checks plugin answers against the request schema they were asked with,
using ``jsonschema`` Draft 7.
"""

import logging
from collections.abc import Iterable
from typing import Any

from jsonschema import Draft7Validator, FormatChecker
from jsonschema.exceptions import SchemaError

from twin_engine.exceptions import InternalDataError, SchemaViolationError

logger = logging.getLogger(__name__)


def _path_to_str(path: Iterable[Any]) -> str:
    parts = ["$"]
    for part in path:
        if isinstance(part, int):
            parts.append(f"[{part}]")
        else:
            parts.append(f".{part}")
    return "".join(parts)


class ResponseValidator:
    """Validates JSON payloads against Draft 7 schemas."""

    def __init__(self) -> None:
        self._format_checker = FormatChecker()

    def check_schema(self, schema: dict[str, Any]) -> None:
        """
        Make sure a generated request schema is itself valid Draft 7.

        Raises:
            InternalDataError: If the schema is malformed
        """
        try:
            Draft7Validator.check_schema(schema)
        except SchemaError as e:
            raise InternalDataError(f"Generated request schema is invalid: {e.message}") from e

    def validate(self, payload: Any, schema: dict[str, Any]) -> None:
        """
        Validate a payload.

        Args:
            payload: Decoded JSON payload
            schema: Draft 7 schema

        Raises:
            SchemaViolationError: Listing every issue found
        """
        validator = Draft7Validator(schema, format_checker=self._format_checker)
        errors = sorted(
            validator.iter_errors(payload),
            key=lambda err: (_path_to_str(err.absolute_path), err.message),
        )
        if errors:
            issues = [f"{_path_to_str(err.absolute_path)}: {err.message}" for err in errors]
            raise SchemaViolationError(issues=issues)
