# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

"""Exception types and error codes shared by the storage and tree layers."""

from enum import Enum
from typing import Any, Dict, Optional


class Outcome(str, Enum):
    """Boundary-level result a failure maps to."""

    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    INTEGRITY = "integrity"
    ERROR = "error"


class ErrorCode(Enum):
    """Error codes with message templates.

    Each member is a ``(code, template, outcome)`` triple. Templates are filled
    from ``message_args`` with ``str.format``; missing keys are left as-is.
    """

    # Common
    COMMON_FIELD_INVALID = ("100001", "Invalid value for {field_name}: {error_message}", Outcome.BAD_REQUEST)
    COMMON_CONFIG_ERROR = ("100002", "Configuration error: {config_error}", Outcome.ERROR)

    # Tree
    NODE_NOT_FOUND = ("200001", "Node not found: {node_id}", Outcome.NOT_FOUND)
    NODE_INVALID_MOVE = ("200002", "{error_message}", Outcome.BAD_REQUEST)
    DATA_INTEGRITY_VIOLATION = ("200003", "Data integrity violation: {error_message}", Outcome.INTEGRITY)

    # Database
    DB_FAILED = ("300000", "Database operation failed ({operation}): {error_message}", Outcome.ERROR)
    DB_CONNECTION_FAILED = ("300001", "Database connection failed: {error_message}", Outcome.ERROR)
    DB_CONNECTION_TIMEOUT = ("300002", "Database connection timed out ({operation}): {error_message}", Outcome.ERROR)
    DB_TABLE_NOT_EXISTS = ("300005", "Table does not exist: {table_name}", Outcome.ERROR)
    DB_CONSTRAINT_VIOLATION = ("300006", "Constraint violation ({operation}): {error_message}", Outcome.ERROR)
    DB_EXECUTION_ERROR = ("300008", "Database execution error ({operation}): {error_message}", Outcome.ERROR)

    def __init__(self, code: str, template: str, outcome: Outcome):
        self.code = code
        self.template = template
        self.outcome = outcome


class _SafeArgs(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class ArborException(Exception):
    """Base exception carrying an ``ErrorCode``."""

    def __init__(
        self,
        code: ErrorCode,
        message: Optional[str] = None,
        message_args: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message_args = message_args or {}
        self.message = message or code.template.format_map(_SafeArgs(self.message_args))
        super().__init__(self.message)

    @property
    def outcome(self) -> Outcome:
        return self.code.outcome

    def __str__(self) -> str:
        return f"error_code={self.code.code}, error_message={self.message}"


class NodeNotFoundError(ArborException):
    def __init__(self, node_id: Any):
        super().__init__(ErrorCode.NODE_NOT_FOUND, message_args={"node_id": node_id})
        self.node_id = node_id


class InvalidMoveError(ArborException):
    def __init__(self, message: str):
        super().__init__(ErrorCode.NODE_INVALID_MOVE, message_args={"error_message": message})


class InvalidRequestError(ArborException):
    def __init__(self, field_name: str, message: str):
        super().__init__(
            ErrorCode.COMMON_FIELD_INVALID,
            message_args={"field_name": field_name, "error_message": message},
        )


class DataIntegrityError(ArborException):
    """The stored parent relation is no longer a forest."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.DATA_INTEGRITY_VIOLATION, message_args={"error_message": message})
