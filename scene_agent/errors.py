from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError

DEFAULT_INTERNAL_MESSAGE = "Internal server error"


class MessageFormatError(ValueError):
    """A message could not be coerced to the canonical shape."""


class ModelCallError(RuntimeError):
    """The chat-completion call failed after every repair tier."""

    def __init__(self, message: str, *, original: BaseException | None = None, attempts: int = 0) -> None:
        super().__init__(message)
        self.original = original
        self.attempts = attempts


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


class ToolTimeoutError(ToolExecutionError):
    """A remote tool result did not arrive before its deadline."""

    def __init__(self, request_id: str, timeout_seconds: float | None = None) -> None:
        if timeout_seconds is None:
            message = f"No result received for request {request_id}"
        else:
            message = f"No result received for request {request_id} within {timeout_seconds:g}s"
        super().__init__(message)
        self.request_id = request_id
        self.timeout_seconds = timeout_seconds


class CodeGuardError(ToolExecutionError):
    """Generated code contains a construct the scene evaluator refuses to run."""


class IterationLimitExceeded(Exception):
    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Stopped after {max_iterations} tool steps without a final answer.")
        self.max_iterations = max_iterations


@dataclass(slots=True)
class SceneAgentApiError(Exception):
    code: str
    message: str
    retryable: bool
    status_code: int
    details: dict[str, Any] | None = None
    cause: str | None = None


def build_error(
    *,
    code: str,
    message: str,
    trace_id: str,
    retryable: bool,
    details: dict[str, Any] | None = None,
    cause: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "code": code,
        "message": message,
        "trace_id": trace_id,
        "retryable": retryable,
        "ts": datetime.now(tz=timezone.utc).isoformat(),
    }
    if details:
        payload["details"] = details
    if cause:
        payload["cause"] = cause
    return payload


def error_response(
    *,
    code: str,
    message: str,
    trace_id: str,
    retryable: bool,
    details: dict[str, Any] | None = None,
    cause: str | None = None,
) -> dict[str, Any]:
    return {
        "error": build_error(
            code=code,
            message=message,
            trace_id=trace_id,
            retryable=retryable,
            details=details,
            cause=cause,
        )
    }


def error_from_exception(exc: Exception, trace_id: str) -> tuple[int, dict[str, Any]]:
    if isinstance(exc, SceneAgentApiError):
        return (
            exc.status_code,
            error_response(
                code=exc.code,
                message=exc.message,
                trace_id=trace_id,
                retryable=exc.retryable,
                details=exc.details,
                cause=exc.cause,
            ),
        )

    if isinstance(exc, RequestValidationError):
        return (
            422,
            error_response(
                code="E_SCHEMA_INVALID",
                message="Request validation failed.",
                trace_id=trace_id,
                retryable=False,
                details={"errors": exc.errors()},
                cause="request_validation_error",
            ),
        )

    if isinstance(exc, HTTPException):
        retryable = exc.status_code >= 500
        return (
            exc.status_code,
            error_response(
                code="E_INTERNAL" if retryable else "E_SCHEMA_INVALID",
                message=str(exc.detail),
                trace_id=trace_id,
                retryable=retryable,
                cause="http_exception",
            ),
        )

    if isinstance(exc, (KeyError, ValueError, TypeError)):
        return (
            400,
            error_response(
                code="E_SCHEMA_INVALID",
                message="Invalid request or payload shape.",
                trace_id=trace_id,
                retryable=False,
                cause=exc.__class__.__name__,
            ),
        )

    return (
        500,
        error_response(
            code="E_INTERNAL",
            message=DEFAULT_INTERNAL_MESSAGE,
            trace_id=trace_id,
            retryable=False,
            cause=exc.__class__.__name__,
        ),
    )


def user_safe_message(exc: BaseException) -> str:
    """Plain-language text shown to the user when a turn fails."""
    if isinstance(exc, ModelCallError):
        return "Sorry, I couldn't get a response from the language model. Please try again in a moment."
    if isinstance(exc, IterationLimitExceeded):
        return f"I stopped after {exc.max_iterations} tool steps without reaching a final answer."
    if isinstance(exc, ToolTimeoutError):
        return "The 3D view did not respond in time. Please check that the scene page is open."
    return "Sorry, something went wrong while handling your request."
