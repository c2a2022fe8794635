"""
Error taxonomy for the ComfyUI provider.

Every failure that leaves the provider is a ``ComfyUIError`` carrying one
``ErrorKind``.  Raw aiohttp/JSON/server failures are turned into a kind by
``classify_error``: typed checks first, message substrings last.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

import aiohttp


class ErrorKind(str, Enum):
    MODEL_NOT_FOUND = "ModelNotFound"
    MISSING_COMPONENT = "MissingComponent"
    MISSING_ENCODER = "MissingEncoder"
    UNSUPPORTED_MODEL = "UnsupportedModel"
    INVALID_ARGS = "InvalidArgs"
    INVALID_AUTH_CONFIG = "InvalidAuthConfig"
    INVALID_API_KEY = "InvalidAPIKey"
    PERMISSION_DENIED = "PermissionDenied"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    EMPTY_RESULT = "EmptyResult"
    WORKFLOW_EXECUTION_FAILED = "WorkflowExecutionFailed"
    INVALID_WORKFLOW = "InvalidWorkflow"
    IMAGE_FETCH_FAILED = "ImageFetchFailed"
    IMAGE_TOO_LARGE = "ImageTooLarge"
    UPLOAD_FAILED = "UploadFailed"
    UNKNOWN = "UnknownError"


class ComfyUIError(Exception):
    """A classified provider failure."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    def with_details(self, **extra: Any) -> "ComfyUIError":
        """Add context without touching the kind or message."""
        for key, value in extra.items():
            self.details.setdefault(key, value)
        return self

    def __repr__(self) -> str:
        return f"ComfyUIError({self.kind.value!r}, {self.message!r})"


class ComfyUIExecutionError(RuntimeError):
    """The server accepted the request but reported a workflow failure."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


@dataclass
class ErrorInfo:
    message: str
    status: int | None = None
    name: str = ""
    code: str = ""


# Best-effort: these reflect observed server/client messages, not a contract.
NETWORK_MESSAGE_PATTERNS = (
    "econnrefused",
    "enotfound",
    "etimedout",
    "network error",
    "connection refused",
    "connection timeout",
    "cannot connect to host",
    "websocket",
    "fetch failed",
)
MODEL_MESSAGE_PATTERNS = (
    "model not found",
    "checkpoint not found",
    "ckpt_name",
    "safetensors",
)
WORKFLOW_MESSAGE_PATTERNS = (
    "node",
    "workflow",
    "execution",
    "prompt",
    "queue",
)
_STATUS_IN_MESSAGE = re.compile(r"\b(401|403|404)\b")


def clean_error_message(message: str) -> str:
    text = message.strip()
    if text.startswith("*"):
        text = text[1:]
    text = text.replace("\\n", "\n")
    text = re.sub(r"\n{2,}", "\n", text)
    return text.strip()


def extract_error_info(error: Any) -> ErrorInfo:
    """Normalize an exception, dict or string into an ``ErrorInfo``."""
    if isinstance(error, ErrorInfo):
        return error
    if isinstance(error, str):
        return ErrorInfo(message=clean_error_message(error))
    if isinstance(error, dict):
        raw_status = error.get("status") or error.get("statusCode")
        status = raw_status if isinstance(raw_status, int) else None
        message = error.get("message") or error.get("error") or json.dumps(error, default=str)
        return ErrorInfo(
            message=clean_error_message(str(message)),
            status=status,
            name=str(error.get("name") or ""),
            code=str(error.get("code") or ""),
        )
    if isinstance(error, BaseException):
        status = None
        message = str(error)
        if isinstance(error, aiohttp.ClientResponseError):
            status = error.status
            message = error.message or message
        code = ""
        errno = getattr(error, "errno", None)
        if errno is not None:
            code = str(errno)
        return ErrorInfo(
            message=clean_error_message(message or type(error).__name__),
            status=status,
            name=type(error).__name__,
            code=code,
        )
    return ErrorInfo(message=clean_error_message(str(error)))


def _kind_from_status(status: int | None) -> ErrorKind | None:
    if status is None:
        return None
    if status == 401:
        return ErrorKind.INVALID_API_KEY
    if status == 403:
        return ErrorKind.PERMISSION_DENIED
    if status == 404 or status >= 500:
        return ErrorKind.SERVICE_UNAVAILABLE
    return None


def _kind_from_type(error: Any) -> ErrorKind | None:
    if isinstance(error, ComfyUIExecutionError):
        return ErrorKind.WORKFLOW_EXECUTION_FAILED
    # ContentTypeError is a ClientResponseError: a malformed reply, not a status.
    if isinstance(error, (aiohttp.ContentTypeError, json.JSONDecodeError)):
        return ErrorKind.SERVICE_UNAVAILABLE
    if isinstance(
        error,
        (aiohttp.ClientConnectionError, asyncio.TimeoutError, TimeoutError, ConnectionError),
    ):
        return ErrorKind.SERVICE_UNAVAILABLE
    return None


def _kind_from_message(message: str) -> ErrorKind | None:
    lowered = message.lower()
    if any(pattern in lowered for pattern in NETWORK_MESSAGE_PATTERNS):
        return ErrorKind.SERVICE_UNAVAILABLE
    match = _STATUS_IN_MESSAGE.search(lowered)
    if match:
        return _kind_from_status(int(match.group(1)))
    if any(pattern in lowered for pattern in MODEL_MESSAGE_PATTERNS):
        return ErrorKind.MODEL_NOT_FOUND
    if any(pattern in lowered for pattern in WORKFLOW_MESSAGE_PATTERNS):
        return ErrorKind.WORKFLOW_EXECUTION_FAILED
    return None


def classify_error(error: Any) -> ErrorKind:
    if isinstance(error, ComfyUIError):
        return error.kind
    info = extract_error_info(error)
    if not isinstance(error, aiohttp.ContentTypeError):
        kind = _kind_from_status(info.status)
        if kind is not None:
            return kind
    kind = _kind_from_type(error)
    if kind is not None:
        return kind
    return _kind_from_message(info.message) or ErrorKind.UNKNOWN


def to_comfyui_error(error: Any, **details: Any) -> ComfyUIError:
    """Classify ``error`` once; an existing ``ComfyUIError`` only gains details."""
    if isinstance(error, ComfyUIError):
        return error.with_details(**details)
    info = extract_error_info(error)
    payload: dict[str, Any] = {}
    if info.status is not None:
        payload["status"] = info.status
    if info.name:
        payload["error_name"] = info.name
    if info.code:
        payload["code"] = info.code
    if isinstance(error, ComfyUIExecutionError):
        payload.update(error.details)
    payload.update(details)
    return ComfyUIError(classify_error(error), info.message, payload)
