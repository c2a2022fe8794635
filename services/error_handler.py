"""Final mapping from provider errors to the application's runtime errors."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, NoReturn

from core.constants import PROVIDER_ID
from core.errors import ErrorKind, to_comfyui_error

logger = logging.getLogger(__name__)


class RuntimeErrorType(str, Enum):
    BIZ_ERROR = "ComfyUIBizError"
    SERVICE_UNAVAILABLE = "ComfyUIServiceUnavailable"
    WORKFLOW_ERROR = "ComfyUIWorkflowError"
    MODEL_ERROR = "ComfyUIModelError"
    INVALID_ARGS = "InvalidComfyUIArgs"
    INVALID_API_KEY = "InvalidProviderAPIKey"
    PERMISSION_DENIED = "PermissionDenied"
    MODEL_NOT_FOUND = "ModelNotFound"


ERROR_TYPE_BY_KIND: dict[ErrorKind, RuntimeErrorType] = {
    ErrorKind.MODEL_NOT_FOUND: RuntimeErrorType.MODEL_NOT_FOUND,
    ErrorKind.UNSUPPORTED_MODEL: RuntimeErrorType.MODEL_NOT_FOUND,
    ErrorKind.MISSING_COMPONENT: RuntimeErrorType.MODEL_ERROR,
    ErrorKind.MISSING_ENCODER: RuntimeErrorType.MODEL_ERROR,
    ErrorKind.INVALID_ARGS: RuntimeErrorType.INVALID_ARGS,
    ErrorKind.INVALID_AUTH_CONFIG: RuntimeErrorType.INVALID_API_KEY,
    ErrorKind.INVALID_API_KEY: RuntimeErrorType.INVALID_API_KEY,
    ErrorKind.PERMISSION_DENIED: RuntimeErrorType.PERMISSION_DENIED,
    ErrorKind.SERVICE_UNAVAILABLE: RuntimeErrorType.SERVICE_UNAVAILABLE,
    ErrorKind.EMPTY_RESULT: RuntimeErrorType.BIZ_ERROR,
    ErrorKind.WORKFLOW_EXECUTION_FAILED: RuntimeErrorType.WORKFLOW_ERROR,
    ErrorKind.INVALID_WORKFLOW: RuntimeErrorType.WORKFLOW_ERROR,
    ErrorKind.IMAGE_FETCH_FAILED: RuntimeErrorType.BIZ_ERROR,
    ErrorKind.IMAGE_TOO_LARGE: RuntimeErrorType.BIZ_ERROR,
    ErrorKind.UPLOAD_FAILED: RuntimeErrorType.BIZ_ERROR,
    ErrorKind.UNKNOWN: RuntimeErrorType.BIZ_ERROR,
}


class ImageGenerationError(Exception):
    """The caller-visible failure of ``create_image``."""

    def __init__(
        self,
        error_type: RuntimeErrorType,
        kind: ErrorKind,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.kind = kind
        self.message = message
        self.details: dict[str, Any] = dict(details or {})
        self.provider = PROVIDER_ID

    def to_dict(self) -> dict[str, Any]:
        return {
            "errorType": self.error_type.value,
            "provider": self.provider,
            "error": {"kind": self.kind.value, "message": self.message, "details": self.details},
        }


class ErrorHandlerService:
    def to_runtime_error(self, error: BaseException, **context: Any) -> ImageGenerationError:
        if isinstance(error, ImageGenerationError):
            return error
        comfy_error = to_comfyui_error(error, **context)
        error_type = ERROR_TYPE_BY_KIND.get(comfy_error.kind, RuntimeErrorType.BIZ_ERROR)
        return ImageGenerationError(
            error_type,
            comfy_error.kind,
            comfy_error.message,
            comfy_error.details,
        )

    def handle_error(self, error: BaseException, **context: Any) -> NoReturn:
        runtime_error = self.to_runtime_error(error, **context)
        if runtime_error is error:
            raise runtime_error
        logger.error(
            "ComfyUI image generation failed [%s/%s]: %s",
            runtime_error.error_type.value,
            runtime_error.kind.value,
            runtime_error.message,
        )
        raise runtime_error from error
