from __future__ import annotations

import aiohttp

from config import ComfyUIOptions
from core.errors import ComfyUIError, ErrorKind

AUTH_TYPES = ("none", "basic", "bearer", "custom")


class AuthManager:
    """Validates auth options up front and builds request headers."""

    def __init__(self, options: ComfyUIOptions) -> None:
        self.options = options
        self.auth_type = (options.auth_type or "none").lower()
        self._validate()

    def _validate(self) -> None:
        if self.auth_type not in AUTH_TYPES:
            raise ComfyUIError(
                ErrorKind.INVALID_ARGS,
                f"Unsupported auth type: {self.auth_type}",
                {"auth_type": self.auth_type, "supported": list(AUTH_TYPES)},
            )
        if self.auth_type == "basic" and (not self.options.username or not self.options.password):
            raise ComfyUIError(
                ErrorKind.INVALID_ARGS,
                "Basic auth requires both username and password",
                {"auth_type": "basic"},
            )
        if self.auth_type == "bearer" and not self.options.api_key:
            raise ComfyUIError(
                ErrorKind.INVALID_AUTH_CONFIG,
                "Bearer auth requires an API key",
                {"auth_type": "bearer"},
            )
        if self.auth_type == "custom" and not self.options.custom_headers:
            raise ComfyUIError(
                ErrorKind.INVALID_ARGS,
                "Custom auth requires at least one header",
                {"auth_type": "custom"},
            )

    def get_auth_headers(self) -> dict[str, str] | None:
        if self.auth_type == "basic":
            credentials = aiohttp.BasicAuth(self.options.username, self.options.password)
            return {"Authorization": credentials.encode()}
        if self.auth_type == "bearer":
            return {"Authorization": f"Bearer {self.options.api_key}"}
        if self.auth_type == "custom":
            return dict(self.options.custom_headers)
        return None
