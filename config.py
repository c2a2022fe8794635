import json
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from core.errors import ComfyUIError, ErrorKind

load_dotenv()

DEFAULT_COMFYUI_URL = "http://localhost:8188"


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default)


def _env_int(name: str, default: int) -> int:
    return int(_env(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(_env(name, str(default)))


def _env_json_dict(name: str) -> dict[str, str]:
    raw = _env(name, "").strip()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ComfyUIError(
            ErrorKind.INVALID_ARGS,
            f"{name} is not valid JSON: {exc.msg}",
            {"variable": name},
        ) from exc
    if not isinstance(data, dict):
        raise ComfyUIError(
            ErrorKind.INVALID_ARGS,
            f"{name} must be a JSON object",
            {"variable": name},
        )
    return {str(key): str(value) for key, value in data.items()}


def _strip_trailing_slash(url: str) -> str:
    return url.rstrip("/")


@dataclass
class ComfyUIOptions:
    """Connection settings for one ComfyUI server."""

    base_url: str = DEFAULT_COMFYUI_URL
    auth_type: str = "none"
    username: str = ""
    password: str = ""
    api_key: str = ""
    custom_headers: dict[str, str] = field(default_factory=dict)


@dataclass
class Config:
    comfyui_url: str = DEFAULT_COMFYUI_URL

    # Auth
    auth_type: str = "none"
    username: str = ""
    password: str = ""
    api_key: str = ""
    custom_headers: dict[str, str] = field(default_factory=dict)

    # Caching and timeouts (seconds)
    cache_ttl: float = 60.0
    connection_ttl: float = 300.0
    execution_timeout: float = 600.0

    # Input images for image-to-image
    max_image_size_mb: int = 30

    @classmethod
    def from_env(cls) -> "Config":
        url = _env("COMFYUI_URL", "").strip() or _env(
            "COMFYUI_DEFAULT_URL", DEFAULT_COMFYUI_URL
        )
        return cls(
            comfyui_url=_strip_trailing_slash(url),
            auth_type=_env("COMFYUI_AUTH_TYPE", "none").strip().lower() or "none",
            username=_env("COMFYUI_USERNAME", ""),
            password=_env("COMFYUI_PASSWORD", ""),
            api_key=_env("COMFYUI_API_KEY", "").strip(),
            custom_headers=_env_json_dict("COMFYUI_CUSTOM_HEADERS"),
            cache_ttl=_env_float("COMFYUI_CACHE_TTL", 60.0),
            connection_ttl=_env_float("COMFYUI_CONNECTION_TTL", 300.0),
            execution_timeout=_env_float("COMFYUI_EXECUTION_TIMEOUT", 600.0),
            max_image_size_mb=_env_int("COMFYUI_MAX_IMAGE_SIZE_MB", 30),
        )

    @property
    def max_image_size_bytes(self) -> int:
        return self.max_image_size_mb * 1024 * 1024

    def to_options(self) -> ComfyUIOptions:
        return ComfyUIOptions(
            base_url=self.comfyui_url,
            auth_type=self.auth_type,
            username=self.username,
            password=self.password,
            api_key=self.api_key,
            custom_headers=dict(self.custom_headers),
        )
