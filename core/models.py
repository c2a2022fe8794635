from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class ModelFamily(str, Enum):
    FLUX = "FLUX"
    SD1 = "SD1"
    SDXL = "SDXL"
    SD3 = "SD3"


class ComponentType(str, Enum):
    CLIP = "clip"
    T5 = "t5"
    VAE = "vae"


@dataclass(frozen=True)
class ModelConfig:
    model_family: ModelFamily
    variant: str
    priority: int
    recommended_dtype: str | None = None


@dataclass(frozen=True)
class ComponentConfig:
    type: ComponentType
    model_family: ModelFamily
    priority: int


@dataclass
class ResolvedModel:
    exists: bool
    actual_file_name: str | None = None


@dataclass
class WorkflowDetectionResult:
    architecture: str
    is_supported: bool
    variant: str | None = None


# Wire (camelCase) keys accepted in request payloads.
_PAYLOAD_ALIASES = {
    "negativePrompt": "negative_prompt",
    "samplerName": "sampler_name",
    "imageUrl": "image_url",
    "imageUrls": "image_urls",
    "customVAE": "custom_vae",
}


@dataclass
class GenerationParams:
    """Caller-supplied generation parameters; ``None`` means not given."""

    prompt: str = ""
    negative_prompt: str | None = None
    width: int | None = None
    height: int | None = None
    steps: int | None = None
    cfg: float | None = None
    seed: int | None = None
    sampler_name: str | None = None
    scheduler: str | None = None
    image_url: str | None = None
    image_urls: list[str] = field(default_factory=list)
    strength: float | None = None
    denoise: float | None = None
    shift: float | None = None
    custom_vae: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: dict[str, Any] | None) -> GenerationParams:
        known = {f.name for f in fields(cls)} - {"extra"}
        values: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = _PAYLOAD_ALIASES.get(key, key)
            if name in known:
                values[name] = value
            else:
                extra[key] = value
        if values.get("image_urls") is None:
            values.pop("image_urls", None)
        else:
            values["image_urls"] = list(values["image_urls"])
        if values.get("prompt") is None:
            values["prompt"] = ""
        return cls(**values, extra=extra)

    @property
    def input_image(self) -> str | None:
        """The image used for image-to-image, if any."""
        if self.image_url:
            return self.image_url
        if self.image_urls:
            return self.image_urls[0]
        return None

    def replace_input_image(self, name: str) -> None:
        if self.image_url:
            self.image_url = name
        if self.image_urls:
            self.image_urls[0] = name


@dataclass
class CreateImagePayload:
    model: str
    params: GenerationParams

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CreateImagePayload:
        return cls(
            model=str(data.get("model") or ""),
            params=GenerationParams.from_payload(data.get("params")),
        )


@dataclass
class CreateImageResponse:
    image_url: str
    width: int
    height: int

    def to_dict(self) -> dict[str, Any]:
        return {"imageUrl": self.image_url, "width": self.width, "height": self.height}
