"""
Static table of checkpoint files the provider knows how to drive.

Lower ``priority`` wins within a variant.  Lookups never raise: a miss is
``None`` or an empty list.
"""

from __future__ import annotations

from types import MappingProxyType

from core.models import ModelConfig, ModelFamily

FLUX = ModelFamily.FLUX
SD1 = ModelFamily.SD1
SDXL = ModelFamily.SDXL
SD3 = ModelFamily.SD3

MODEL_VARIANTS = (
    "dev",
    "schnell",
    "kontext",
    "krea",
    "sd35",
    "sd35-inclclip",
    "sd3",
    "sd15-t2i",
    "sdxl-t2i",
    "sdxl-i2i",
    "custom-sd",
)

WEIGHT_DTYPES = ("default", "fp8_e4m3fn", "fp8_e4m3fn_fast", "fp8_e5m2")

MODEL_REGISTRY: MappingProxyType[str, ModelConfig] = MappingProxyType(
    {
        # FLUX.1 dev
        "flux1-dev.safetensors": ModelConfig(FLUX, "dev", 1, "default"),
        "flux1-dev-fp8.safetensors": ModelConfig(FLUX, "dev", 2, "fp8_e4m3fn"),
        "flux1-dev-fp8-e4m3fn.safetensors": ModelConfig(FLUX, "dev", 3, "fp8_e4m3fn"),
        "flux1-dev-fp8-e5m2.safetensors": ModelConfig(FLUX, "dev", 4, "fp8_e5m2"),
        "flux_dev.safetensors": ModelConfig(FLUX, "dev", 5, "default"),
        # FLUX.1 schnell
        "flux1-schnell.safetensors": ModelConfig(FLUX, "schnell", 1, "default"),
        "flux1-schnell-fp8.safetensors": ModelConfig(FLUX, "schnell", 2, "fp8_e4m3fn"),
        "flux1-schnell-fp8-e4m3fn.safetensors": ModelConfig(FLUX, "schnell", 3, "fp8_e4m3fn"),
        "flux_schnell.safetensors": ModelConfig(FLUX, "schnell", 4, "default"),
        # FLUX.1 Kontext
        "flux1-kontext-dev.safetensors": ModelConfig(FLUX, "kontext", 1, "default"),
        "flux1-dev-kontext_fp8_scaled.safetensors": ModelConfig(
            FLUX, "kontext", 2, "fp8_e4m3fn"
        ),
        # FLUX.1 Krea
        "flux1-krea-dev.safetensors": ModelConfig(FLUX, "krea", 1, "default"),
        "flux1-krea-dev_fp8_scaled.safetensors": ModelConfig(FLUX, "krea", 2, "fp8_e4m3fn"),
        # SD3.5 without bundled text encoders
        "sd3.5_large.safetensors": ModelConfig(SD3, "sd35", 1),
        "sd3.5_large_turbo.safetensors": ModelConfig(SD3, "sd35", 2),
        "sd3.5_medium.safetensors": ModelConfig(SD3, "sd35", 3),
        # SD3.x with bundled text encoders
        "sd3.5_medium_incl_clips_t5xxlfp8scaled.safetensors": ModelConfig(
            SD3, "sd35-inclclip", 1
        ),
        "sd3.5_large_fp8_scaled.safetensors": ModelConfig(SD3, "sd35-inclclip", 2),
        "sd3_medium_incl_clips_t5xxlfp8.safetensors": ModelConfig(SD3, "sd3", 1),
        "sd3_medium_incl_clips.safetensors": ModelConfig(SD3, "sd3", 2),
        # SD 1.5
        "v1-5-pruned-emaonly.safetensors": ModelConfig(SD1, "sd15-t2i", 1),
        "v1-5-pruned-emaonly-fp16.safetensors": ModelConfig(SD1, "sd15-t2i", 2),
        "v1-5-pruned.safetensors": ModelConfig(SD1, "sd15-t2i", 3),
        "sd15_base.safetensors": ModelConfig(SD1, "sd15-t2i", 4),
        # SDXL
        "sd_xl_base_1.0.safetensors": ModelConfig(SDXL, "sdxl-t2i", 1),
        "sd_xl_base_1.0_0.9vae.safetensors": ModelConfig(SDXL, "sdxl-t2i", 2),
        "sdxl_base.safetensors": ModelConfig(SDXL, "sdxl-t2i", 3),
        "sd_xl_turbo_1.0_fp16.safetensors": ModelConfig(SDXL, "sdxl-t2i", 4),
        "sdxl_turbo.safetensors": ModelConfig(SDXL, "sdxl-t2i", 5),
        "sd_xl_refiner_1.0.safetensors": ModelConfig(SDXL, "sdxl-i2i", 1),
        "sd_xl_refiner_1.0_0.9vae.safetensors": ModelConfig(SDXL, "sdxl-i2i", 2),
        # Fixed filename the user drops into the models folder
        "custom_sd_lobe.safetensors": ModelConfig(SD1, "custom-sd", 1),
    }
)

# Friendly model ids (as exposed to callers) to registry variants.
MODEL_ID_VARIANT_MAP: MappingProxyType[str, str] = MappingProxyType(
    {
        "flux-dev": "dev",
        "flux-schnell": "schnell",
        "flux-kontext-dev": "kontext",
        "flux-krea-dev": "krea",
        "stable-diffusion-35": "sd35",
        "stable-diffusion-35-inclclip": "sd35-inclclip",
        "stable-diffusion-15": "sd15-t2i",
        "stable-diffusion-xl": "sdxl-t2i",
        "stable-diffusion-refiner": "sdxl-i2i",
    }
)

_LOWERCASE_INDEX = {name.lower(): name for name in MODEL_REGISTRY}


def _matches(
    config: ModelConfig,
    *,
    model_family: ModelFamily | str | None,
    priority: int | None,
    recommended_dtype: str | None,
    variant: str | None,
) -> bool:
    if model_family is not None and config.model_family != model_family:
        return False
    if priority is not None and config.priority != priority:
        return False
    if recommended_dtype is not None and config.recommended_dtype != recommended_dtype:
        return False
    if variant is not None and config.variant != variant:
        return False
    return True


def get_model_config(
    filename: str,
    *,
    case_insensitive: bool = False,
    model_family: ModelFamily | str | None = None,
    priority: int | None = None,
    recommended_dtype: str | None = None,
    variant: str | None = None,
) -> ModelConfig | None:
    config = MODEL_REGISTRY.get(filename)
    if config is None and case_insensitive:
        canonical = _LOWERCASE_INDEX.get(filename.lower())
        config = MODEL_REGISTRY.get(canonical) if canonical else None
    if config is None:
        return None
    if not _matches(
        config,
        model_family=model_family,
        priority=priority,
        recommended_dtype=recommended_dtype,
        variant=variant,
    ):
        return None
    return config


def get_models_by_variant(variant: str) -> list[str]:
    """Filenames of ``variant``, best first; equal priorities sort by name."""
    names = [name for name, config in MODEL_REGISTRY.items() if config.variant == variant]
    return sorted(names, key=lambda name: (MODEL_REGISTRY[name].priority, name))


def get_all_model_names() -> list[str]:
    return list(MODEL_REGISTRY)


def resolve_model_config(filename: str) -> ModelConfig | None:
    """Registry entry for a resolved server filename (exact, then any case)."""
    return get_model_config(filename) or get_model_config(filename, case_insensitive=True)


def select_optimal_weight_dtype(filename: str) -> str:
    config = resolve_model_config(filename)
    if config is None or config.recommended_dtype not in WEIGHT_DTYPES:
        return "default"
    return config.recommended_dtype
