"""Known auxiliary files: text encoders and VAEs, grouped by model family."""

from __future__ import annotations

from types import MappingProxyType

from core.models import ComponentConfig, ComponentType, ModelFamily

CLIP = ComponentType.CLIP
T5 = ComponentType.T5
VAE = ComponentType.VAE

SYSTEM_COMPONENTS: MappingProxyType[str, ComponentConfig] = MappingProxyType(
    {
        # CLIP text encoders
        "clip_l.safetensors": ComponentConfig(CLIP, ModelFamily.FLUX, 1),
        "clip_g.safetensors": ComponentConfig(CLIP, ModelFamily.SD3, 1),
        # T5 text encoders
        "t5xxl_fp16.safetensors": ComponentConfig(T5, ModelFamily.FLUX, 1),
        "t5-v1_1-xxl-encoder.safetensors": ComponentConfig(T5, ModelFamily.FLUX, 2),
        "t5xxl_fp8_e4m3fn.safetensors": ComponentConfig(T5, ModelFamily.FLUX, 3),
        "t5xxl_fp8_e4m3fn_scaled.safetensors": ComponentConfig(T5, ModelFamily.FLUX, 4),
        # VAEs
        "ae.safetensors": ComponentConfig(VAE, ModelFamily.FLUX, 1),
        "flux_vae.safetensors": ComponentConfig(VAE, ModelFamily.FLUX, 2),
        "sdxl_vae_fp16fix.safetensors": ComponentConfig(VAE, ModelFamily.SDXL, 1),
        "sdxl_vae.safetensors": ComponentConfig(VAE, ModelFamily.SDXL, 2),
        "vae-ft-mse-840000-ema-pruned.safetensors": ComponentConfig(VAE, ModelFamily.SD1, 1),
        "vae-ft-ema-560000-ema-pruned.safetensors": ComponentConfig(VAE, ModelFamily.SD1, 2),
    }
)


def _matches(
    config: ComponentConfig,
    *,
    type: ComponentType | str | None,
    model_family: ModelFamily | str | None,
    priority: int | None = None,
) -> bool:
    if type is not None and config.type != type:
        return False
    if model_family is not None and config.model_family != model_family:
        return False
    if priority is not None and config.priority != priority:
        return False
    return True


def get_component_config(
    filename: str,
    *,
    type: ComponentType | str | None = None,
    model_family: ModelFamily | str | None = None,
    priority: int | None = None,
) -> ComponentConfig | None:
    config = SYSTEM_COMPONENTS.get(filename)
    if config is None:
        return None
    if not _matches(config, type=type, model_family=model_family, priority=priority):
        return None
    return config


def get_all_component_configs(
    *,
    type: ComponentType | str | None = None,
    model_family: ModelFamily | str | None = None,
) -> list[ComponentConfig]:
    return [
        config
        for config in SYSTEM_COMPONENTS.values()
        if _matches(config, type=type, model_family=model_family)
    ]


def get_all_components_with_names(
    type: ComponentType | str,
    model_family: ModelFamily | str | None = None,
) -> list[tuple[str, ComponentConfig]]:
    """Matching components in table order; callers sort by priority."""
    return [
        (name, config)
        for name, config in SYSTEM_COMPONENTS.items()
        if _matches(config, type=type, model_family=model_family)
    ]
