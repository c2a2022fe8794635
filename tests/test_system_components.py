from __future__ import annotations

from core.models import ComponentType, ModelFamily
from core.system_components import (
    SYSTEM_COMPONENTS,
    get_all_component_configs,
    get_all_components_with_names,
    get_component_config,
)


def test_component_lookup_with_filters() -> None:
    config = get_component_config("clip_g.safetensors")

    assert config.type == ComponentType.CLIP
    assert config.model_family == ModelFamily.SD3
    assert get_component_config("clip_g.safetensors", type=ComponentType.T5) is None
    assert get_component_config("clip_l.safetensors", model_family="FLUX", priority=1)
    assert get_component_config("nope.safetensors") is None


def test_components_with_names_by_family() -> None:
    names = [name for name, _ in get_all_components_with_names(ComponentType.VAE, "SDXL")]

    assert names == ["sdxl_vae_fp16fix.safetensors", "sdxl_vae.safetensors"]


def test_t5_encoders_are_flux_family() -> None:
    items = get_all_components_with_names(ComponentType.T5)

    assert {config.model_family for _, config in items} == {ModelFamily.FLUX}
    assert min(items, key=lambda item: item[1].priority)[0] == "t5xxl_fp16.safetensors"


def test_all_configs_filtering() -> None:
    assert len(get_all_component_configs()) == len(SYSTEM_COMPONENTS)
    assert all(
        config.type == ComponentType.VAE
        for config in get_all_component_configs(type=ComponentType.VAE)
    )
    assert get_all_component_configs(type=ComponentType.T5, model_family=ModelFamily.SD1) == []
