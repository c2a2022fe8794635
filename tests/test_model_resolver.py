from __future__ import annotations

import asyncio

import pytest

from core.errors import ComfyUIError, ErrorKind
from core.models import ComponentType, ModelFamily
from services.model_resolver import ModelResolverService, should_attach_vae, strip_provider_prefix


def test_strip_provider_prefix() -> None:
    assert strip_provider_prefix("comfyui/flux-dev") == "flux-dev"
    assert strip_provider_prefix("flux-dev") == "flux-dev"


def test_exact_live_filename_wins(resolver: ModelResolverService) -> None:
    name = asyncio.run(resolver.resolve_model_file_name("comfyui/sd3.5_medium.safetensors"))

    assert name == "sd3.5_medium.safetensors"


def test_friendly_id_picks_best_available_variant_file(make_client_service) -> None:
    service = make_client_service(
        checkpoints=["sd3.5_medium.safetensors", "sd3.5_large.safetensors"]
    )
    resolver = ModelResolverService(service)

    assert asyncio.run(resolver.resolve_model_file_name("stable-diffusion-35")) == (
        "sd3.5_large.safetensors"
    )


def test_variant_falls_back_to_lower_priority_file(make_client_service) -> None:
    service = make_client_service(checkpoints=["sd3.5_medium.safetensors"])
    resolver = ModelResolverService(service)

    assert asyncio.run(resolver.resolve_model_file_name("stable-diffusion-35")) == (
        "sd3.5_medium.safetensors"
    )


def test_registry_name_in_other_case_resolves_by_variant(make_client_service) -> None:
    service = make_client_service(checkpoints=["flux1-schnell-fp8.safetensors"])
    resolver = ModelResolverService(service)

    name = asyncio.run(resolver.resolve_model_file_name("FLUX1-SCHNELL.safetensors"))

    assert name == "flux1-schnell-fp8.safetensors"


def test_missing_variant_lists_expected_files(make_client_service) -> None:
    resolver = ModelResolverService(make_client_service(checkpoints=[]))

    with pytest.raises(ComfyUIError) as exc_info:
        asyncio.run(resolver.resolve_model_file_name("flux-dev"))

    assert exc_info.value.kind == ErrorKind.MODEL_NOT_FOUND
    assert exc_info.value.details["expected_files"][0] == "flux1-dev.safetensors"


def test_custom_sd_resolution(make_client_service) -> None:
    present = ModelResolverService(make_client_service(checkpoints=["custom_sd_lobe.safetensors"]))
    missing = ModelResolverService(make_client_service(checkpoints=[]))

    assert asyncio.run(present.resolve_model_file_name("stable-diffusion-custom")) == (
        "custom_sd_lobe.safetensors"
    )
    with pytest.raises(ComfyUIError) as exc_info:
        asyncio.run(missing.resolve_model_file_name("stable-diffusion-custom-refiner"))

    assert exc_info.value.kind == ErrorKind.MODEL_NOT_FOUND
    assert "custom_sd_lobe.safetensors" in exc_info.value.message


def test_resolution_is_memoized(make_client_service) -> None:
    service = make_client_service()
    resolver = ModelResolverService(service)

    async def run() -> None:
        await resolver.resolve_model_file_name("flux-dev")
        await resolver.resolve_model_file_name("comfyui/flux-dev")
        service.cache.invalidate()
        await resolver.resolve_model_file_name("flux-dev")

    asyncio.run(run())
    assert service.client.get_checkpoints.await_count == 1

    resolver.clear_caches()
    asyncio.run(resolver.resolve_model_file_name("flux-dev"))
    assert service.client.get_checkpoints.await_count == 2


def test_validate_model(resolver: ModelResolverService) -> None:
    found = asyncio.run(resolver.validate_model("flux-schnell"))
    missing = asyncio.run(resolver.validate_model("nonexistent-model"))

    assert found.exists
    assert found.actual_file_name == "flux1-schnell.safetensors"
    assert not missing.exists
    assert missing.actual_file_name is None


def test_validate_model_propagates_service_failures(make_client_service) -> None:
    service = make_client_service()
    service.client.get_checkpoints.side_effect = ConnectionRefusedError("refused")
    resolver = ModelResolverService(service)

    with pytest.raises(ComfyUIError) as exc_info:
        asyncio.run(resolver.validate_model("flux-dev"))

    assert exc_info.value.kind == ErrorKind.SERVICE_UNAVAILABLE


def test_optimal_component_by_priority(make_client_service) -> None:
    service = make_client_service(
        text_encoders=[
            "clip_l.safetensors",
            "t5xxl_fp8_e4m3fn.safetensors",
            "t5xxl_fp16.safetensors",
        ]
    )
    resolver = ModelResolverService(service)

    assert asyncio.run(resolver.get_optimal_component("t5", ModelFamily.FLUX)) == (
        "t5xxl_fp16.safetensors"
    )
    assert asyncio.run(resolver.get_optimal_component(ComponentType.CLIP, "FLUX")) == (
        "clip_l.safetensors"
    )


def test_component_errors(make_client_service) -> None:
    resolver = ModelResolverService(make_client_service(vaes=[]))

    with pytest.raises(ComfyUIError) as unknown:
        asyncio.run(resolver.get_optimal_component("lora", ModelFamily.FLUX))
    with pytest.raises(ComfyUIError) as missing:
        asyncio.run(resolver.get_optimal_component(ComponentType.VAE, ModelFamily.FLUX))

    assert unknown.value.kind == ErrorKind.INVALID_ARGS
    assert unknown.value.message == "Unknown component type: lora"
    assert missing.value.kind == ErrorKind.MISSING_COMPONENT
    assert missing.value.message == "No vae component available for FLUX"


def test_select_vae_policy(resolver: ModelResolverService) -> None:
    async def run() -> list[str | None]:
        return [
            await resolver.select_vae("sd_xl_base_1.0.safetensors"),
            await resolver.select_vae("v1-5-pruned-emaonly.safetensors"),
            await resolver.select_vae("sd3.5_large.safetensors"),
            await resolver.select_vae("flux1-dev.safetensors"),
        ]

    assert asyncio.run(run()) == [
        "sdxl_vae_fp16fix.safetensors",
        "vae-ft-mse-840000-ema-pruned.safetensors",
        None,
        None,
    ]


def test_select_vae_without_live_vae_uses_builtin(make_client_service) -> None:
    resolver = ModelResolverService(make_client_service(vaes=[]))

    assert asyncio.run(resolver.select_vae("sd_xl_base_1.0.safetensors")) is None


def test_select_vae_for_custom_sd(make_client_service) -> None:
    with_vae = ModelResolverService(make_client_service(vaes=["custom_sd_vae_lobe.safetensors"]))
    without_vae = ModelResolverService(make_client_service(vaes=[]))
    name = "custom_sd_lobe.safetensors"

    assert asyncio.run(with_vae.select_vae(name, is_custom_sd=True)) == (
        "custom_sd_vae_lobe.safetensors"
    )
    assert asyncio.run(without_vae.select_vae(name, is_custom_sd=True)) is None
    assert asyncio.run(
        without_vae.select_vae(name, is_custom_sd=True, custom_vae="mine.safetensors")
    ) == "mine.safetensors"


def test_should_attach_vae() -> None:
    assert should_attach_vae(ModelFamily.SD1)
    assert should_attach_vae("SDXL")
    assert not should_attach_vae(ModelFamily.SD3)
    assert not should_attach_vae(ModelFamily.FLUX)
    assert not should_attach_vae(None)
