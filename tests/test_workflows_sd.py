from __future__ import annotations

import asyncio

import pytest

from core.constants import DEFAULT_NEGATIVE_PROMPT, SD_FILENAME_PREFIXES
from core.errors import ComfyUIError, ErrorKind
from core.models import GenerationParams
from services.model_resolver import ModelResolverService
from workflows.common import WorkflowContext
from workflows.sd35 import build_sd35_workflow
from workflows.simple_sd import build_simple_sd_workflow


def _context(
    resolver: ModelResolverService,
    variant: str | None,
    prefix: str = "SD35",
) -> WorkflowContext:
    return WorkflowContext(
        model_resolver=resolver,
        variant=variant,
        filename_prefix=SD_FILENAME_PREFIXES[prefix],
    )


def _sd35(resolver: ModelResolverService, params: GenerationParams | None = None):
    return asyncio.run(
        build_sd35_workflow(
            "sd3.5_large.safetensors",
            params or GenerationParams(prompt="a castle"),
            _context(resolver, "sd35"),
        )
    )


def test_sd35_triple_encoder(resolver: ModelResolverService) -> None:
    api = _sd35(resolver).to_api()

    assert api["2"]["class_type"] == "TripleCLIPLoader"
    assert api["2"]["inputs"] == {
        "clip_name1": "clip_l.safetensors",
        "clip_name2": "clip_g.safetensors",
        "clip_name3": "t5xxl_fp16.safetensors",
    }
    assert api["3"]["inputs"]["clip"] == ["2", 0]
    assert api["4"]["inputs"]["text"] == DEFAULT_NEGATIVE_PROMPT
    assert api["12"]["inputs"] == {"model": ["1", 0], "shift": 3.0}
    sampler = api["6"]["inputs"]
    assert sampler["model"] == ["12", 0]
    assert (sampler["steps"], sampler["cfg"]) == (28, 4.5)
    assert (sampler["sampler_name"], sampler["scheduler"]) == ("euler", "sgm_uniform")
    assert api["7"]["inputs"]["vae"] == ["1", 2]
    assert api["5"]["class_type"] == "EmptySD3LatentImage"


def test_sd35_dual_clip_without_t5(make_client_service) -> None:
    resolver = ModelResolverService(
        make_client_service(text_encoders=["clip_l.safetensors", "clip_g.safetensors"])
    )

    api = _sd35(resolver).to_api()

    assert api["2"]["class_type"] == "DualCLIPLoader"
    assert api["2"]["inputs"]["type"] == "sd3"


def test_sd35_t5_only(make_client_service) -> None:
    resolver = ModelResolverService(make_client_service(text_encoders=["t5xxl_fp16.safetensors"]))

    api = _sd35(resolver).to_api()

    assert api["2"]["class_type"] == "CLIPLoader"
    assert api["2"]["inputs"] == {"clip_name": "t5xxl_fp16.safetensors", "type": "sd3"}


def test_sd35_without_encoders(make_client_service) -> None:
    resolver = ModelResolverService(make_client_service(text_encoders=[]))

    with pytest.raises(ComfyUIError) as exc_info:
        _sd35(resolver)

    assert exc_info.value.kind == ErrorKind.MISSING_ENCODER
    assert exc_info.value.details == {"model": "sd3.5_large.safetensors"}


def test_sd35_overrides(resolver: ModelResolverService) -> None:
    params = GenerationParams(
        prompt="a castle",
        negative_prompt="fog",
        steps=40,
        cfg=5.5,
        seed=123,
        shift=2.0,
        width=768,
    )

    graph = _sd35(resolver, params)

    assert graph.get_input("negative_prompt") == "fog"
    assert graph.get_input("steps") == 40
    assert graph.get_input("cfg") == 5.5
    assert graph.get_input("seed") == 123
    assert graph.get_input("shift") == 2.0
    assert graph.get_input("width") == 768
    assert graph.get_input("height") == 1024


def test_simple_sd_bundled_sd3_uses_checkpoint_vae(resolver: ModelResolverService) -> None:
    graph = asyncio.run(
        build_simple_sd_workflow(
            "sd3.5_medium_incl_clips_t5xxlfp8scaled.safetensors",
            GenerationParams(prompt="a castle"),
            _context(resolver, "sd35-inclclip"),
        )
    )
    api = graph.to_api()

    assert "vae_loader" not in api
    assert api["6"]["inputs"]["vae"] == ["1", 2]
    assert api["2"]["inputs"]["clip"] == ["1", 1]
    assert api["5"]["inputs"]["scheduler"] == "sgm_uniform"
    assert api["4"]["class_type"] == "EmptyLatentImage"


def test_simple_sd_sdxl_attaches_vae(resolver: ModelResolverService) -> None:
    graph = asyncio.run(
        build_simple_sd_workflow(
            "sd_xl_base_1.0.safetensors",
            GenerationParams(prompt="a castle"),
            _context(resolver, "sdxl-t2i", "SDXL"),
        )
    )
    api = graph.to_api()

    assert api["vae_loader"]["inputs"]["vae_name"] == "sdxl_vae_fp16fix.safetensors"
    assert api["6"]["inputs"]["vae"] == ["vae_loader", 0]
    sampler = api["5"]["inputs"]
    assert (sampler["steps"], sampler["cfg"]) == (20, 7.0)
    assert (sampler["sampler_name"], sampler["scheduler"]) == ("euler", "normal")
    assert sampler["denoise"] == 1.0
    assert api["7"]["inputs"]["filename_prefix"] == SD_FILENAME_PREFIXES["SDXL"]


def test_simple_sd_image_to_image(resolver: ModelResolverService) -> None:
    params = GenerationParams(prompt="a castle", image_url="upload.png", strength=0.4)

    graph = asyncio.run(
        build_simple_sd_workflow(
            "v1-5-pruned-emaonly.safetensors", params, _context(resolver, "sd15-t2i", "SD15")
        )
    )
    api = graph.to_api()

    assert api["img_encode"]["inputs"]["vae"] == ["vae_loader", 0]
    assert api["5"]["inputs"]["latent_image"] == ["img_encode", 0]
    assert api["5"]["inputs"]["denoise"] == 0.4
    assert "4" not in api
    assert "width" not in graph.parameter_names


def test_simple_sd_custom_model_vae(make_client_service) -> None:
    resolver = ModelResolverService(
        make_client_service(
            checkpoints=["custom_sd_lobe.safetensors"],
            vaes=["custom_sd_vae_lobe.safetensors"],
        )
    )

    graph = asyncio.run(
        build_simple_sd_workflow(
            "custom_sd_lobe.safetensors",
            GenerationParams(prompt="a castle"),
            _context(resolver, "custom-sd", "CUSTOM"),
        )
    )

    assert graph.nodes["vae_loader"].inputs["vae_name"] == "custom_sd_vae_lobe.safetensors"


def test_simple_sd_custom_model_without_vae(make_client_service) -> None:
    resolver = ModelResolverService(make_client_service(vaes=[]))

    graph = asyncio.run(
        build_simple_sd_workflow(
            "custom_sd_lobe.safetensors",
            GenerationParams(prompt="a castle"),
            _context(resolver, "custom-sd", "CUSTOM"),
        )
    )

    assert "vae_loader" not in graph.nodes
    assert graph.nodes["6"].inputs["vae"] == ("1", 2)
