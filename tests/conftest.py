"""Shared fixtures: a ComfyUI client whose network calls are AsyncMocks."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from comfyui_client import ComfyUIClient
from services.client_service import ComfyUIClientService
from services.model_resolver import ModelResolverService

BASE_URL = "http://comfy.test:8188"

DEFAULT_CHECKPOINTS = [
    "flux1-dev.safetensors",
    "flux1-schnell.safetensors",
    "flux1-kontext-dev.safetensors",
    "flux1-krea-dev.safetensors",
    "sd3.5_large.safetensors",
    "sd3.5_medium.safetensors",
    "sd3.5_medium_incl_clips_t5xxlfp8scaled.safetensors",
    "v1-5-pruned-emaonly.safetensors",
    "sd_xl_base_1.0.safetensors",
    "sd_xl_refiner_1.0.safetensors",
]
DEFAULT_TEXT_ENCODERS = ["clip_l.safetensors", "clip_g.safetensors", "t5xxl_fp16.safetensors"]
DEFAULT_VAES = [
    "ae.safetensors",
    "sdxl_vae_fp16fix.safetensors",
    "vae-ft-mse-840000-ema-pruned.safetensors",
]


def combo(options: list[str]) -> list[Any]:
    return ["COMBO", {"options": list(options)}]


def make_node_defs(
    checkpoints: list[str],
    text_encoders: list[str],
    vaes: list[str],
) -> dict[str, Any]:
    """A trimmed /object_info payload with the loader nodes the provider reads."""
    return {
        "CheckpointLoaderSimple": {"input": {"required": {"ckpt_name": [list(checkpoints)]}}},
        "UNETLoader": {"input": {"required": {"unet_name": combo(checkpoints)}}},
        "CLIPLoader": {"input": {"required": {"clip_name": combo(text_encoders)}}},
        "DualCLIPLoader": {
            "input": {
                "required": {
                    "clip_name1": combo(text_encoders),
                    "clip_name2": combo(text_encoders),
                }
            }
        },
        "TripleCLIPLoader": {
            "input": {
                "required": {
                    "clip_name1": combo(text_encoders),
                    "clip_name2": combo(text_encoders),
                    "clip_name3": combo(text_encoders),
                }
            }
        },
        "VAELoader": {"input": {"required": {"vae_name": [list(vaes)]}}},
        "KSampler": {
            "input": {
                "required": {
                    "sampler_name": [["euler", "dpmpp_2m"]],
                    "scheduler": [["normal", "karras", "simple", "sgm_uniform"]],
                }
            }
        },
    }


class FakeComfyUIClient(ComfyUIClient):
    def __init__(
        self,
        *,
        checkpoints: list[str] | None = None,
        text_encoders: list[str] | None = None,
        vaes: list[str] | None = None,
        history_entry: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(BASE_URL)
        checkpoints = DEFAULT_CHECKPOINTS if checkpoints is None else checkpoints
        text_encoders = DEFAULT_TEXT_ENCODERS if text_encoders is None else text_encoders
        vaes = DEFAULT_VAES if vaes is None else vaes

        self.get_object_info = AsyncMock(
            return_value=make_node_defs(checkpoints, text_encoders, vaes)
        )
        self.get_checkpoints = AsyncMock(return_value=list(checkpoints))
        self.get_loras = AsyncMock(return_value=["detail.safetensors"])
        self.get_sampler_info = AsyncMock(
            return_value={"sampler": ["euler"], "scheduler": ["normal"]}
        )
        self.upload_image = AsyncMock(
            return_value={"name": "upload.png", "subfolder": "", "type": "input"}
        )
        if history_entry is None:
            history_entry = {
                "status": {"completed": True, "status_str": "success"},
                "outputs": {},
            }
        self.run_workflow = AsyncMock(return_value=history_entry)
        self.close = AsyncMock()


def image_history(node_id: str, filename: str = "test.png") -> dict[str, Any]:
    return {
        "status": {"completed": True, "status_str": "success"},
        "outputs": {
            node_id: {
                "images": [{"filename": filename, "subfolder": "", "type": "output"}],
            }
        },
    }


@pytest.fixture
def make_client():
    def _make(**kwargs: Any) -> FakeComfyUIClient:
        return FakeComfyUIClient(**kwargs)

    return _make


@pytest.fixture
def make_client_service(make_client):
    def _make(**kwargs: Any) -> ComfyUIClientService:
        return ComfyUIClientService(client=make_client(**kwargs))

    return _make


@pytest.fixture
def client_service(make_client_service) -> ComfyUIClientService:
    return make_client_service()


@pytest.fixture
def resolver(client_service) -> ModelResolverService:
    return ModelResolverService(client_service)
