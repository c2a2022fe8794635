from __future__ import annotations

import asyncio
from io import BytesIO
from typing import Any
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from app_context import AppContext
from comfyui_provider import ComfyUIProvider
from config import Config
from core.errors import ErrorKind
from services.client_service import ComfyUIClientService
from services.error_handler import ErrorHandlerService, ImageGenerationError, RuntimeErrorType
from services.image_service import ImageService
from services.model_resolver import ModelResolverService
from services.workflow_builder import WorkflowBuilderService

VIEW_URL = "http://comfy.test:8188/view?filename=test.png&subfolder=&type=output"


def _history(node_id: str, **image: Any) -> dict[str, Any]:
    info = {"filename": "test.png", "subfolder": "", "type": "output", **image}
    return {"status": {"completed": True}, "outputs": {node_id: {"images": [info]}}}


def _image_service(client_service: ComfyUIClientService, **kwargs: Any) -> ImageService:
    resolver = ModelResolverService(client_service)
    return ImageService(client_service, resolver, WorkflowBuilderService(resolver), **kwargs)


def _jpeg_bytes(width: int = 64, height: int = 48) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buffer, format="JPEG")
    return buffer.getvalue()


def _create(service: ImageService, payload: dict[str, Any]) -> Any:
    return asyncio.run(service.create_image(payload))


def test_flux_schnell_end_to_end(make_client_service) -> None:
    client_service = make_client_service(history_entry=_history("8"))
    service = _image_service(client_service)

    response = _create(
        service,
        {"model": "comfyui/flux-schnell", "params": {"prompt": "a red apple", "seed": 0}},
    )

    assert response.to_dict() == {"imageUrl": VIEW_URL, "width": 1024, "height": 1024}
    workflow = client_service.client.run_workflow.await_args.args[0]
    assert workflow["2"]["inputs"]["unet_name"] == "flux1-schnell.safetensors"
    assert workflow["6"]["inputs"]["seed"] == 0
    assert client_service.client.run_workflow.await_args.kwargs["progress_cb"] is not None


def test_reported_dimensions_win(make_client_service) -> None:
    client_service = make_client_service(history_entry=_history("7", width=640, height=480))
    service = _image_service(client_service)

    response = _create(
        service,
        {"model": "stable-diffusion-xl", "params": {"prompt": "x", "width": 512, "height": 512}},
    )

    assert (response.width, response.height) == (640, 480)


def test_requested_dimensions_when_not_reported(make_client_service) -> None:
    client_service = make_client_service(history_entry=_history("7"))
    service = _image_service(client_service)

    response = _create(
        service,
        {"model": "stable-diffusion-15", "params": {"prompt": "x", "width": 512, "height": 768}},
    )

    assert (response.width, response.height) == (512, 768)


def test_empty_result(make_client_service) -> None:
    service = _image_service(make_client_service())

    with pytest.raises(ImageGenerationError) as exc_info:
        _create(service, {"model": "flux-schnell", "params": {"prompt": "x"}})

    assert exc_info.value.kind == ErrorKind.EMPTY_RESULT
    assert exc_info.value.error_type == RuntimeErrorType.BIZ_ERROR
    assert exc_info.value.to_dict()["provider"] == "comfyui"


def test_unknown_model(make_client_service) -> None:
    client_service = make_client_service()
    service = _image_service(client_service)

    with pytest.raises(ImageGenerationError) as exc_info:
        _create(service, {"model": "nonexistent-model", "params": {"prompt": "x"}})

    assert exc_info.value.error_type == RuntimeErrorType.MODEL_NOT_FOUND
    assert exc_info.value.details["model_id"] == "nonexistent-model"
    client_service.client.run_workflow.assert_not_awaited()


def test_missing_encoders_surface_as_model_error(make_client_service) -> None:
    service = _image_service(make_client_service(text_encoders=[]))

    with pytest.raises(ImageGenerationError) as exc_info:
        _create(service, {"model": "stable-diffusion-35", "params": {"prompt": "x"}})

    assert exc_info.value.kind == ErrorKind.MISSING_ENCODER
    assert exc_info.value.error_type == RuntimeErrorType.MODEL_ERROR


def test_unreachable_server(make_client) -> None:
    client = make_client()
    client.get_object_info.side_effect = ConnectionRefusedError("connect ECONNREFUSED")
    service = _image_service(ComfyUIClientService(client=client))

    with pytest.raises(ImageGenerationError) as exc_info:
        _create(service, {"model": "flux-dev", "params": {"prompt": "x"}})

    assert exc_info.value.error_type == RuntimeErrorType.SERVICE_UNAVAILABLE


def test_image_to_image_uploads_normalized_png(make_client_service) -> None:
    client_service = make_client_service(history_entry=_history("7"))
    service = _image_service(client_service)
    service._fetch_image_bytes = AsyncMock(return_value=_jpeg_bytes())

    _create(
        service,
        {
            "model": "stable-diffusion-15",
            "params": {"prompt": "x", "imageUrl": "https://example.com/cat.jpg"},
        },
    )

    data, filename = client_service.client.upload_image.await_args.args
    assert data.startswith(b"\x89PNG")
    assert filename.startswith("LobeChat_img2img_")
    assert filename.endswith(".png")
    workflow = client_service.client.run_workflow.await_args.args[0]
    assert workflow["img_load"]["inputs"]["image"] == "upload.png"
    assert workflow["5"]["inputs"]["denoise"] == 0.75


def test_server_side_image_name_is_not_uploaded(make_client_service) -> None:
    client_service = make_client_service(history_entry=_history("12"))
    service = _image_service(client_service)

    _create(
        service,
        {"model": "flux-kontext-dev", "params": {"prompt": "x", "imageUrls": ["cat.png"]}},
    )

    client_service.client.upload_image.assert_not_awaited()
    workflow = client_service.client.run_workflow.await_args.args[0]
    assert workflow["img_load"]["inputs"]["image"] == "cat.png"


@pytest.mark.parametrize(
    ("body", "kind"),
    [
        (b"", ErrorKind.IMAGE_FETCH_FAILED),
        (b"definitely not an image", ErrorKind.IMAGE_FETCH_FAILED),
        (b"x" * 2048, ErrorKind.IMAGE_TOO_LARGE),
    ],
)
def test_bad_input_images(make_client_service, body: bytes, kind: ErrorKind) -> None:
    client_service = make_client_service()
    service = _image_service(client_service, max_image_bytes=1024)
    service._fetch_image_bytes = AsyncMock(return_value=body)

    with pytest.raises(ImageGenerationError) as exc_info:
        _create(
            service,
            {
                "model": "flux-kontext-dev",
                "params": {"prompt": "x", "imageUrl": "https://example.com/in.png"},
            },
        )

    assert exc_info.value.kind == kind
    assert exc_info.value.error_type == RuntimeErrorType.BIZ_ERROR
    client_service.client.upload_image.assert_not_awaited()


def test_cancellation_propagates(make_client_service) -> None:
    client_service = make_client_service()
    client_service.client.run_workflow.side_effect = asyncio.CancelledError()
    service = _image_service(client_service)

    async def run() -> str:
        try:
            await service.create_image({"model": "flux-dev", "params": {"prompt": "x"}})
        except asyncio.CancelledError:
            return "cancelled"
        return "finished"

    assert asyncio.run(run()) == "cancelled"


def test_provider_create_image(make_client_service) -> None:
    client_service = make_client_service(history_entry=_history("8"))
    app = AppContext(
        cfg=Config(),
        client=client_service.client,
        client_service=client_service,
        error_handler=ErrorHandlerService(),
    )
    provider = ComfyUIProvider(app=app)

    async def run() -> dict[str, Any]:
        try:
            return await provider.create_image(
                {"model": "flux-dev", "params": {"prompt": "a red apple"}}
            )
        finally:
            await provider.close()

    assert asyncio.run(run()) == {"imageUrl": VIEW_URL, "width": 1024, "height": 1024}
    client_service.client.close.assert_awaited_once()


def test_provider_rejects_bad_auth_config() -> None:
    with pytest.raises(ImageGenerationError) as exc_info:
        ComfyUIProvider(Config(auth_type="basic", username="only-user"))

    assert exc_info.value.error_type == RuntimeErrorType.INVALID_ARGS
