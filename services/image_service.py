"""
End-to-end image generation against a ComfyUI server.

validate connection -> resolve model -> upload input image (img2img) ->
detect architecture -> build workflow -> execute -> map the first image.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import aiohttp

from core.constants import DEFAULT_IMAGE_SIZE, MAX_INPUT_IMAGE_BYTES
from core.errors import ComfyUIError, ErrorKind
from core.image_utils import prepare_input_image
from core.models import CreateImagePayload, CreateImageResponse, GenerationParams
from core.workflow_router import detect_workflow
from services.client_service import ComfyUIClientService
from services.error_handler import ErrorHandlerService
from services.model_resolver import ModelResolverService
from services.workflow_builder import WorkflowBuilderService

logger = logging.getLogger(__name__)

IMAGE_CHUNK_SIZE = 64 * 1024


class ImageService:
    def __init__(
        self,
        client_service: ComfyUIClientService,
        model_resolver: ModelResolverService,
        workflow_builder: WorkflowBuilderService,
        error_handler: ErrorHandlerService | None = None,
        *,
        max_image_bytes: int = MAX_INPUT_IMAGE_BYTES,
    ) -> None:
        self.client_service = client_service
        self.model_resolver = model_resolver
        self.workflow_builder = workflow_builder
        self.error_handler = error_handler or ErrorHandlerService()
        self.max_image_bytes = max_image_bytes

    async def create_image(
        self,
        payload: CreateImagePayload | dict[str, Any],
    ) -> CreateImageResponse:
        if isinstance(payload, dict):
            payload = CreateImagePayload.from_dict(payload)
        model_id = payload.model
        params = payload.params

        try:
            await self.client_service.validate_connection()

            resolved = await self.model_resolver.validate_model(model_id)
            if not resolved.exists or not resolved.actual_file_name:
                raise ComfyUIError(
                    ErrorKind.MODEL_NOT_FOUND,
                    f"Model not found: {model_id}",
                    {"model_id": model_id},
                )
            model_file_name = resolved.actual_file_name

            await self._upload_input_image(params)

            detection = detect_workflow(model_file_name)
            logger.info(
                "Generating with %s -> %s (%s/%s)",
                model_id,
                model_file_name,
                detection.architecture,
                detection.variant,
            )
            graph = await self.workflow_builder.build_workflow(
                model_id, detection, model_file_name, params
            )

            result = await self.client_service.execute_workflow(
                graph, on_progress=self._log_progress
            )
            return self._build_response(result, params)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.error_handler.handle_error(exc, model_id=model_id)

    async def _log_progress(self, info: dict[str, Any]) -> None:
        if info.get("type") == "progress":
            logger.debug(
                "Progress %s/%s (node %s)",
                info.get("value"),
                info.get("max"),
                info.get("node"),
            )
        else:
            logger.debug("ComfyUI event %s", info.get("type"))

    # -- image-to-image input ----------------------------------------------------

    async def _upload_input_image(self, params: GenerationParams) -> None:
        source = params.input_image
        # Values without a scheme already name a file on the server.
        if not source or "://" not in source:
            return

        data = await self._fetch_image_bytes(source)
        if not data:
            raise ComfyUIError(
                ErrorKind.IMAGE_FETCH_FAILED,
                "Input image is empty",
                {"url": source},
            )
        if len(data) > self.max_image_bytes:
            raise self._too_large(source, len(data))
        try:
            prepared = prepare_input_image(data)
        except ValueError as exc:
            raise ComfyUIError(
                ErrorKind.IMAGE_FETCH_FAILED,
                "Input image could not be decoded",
                {"url": source, "reason": str(exc)},
            ) from exc

        filename = f"LobeChat_img2img_{int(time.time() * 1000)}.png"
        uploaded = await self.client_service.upload_image(prepared.data, filename)
        logger.info(
            "Uploaded input image %s (%dx%d) as %s",
            source,
            prepared.width,
            prepared.height,
            uploaded,
        )
        params.replace_input_image(uploaded)

    def _too_large(self, url: str, size: int) -> ComfyUIError:
        return ComfyUIError(
            ErrorKind.IMAGE_TOO_LARGE,
            f"Input image is larger than {self.max_image_bytes // (1024 * 1024)}MB",
            {"url": url, "size": size, "max_size": self.max_image_bytes},
        )

    async def _fetch_image_bytes(self, url: str) -> bytes:
        timeout = aiohttp.ClientTimeout(total=60)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as resp:
                    if resp.status >= 400:
                        raise ComfyUIError(
                            ErrorKind.IMAGE_FETCH_FAILED,
                            f"Failed to fetch input image: HTTP {resp.status}",
                            {"url": url, "status": resp.status},
                        )
                    if resp.content_length and resp.content_length > self.max_image_bytes:
                        raise self._too_large(url, resp.content_length)
                    data = bytearray()
                    async for chunk in resp.content.iter_chunked(IMAGE_CHUNK_SIZE):
                        data.extend(chunk)
                        if len(data) > self.max_image_bytes:
                            raise self._too_large(url, len(data))
                    return bytes(data)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ComfyUIError(
                ErrorKind.IMAGE_FETCH_FAILED,
                f"Failed to fetch input image: {exc}",
                {"url": url},
            ) from exc

    # -- results -----------------------------------------------------------------

    def _build_response(
        self,
        result: dict[str, Any],
        params: GenerationParams,
    ) -> CreateImageResponse:
        output = result.get("images") if isinstance(result, dict) else None
        images = output.get("images") if isinstance(output, dict) else None
        if not isinstance(images, list) or not images or not isinstance(images[0], dict):
            raise ComfyUIError(
                ErrorKind.EMPTY_RESULT,
                "ComfyUI workflow finished without producing an image",
                {"result": result},
            )

        image_info = images[0]
        return CreateImageResponse(
            image_url=self.client_service.get_path_image(image_info),
            width=_dimension(image_info.get("width"), params.width),
            height=_dimension(image_info.get("height"), params.height),
        )


def _dimension(reported: Any, requested: int | None) -> int:
    for value in (reported, requested):
        if isinstance(value, (int, float)) and value > 0:
            return int(value)
    return DEFAULT_IMAGE_SIZE
