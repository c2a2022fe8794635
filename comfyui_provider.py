"""
ComfyUI image provider.

``ComfyUIProvider.create_image`` is the single entry point the host
application calls.  The client service (and its caches) is shared across
requests; resolver and builder state is per request.
"""

from __future__ import annotations

import logging
from typing import Any

from app_context import AppContext, create_app_context
from config import Config
from core.errors import ComfyUIError
from services.error_handler import ErrorHandlerService
from services.image_service import ImageService
from services.model_resolver import ModelResolverService
from services.workflow_builder import WorkflowBuilderService

logger = logging.getLogger(__name__)


class ComfyUIProvider:
    def __init__(self, cfg: Config | None = None, *, app: AppContext | None = None) -> None:
        try:
            self.cfg = cfg or (app.cfg if app else Config.from_env())
            if app is None:
                app = create_app_context(self.cfg)
        except ComfyUIError as exc:
            ErrorHandlerService().handle_error(exc)
        self.app: AppContext = app
        logger.info("ComfyUI provider configured for %s", self.cfg.comfyui_url)

    def _image_service(self) -> ImageService:
        model_resolver = ModelResolverService(self.app.client_service)
        return ImageService(
            self.app.client_service,
            model_resolver,
            WorkflowBuilderService(model_resolver),
            self.app.error_handler,
            max_image_bytes=self.cfg.max_image_size_bytes,
        )

    async def create_image(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._image_service().create_image(payload)
        return response.to_dict()

    def get_auth_headers(self) -> dict[str, str] | None:
        return self.app.client_service.get_auth_headers()

    async def close(self) -> None:
        await self.app.close()
