from __future__ import annotations

from dataclasses import dataclass

from comfyui_client import ComfyUIClient
from config import Config
from services.client_service import ComfyUIClientService
from services.error_handler import ErrorHandlerService


@dataclass(slots=True)
class AppContext:
    cfg: Config
    client: ComfyUIClient
    client_service: ComfyUIClientService
    error_handler: ErrorHandlerService

    async def close(self) -> None:
        await self.client_service.close()


def create_app_context(cfg: Config) -> AppContext:
    client_service = ComfyUIClientService(
        cfg.to_options(),
        cache_ttl=cfg.cache_ttl,
        connection_ttl=cfg.connection_ttl,
        execution_timeout=cfg.execution_timeout,
    )
    return AppContext(
        cfg=cfg,
        client=client_service.client,
        client_service=client_service,
        error_handler=ErrorHandlerService(),
    )
