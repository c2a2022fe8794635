"""
Cached, error-translating facade over ``ComfyUIClient``.

Listings are TTL-cached; uploads and executions never are.  Every raw
aiohttp/timeout/server failure leaves this module as a ``ComfyUIError``.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from comfyui_client import ComfyUIClient, ProgressCallback
from config import ComfyUIOptions
from core.auth import AuthManager
from core.cache import TTLCache
from core.errors import ComfyUIError, ErrorKind, to_comfyui_error
from core.graph import WorkflowGraph

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 60.0
DEFAULT_CONNECTION_TTL = 300.0


class ComfyUIClientService:
    def __init__(
        self,
        options: ComfyUIOptions | None = None,
        *,
        client: ComfyUIClient | None = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        connection_ttl: float = DEFAULT_CONNECTION_TTL,
        execution_timeout: float = 600,
    ) -> None:
        self.options = options or ComfyUIOptions()
        self.auth = AuthManager(self.options)
        self.client = client or ComfyUIClient(
            self.options.base_url,
            headers=self.auth.get_auth_headers(),
        )
        self.cache = TTLCache(cache_ttl)
        self.connection_ttl = connection_ttl
        self.execution_timeout = execution_timeout
        self._connection_validated_at: float | None = None

    @property
    def base_url(self) -> str:
        return self.client.base_url

    def get_auth_headers(self) -> dict[str, str] | None:
        return self.auth.get_auth_headers()

    async def _call(self, operation: str, coro: Any) -> Any:
        try:
            return await coro
        except ComfyUIError:
            raise
        except Exception as exc:
            error = to_comfyui_error(exc, operation=operation, base_url=self.base_url)
            logger.warning(
                "ComfyUI %s failed (%s): %s", operation, error.kind.value, error.message
            )
            raise error from exc

    # -- listings --------------------------------------------------------------

    async def get_checkpoints(self) -> list[str]:
        return await self.cache.get(
            "checkpoints",
            lambda: self._call("get_checkpoints", self.client.get_checkpoints()),
        )

    async def get_loras(self) -> list[str]:
        return await self.cache.get(
            "loras",
            lambda: self._call("get_loras", self.client.get_loras()),
        )

    async def get_node_defs(self, node_name: str | None = None) -> dict[str, Any]:
        """All node definitions, or ``{node_name: definition}`` for one node."""
        defs = await self.cache.get(
            "nodeDefs",
            lambda: self._call("get_node_defs", self.client.get_object_info()),
        )
        if not isinstance(defs, dict):
            self.cache.invalidate("nodeDefs")
            raise ComfyUIError(
                ErrorKind.SERVICE_UNAVAILABLE,
                "ComfyUI returned malformed node definitions",
                {"base_url": self.base_url},
            )
        if node_name is None:
            return defs
        if node_name not in defs:
            return {}
        return {node_name: defs[node_name]}

    async def get_sampler_info(self) -> dict[str, list[str]]:
        return await self.cache.get(
            "samplerInfo",
            lambda: self._call("get_sampler_info", self.client.get_sampler_info()),
        )

    async def get_loader_options(self, node_name: str, field_name: str) -> list[str]:
        defs = await self.get_node_defs(node_name)
        return ComfyUIClient.combo_options(defs, node_name, field_name)

    # -- connection ------------------------------------------------------------

    async def validate_connection(self) -> bool:
        now = time.monotonic()
        if (
            self._connection_validated_at is not None
            and now - self._connection_validated_at < self.connection_ttl
        ):
            return True
        try:
            defs = await self.get_node_defs()
        except ComfyUIError as exc:
            logger.error("ComfyUI at %s is not reachable: %s", self.base_url, exc.message)
            raise
        if not defs:
            raise ComfyUIError(
                ErrorKind.SERVICE_UNAVAILABLE,
                "ComfyUI returned no node definitions",
                {"base_url": self.base_url},
            )
        self._connection_validated_at = now
        logger.info("ComfyUI connection validated at %s", self.base_url)
        return True

    # -- uploads & execution -----------------------------------------------------

    async def upload_image(self, data: bytes, filename: str) -> str:
        info = await self._call("upload_image", self.client.upload_image(data, filename))
        name = info.get("name") if isinstance(info, dict) else None
        if not name:
            raise ComfyUIError(
                ErrorKind.UPLOAD_FAILED,
                "ComfyUI did not return an uploaded filename",
                {"filename": filename, "response": info},
            )
        subfolder = str(info.get("subfolder") or "")
        return f"{subfolder}/{name}" if subfolder else str(name)

    async def execute_workflow(
        self,
        graph: WorkflowGraph,
        on_progress: ProgressCallback | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Run ``graph`` and return the outputs of its declared output nodes,
        keyed by output name, e.g. ``{"images": {"images": [...]}}``.
        """
        graph.validate()
        entry = await self._call(
            "execute_workflow",
            self.client.run_workflow(
                graph.to_api(),
                progress_cb=on_progress,
                timeout=timeout or self.execution_timeout,
            ),
        )
        outputs = entry.get("outputs") if isinstance(entry, dict) else None
        if not isinstance(outputs, dict):
            outputs = {}
        return {name: outputs.get(node_id) for name, node_id in graph.outputs.items()}

    def get_path_image(self, image_info: dict[str, Any]) -> str:
        return self.client.view_url(image_info)

    async def close(self) -> None:
        await self.client.close()
