"""
ComfyUI API client.

Handles communication with a ComfyUI server:
- Lists checkpoints, LoRAs, samplers and loader options from /object_info
- Uploads input images
- Queues prompts, streams progress over the websocket and polls /history
  for the finished outputs
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

import aiohttp

from core.constants import CHECKPOINT_LOADERS
from core.errors import ComfyUIExecutionError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[dict[str, Any]], Awaitable[None]]
PROGRESS_EVENTS = frozenset({"progress", "executing", "execution_start", "execution_cached"})

# Client
# ---------------------------------------------------------------------------


class ComfyUIClient:
    """Async client for the ComfyUI HTTP API."""

    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        request_timeout: float = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})
        self.request_timeout = request_timeout
        self._session: aiohttp.ClientSession | None = None

    # -- session management --------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    # -- fetch server info ---------------------------------------------------

    @staticmethod
    def _extract_combo_options(input_val: Any) -> list[str]:
        """
        Extract option list from a ComfyUI input definition.

        Handles both formats:
          Old: [["option1", "option2", ...]]
          New: ["COMBO", {"options": ["option1", "option2", ...]}]
        """
        if not isinstance(input_val, list) or not input_val:
            return []
        first = input_val[0]
        if isinstance(first, list):
            return [str(option) for option in first]
        if isinstance(first, str) and len(input_val) > 1 and isinstance(input_val[1], dict):
            return [str(option) for option in input_val[1].get("options", [])]
        return []

    @classmethod
    def combo_options(cls, node_defs: dict[str, Any], node_name: str, field_name: str) -> list[str]:
        node = node_defs.get(node_name)
        if not isinstance(node, dict):
            return []
        inputs = node.get("input", {})
        if not isinstance(inputs, dict):
            return []
        for section in ("required", "optional"):
            fields = inputs.get(section) or {}
            if isinstance(fields, dict) and field_name in fields:
                return cls._extract_combo_options(fields[field_name])
        return []

    async def _get_json(self, path: str, *, timeout: float | None = None) -> Any:
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout or self.request_timeout),
        ) as resp:
            resp.raise_for_status()
            return await resp.json()

    async def get_object_info(self, node_name: str | None = None) -> dict[str, Any]:
        """Query /object_info (or a single node's definition)."""
        path = f"/object_info/{node_name}" if node_name else "/object_info"
        try:
            data = await self._get_json(path)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError):
            logger.exception("Failed to fetch %s", path)
            raise
        return data

    async def get_checkpoints(self) -> list[str]:
        """Files loadable as a main model, full checkpoints and UNET-only alike."""
        names: list[str] = []
        for node_name, field_name in CHECKPOINT_LOADERS:
            data = await self.get_object_info(node_name)
            for option in self.combo_options(data, node_name, field_name):
                if option not in names:
                    names.append(option)
        logger.info("ComfyUI reports %d checkpoints", len(names))
        return names

    async def get_loras(self) -> list[str]:
        data = await self.get_object_info("LoraLoader")
        return self.combo_options(data, "LoraLoader", "lora_name")

    async def get_sampler_info(self) -> dict[str, list[str]]:
        data = await self.get_object_info("KSampler")
        return {
            "sampler": self.combo_options(data, "KSampler", "sampler_name"),
            "scheduler": self.combo_options(data, "KSampler", "scheduler"),
        }

    # -- images ----------------------------------------------------------------

    async def upload_image(
        self,
        image_bytes: bytes,
        filename: str,
        *,
        content_type: str = "image/png",
    ) -> dict[str, Any]:
        """Upload an image to the ComfyUI input folder; returns the server info."""
        session = await self._get_session()
        form = aiohttp.FormData()
        form.add_field(
            "image",
            image_bytes,
            filename=filename,
            content_type=content_type,
        )
        form.add_field("type", "input")
        form.add_field("overwrite", "true")

        async with session.post(
            f"{self.base_url}/upload/image",
            data=form,
            timeout=aiohttp.ClientTimeout(total=60),
        ) as resp:
            resp.raise_for_status()
            data: dict[str, Any] = await resp.json()

        logger.info("Uploaded %s as %s", filename, data.get("name"))
        return data

    def view_url(self, img_info: dict[str, Any]) -> str:
        params = {
            "filename": str(img_info.get("filename") or ""),
            "subfolder": str(img_info.get("subfolder") or ""),
            "type": str(img_info.get("type") or "output"),
        }
        return f"{self.base_url}/view?{urlencode(params)}"

    # -- queue & poll --------------------------------------------------------

    async def queue_prompt(
        self,
        workflow: dict[str, Any],
        *,
        client_id: str | None = None,
    ) -> str:
        """Send a workflow to the queue. Returns the prompt_id."""
        session = await self._get_session()
        if not client_id:
            client_id = uuid.uuid4().hex
        payload = {"prompt": workflow, "client_id": client_id}

        url = f"{self.base_url}/prompt"
        async with session.post(url, json=payload, timeout=aiohttp.ClientTimeout(total=30)) as resp:
            if resp.status == 400:
                # Prompt validation failed; the body names the offending nodes.
                data = await resp.json(content_type=None)
                error = data.get("error") if isinstance(data, dict) else None
                message = error.get("message") if isinstance(error, dict) else str(error or data)
                raise ComfyUIExecutionError(
                    f"ComfyUI rejected the prompt: {message}",
                    {"node_errors": data.get("node_errors", {}) if isinstance(data, dict) else {}},
                )
            resp.raise_for_status()
            data = await resp.json()

        prompt_id = data.get("prompt_id", "")
        if not prompt_id:
            raise ComfyUIExecutionError(f"ComfyUI did not return prompt_id: {data}")
        logger.info("Queued prompt %s", prompt_id)
        return prompt_id

    async def cancel_prompt(self, prompt_id: str) -> None:
        """Interrupt a running prompt or remove it from the queue."""
        session = await self._get_session()

        # 1. Interrupt current execution
        try:
            async with session.post(
                f"{self.base_url}/interrupt",
                timeout=aiohttp.ClientTimeout(total=10),
            ) as resp:
                if resp.status != 200:
                    logger.warning("Failed to interrupt: %s", resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError):
            logger.warning("Failed to interrupt prompt %s", prompt_id, exc_info=True)

        # 2. Remove from queue (if pending)
        try:
            async with session.post(
                f"{self.base_url}/queue",
                json={"delete": [prompt_id]},
                timeout=aiohttp.ClientTimeout(total=10),
            ) as resp:
                if resp.status != 200:
                    logger.warning("Failed to delete from queue: %s", resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError):
            logger.warning("Failed to delete prompt %s from queue", prompt_id, exc_info=True)

    @staticmethod
    def _ws_url(base_url: str, client_id: str) -> str:
        parsed = urlsplit(base_url)
        scheme = "wss" if parsed.scheme == "https" else "ws"
        path = parsed.path.rstrip("/")
        ws_path = f"{path}/ws" if path else "/ws"
        query = urlencode({"clientId": client_id})
        return urlunsplit((scheme, parsed.netloc, ws_path, query, ""))

    @staticmethod
    def _execution_error_message(data: Any) -> str:
        if not isinstance(data, dict):
            return str(data or "Unknown error")
        return str(
            data.get("exception_message")
            or data.get("error")
            or data.get("exception_type")
            or "Unknown error"
        )

    @classmethod
    def _raise_for_history_failure(cls, status: dict[str, Any]) -> None:
        """Raise when a /history status describes a failed or interrupted prompt."""
        messages = [
            msg for msg in status.get("messages") or [] if isinstance(msg, list) and msg
        ]
        for msg in messages:
            data = msg[1] if len(msg) > 1 and isinstance(msg[1], dict) else {}
            if msg[0] == "execution_error":
                raise ComfyUIExecutionError(
                    f"ComfyUI execution error: {cls._execution_error_message(data)}",
                    {"node_id": data.get("node_id"), "node_type": data.get("node_type")},
                )
            if msg[0] == "execution_interrupted":
                raise ComfyUIExecutionError(
                    "ComfyUI execution interrupted",
                    {"node_id": data.get("node_id"), "node_type": data.get("node_type")},
                )
        if status.get("status_str") == "error":
            last = messages[-1] if messages else []
            data = last[1] if len(last) > 1 and isinstance(last[1], dict) else {}
            raise ComfyUIExecutionError(
                f"ComfyUI execution error: {cls._execution_error_message(data)}",
                {"node_id": data.get("node_id"), "node_type": data.get("node_type")},
            )

    async def _stream_progress_via_websocket(
        self,
        prompt_id: str,
        *,
        client_id: str,
        timeout: float,
        progress_cb: ProgressCallback,
    ) -> bool:
        """
        Forward websocket events for ``prompt_id`` to ``progress_cb``.

        Returns True when the server reports completion, False when the socket
        goes away; execution errors raise ``ComfyUIExecutionError``.
        """
        session = await self._get_session()
        ws_url = self._ws_url(self.base_url, client_id)
        loop = asyncio.get_running_loop()
        started_at = loop.time()

        try:
            async with session.ws_connect(ws_url, heartbeat=30, timeout=20) as ws:
                while loop.time() - started_at < timeout:
                    remaining = timeout - (loop.time() - started_at)
                    try:
                        message = await ws.receive(timeout=min(3.0, remaining))
                    except asyncio.TimeoutError:
                        continue

                    if message.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                        logger.debug("ComfyUI websocket closed for prompt %s", prompt_id)
                        return False
                    if message.type == aiohttp.WSMsgType.ERROR:
                        logger.debug("ComfyUI websocket error for prompt %s", prompt_id)
                        return False
                    if message.type != aiohttp.WSMsgType.TEXT:
                        continue

                    try:
                        payload = json.loads(message.data)
                    except json.JSONDecodeError:
                        continue
                    if not isinstance(payload, dict):
                        continue

                    event_type = payload.get("type")
                    data = payload.get("data", {})
                    if not isinstance(data, dict):
                        data = {}
                    msg_prompt_id = data.get("prompt_id")
                    if isinstance(msg_prompt_id, str) and msg_prompt_id != prompt_id:
                        continue

                    if event_type == "execution_error":
                        raise ComfyUIExecutionError(
                            f"ComfyUI execution error: {self._execution_error_message(data)}",
                            {
                                "node_id": data.get("node_id"),
                                "node_type": data.get("node_type"),
                            },
                        )
                    if event_type == "execution_interrupted":
                        raise ComfyUIExecutionError("ComfyUI execution interrupted")
                    if event_type == "execution_success":
                        return True
                    if event_type == "executing" and data.get("node") is None and msg_prompt_id:
                        return True
                    if event_type in PROGRESS_EVENTS:
                        await progress_cb({"type": event_type, **data})

        except asyncio.CancelledError:
            raise
        except ComfyUIExecutionError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError):
            logger.debug(
                "Realtime websocket progress failed for prompt %s",
                prompt_id,
                exc_info=True,
            )
            return False

        return False

    async def wait_for_completion(
        self,
        prompt_id: str,
        *,
        timeout: float = 600,
        poll_interval: float = 1.5,
    ) -> dict[str, Any]:
        """
        Poll /history/{prompt_id} until the prompt finishes.
        Returns the history entry for the prompt.
        """
        session = await self._get_session()
        url = f"{self.base_url}/history/{prompt_id}"
        elapsed = 0.0

        while elapsed < timeout:
            try:
                async with session.get(url, timeout=aiohttp.ClientTimeout(total=10)) as resp:
                    if resp.status == 200:
                        data = await resp.json()
                        entry = data.get(prompt_id) if isinstance(data, dict) else None
                        if isinstance(entry, dict):
                            status = entry.get("status") or {}
                            self._raise_for_history_failure(status)
                            if (
                                status.get("completed", False)
                                or status.get("status_str") == "success"
                            ):
                                return entry
            except aiohttp.ClientError:
                logger.debug("Poll failed, retrying...")

            await asyncio.sleep(poll_interval)
            elapsed += poll_interval

        raise TimeoutError(f"Prompt {prompt_id} did not complete within {timeout}s")

    async def wait_for_completion_realtime(
        self,
        prompt_id: str,
        *,
        client_id: str,
        timeout: float = 600,
        poll_interval: float = 1.5,
        progress_cb: ProgressCallback,
    ) -> dict[str, Any]:
        history_task = asyncio.create_task(
            self.wait_for_completion(prompt_id, timeout=timeout, poll_interval=poll_interval)
        )
        websocket_task = asyncio.create_task(
            self._stream_progress_via_websocket(
                prompt_id,
                client_id=client_id,
                timeout=timeout,
                progress_cb=progress_cb,
            )
        )

        try:
            done, _ = await asyncio.wait(
                {history_task, websocket_task},
                return_when=asyncio.FIRST_COMPLETED,
            )

            if websocket_task in done:
                ws_error = websocket_task.exception()
                if isinstance(ws_error, ComfyUIExecutionError):
                    history_task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await history_task
                    raise ws_error

            return await history_task
        finally:
            if not history_task.done():
                history_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await history_task
            if not websocket_task.done():
                websocket_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await websocket_task

    async def run_workflow(
        self,
        workflow: dict[str, Any],
        *,
        progress_cb: ProgressCallback | None = None,
        timeout: float = 600,
    ) -> dict[str, Any]:
        """Queue ``workflow`` and return its history entry once it finishes."""
        client_id = uuid.uuid4().hex
        prompt_id = await self.queue_prompt(workflow, client_id=client_id)
        try:
            if progress_cb:
                return await self.wait_for_completion_realtime(
                    prompt_id,
                    client_id=client_id,
                    timeout=timeout,
                    progress_cb=progress_cb,
                )
            return await self.wait_for_completion(prompt_id, timeout=timeout)
        except asyncio.CancelledError:
            logger.info("Prompt %s cancelled, interrupting", prompt_id)
            await asyncio.shield(self.cancel_prompt(prompt_id))
            raise
