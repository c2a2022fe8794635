"""
Resolve logical model ids and auxiliary components against what the
connected ComfyUI server actually has.

Lookups are memoized for the lifetime of the resolver; the live listings
themselves are TTL-cached by the client service.
"""

from __future__ import annotations

import logging

from core.constants import (
    COMPONENT_NODE_MAPPINGS,
    CUSTOM_SD_MODEL_FILENAME,
    CUSTOM_SD_MODEL_IDS,
    CUSTOM_SD_VAE_FILENAME,
    PROVIDER_ID,
)
from core.errors import ComfyUIError, ErrorKind
from core.model_registry import (
    MODEL_ID_VARIANT_MAP,
    MODEL_VARIANTS,
    get_model_config,
    get_models_by_variant,
    resolve_model_config,
)
from core.models import ComponentType, ModelFamily, ResolvedModel
from core.system_components import get_all_components_with_names
from services.client_service import ComfyUIClientService

logger = logging.getLogger(__name__)


def strip_provider_prefix(model_id: str) -> str:
    prefix = f"{PROVIDER_ID}/"
    return model_id[len(prefix) :] if model_id.startswith(prefix) else model_id


def should_attach_vae(model_family: ModelFamily | str | None) -> bool:
    """Only SD1/SDXL graphs get an external VAE loader."""
    return model_family in (ModelFamily.SD1, ModelFamily.SDXL)


class ModelResolverService:
    def __init__(self, client_service: ComfyUIClientService) -> None:
        self.client_service = client_service
        self._file_names: dict[str, str] = {}
        self._components: dict[tuple[str, str], str] = {}
        self._vae: dict[tuple[str, bool, str | None], str | None] = {}

    def clear_caches(self) -> None:
        self._file_names.clear()
        self._components.clear()
        self._vae.clear()

    # -- checkpoints -------------------------------------------------------------

    def _variant_for(self, model_id: str) -> str | None:
        if model_id in MODEL_ID_VARIANT_MAP:
            return MODEL_ID_VARIANT_MAP[model_id]
        config = get_model_config(model_id, case_insensitive=True)
        if config is not None:
            return config.variant
        if model_id in MODEL_VARIANTS:
            return model_id
        return None

    async def resolve_model_file_name(self, model_id: str) -> str:
        model_id = strip_provider_prefix(model_id)
        cached = self._file_names.get(model_id)
        if cached is not None:
            return cached

        file_name = await self._resolve_model_file_name(model_id)
        self._file_names[model_id] = file_name
        logger.debug("Resolved model %s -> %s", model_id, file_name)
        return file_name

    async def _resolve_model_file_name(self, model_id: str) -> str:
        checkpoints = await self.client_service.get_checkpoints()
        live = set(checkpoints)

        if model_id in live:
            return model_id

        variant = self._variant_for(model_id)
        if variant is not None:
            for candidate in get_models_by_variant(variant):
                if candidate in live:
                    return candidate
            raise ComfyUIError(
                ErrorKind.MODEL_NOT_FOUND,
                f"No model file for '{model_id}' is available on the ComfyUI server",
                {
                    "model_id": model_id,
                    "variant": variant,
                    "expected_files": get_models_by_variant(variant),
                },
            )

        if model_id in CUSTOM_SD_MODEL_IDS:
            if CUSTOM_SD_MODEL_FILENAME in live:
                return CUSTOM_SD_MODEL_FILENAME
            raise ComfyUIError(
                ErrorKind.MODEL_NOT_FOUND,
                f"Custom SD model file not found. Please ensure '{CUSTOM_SD_MODEL_FILENAME}' "
                "is in the ComfyUI models folder",
                {"model_id": model_id, "expected_file": CUSTOM_SD_MODEL_FILENAME},
            )

        raise ComfyUIError(
            ErrorKind.MODEL_NOT_FOUND,
            f"Model not found: {model_id}",
            {"model_id": model_id},
        )

    async def validate_model(self, model_id: str) -> ResolvedModel:
        try:
            file_name = await self.resolve_model_file_name(model_id)
        except ComfyUIError as exc:
            if exc.kind != ErrorKind.MODEL_NOT_FOUND:
                raise
            logger.info("Model %s is not available: %s", model_id, exc.message)
            return ResolvedModel(exists=False)
        return ResolvedModel(exists=True, actual_file_name=file_name)

    # -- components --------------------------------------------------------------

    async def get_available_components(self, component_type: ComponentType | str) -> list[str]:
        mappings = COMPONENT_NODE_MAPPINGS.get(ComponentType(component_type).value)
        names: list[str] = []
        for node_name, field_name in mappings or ():
            for option in await self.client_service.get_loader_options(node_name, field_name):
                if option not in names:
                    names.append(option)
        return names

    async def get_available_vae_files(self) -> list[str]:
        return await self.get_available_components(ComponentType.VAE)

    async def get_optimal_component(
        self,
        component_type: ComponentType | str,
        model_family: ModelFamily | str,
    ) -> str:
        try:
            ctype = ComponentType(component_type)
        except ValueError:
            raise ComfyUIError(
                ErrorKind.INVALID_ARGS,
                f"Unknown component type: {component_type}",
                {"type": str(component_type)},
            ) from None
        family = ModelFamily(model_family)

        key = (ctype.value, family.value)
        cached = self._components.get(key)
        if cached is not None:
            return cached

        live = set(await self.get_available_components(ctype))
        candidates = sorted(
            get_all_components_with_names(ctype, family),
            key=lambda item: (item[1].priority, item[0]),
        )
        for name, _config in candidates:
            if name in live:
                self._components[key] = name
                return name

        raise ComfyUIError(
            ErrorKind.MISSING_COMPONENT,
            f"No {ctype.value} component available for {family.value}",
            {
                "type": ctype.value,
                "model_family": family.value,
                "expected_files": [name for name, _config in candidates],
            },
        )

    async def select_vae(
        self,
        model_file_name: str,
        *,
        is_custom_sd: bool = False,
        custom_vae: str | None = None,
    ) -> str | None:
        """External VAE for the model, or None to decode with the checkpoint's own."""
        key = (model_file_name, is_custom_sd, custom_vae)
        if key in self._vae:
            return self._vae[key]

        vae = await self._select_vae(model_file_name, is_custom_sd, custom_vae)
        self._vae[key] = vae
        return vae

    async def _select_vae(
        self,
        model_file_name: str,
        is_custom_sd: bool,
        custom_vae: str | None,
    ) -> str | None:
        if is_custom_sd:
            if custom_vae:
                return custom_vae
            live = await self.get_available_vae_files()
            return CUSTOM_SD_VAE_FILENAME if CUSTOM_SD_VAE_FILENAME in live else None

        config = resolve_model_config(model_file_name)
        if config is None or not should_attach_vae(config.model_family):
            return None
        try:
            return await self.get_optimal_component(ComponentType.VAE, config.model_family)
        except ComfyUIError as exc:
            if exc.kind != ErrorKind.MISSING_COMPONENT:
                raise
            logger.debug("No external VAE for %s, using the built-in one", model_file_name)
            return None
