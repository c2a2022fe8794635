"""
Pick a workflow for a resolved model.

The routing space is closed: every registry variant and family maps to one
``WorkflowKind``.  Order: legacy model id, then variant, then family default.
"""

from __future__ import annotations

import logging
from enum import Enum

from core.constants import FLUX_FILENAME_PREFIXES, SD_FILENAME_PREFIXES
from core.errors import ComfyUIError, ErrorKind
from core.model_registry import resolve_model_config
from core.models import WorkflowDetectionResult

logger = logging.getLogger(__name__)


class WorkflowKind(str, Enum):
    FLUX_DEV = "flux_dev"
    FLUX_SCHNELL = "flux_schnell"
    FLUX_KONTEXT = "flux_kontext"
    SD35 = "sd35"
    SIMPLE_SD = "simple_sd"


# Model ids that predate variant routing.
EXACT_MODEL_WORKFLOWS: dict[str, WorkflowKind] = {
    "flux-dev": WorkflowKind.FLUX_DEV,
    "flux-krea-dev": WorkflowKind.FLUX_DEV,
    "flux-kontext-dev": WorkflowKind.FLUX_KONTEXT,
    "flux-schnell": WorkflowKind.FLUX_SCHNELL,
    "stable-diffusion-15": WorkflowKind.SIMPLE_SD,
    "stable-diffusion-35": WorkflowKind.SD35,
    "stable-diffusion-35-inclclip": WorkflowKind.SIMPLE_SD,
    "stable-diffusion-custom": WorkflowKind.SIMPLE_SD,
    "stable-diffusion-custom-refiner": WorkflowKind.SIMPLE_SD,
    "stable-diffusion-refiner": WorkflowKind.SIMPLE_SD,
    "stable-diffusion-xl": WorkflowKind.SIMPLE_SD,
}

VARIANT_WORKFLOWS: dict[str, WorkflowKind] = {
    "dev": WorkflowKind.FLUX_DEV,
    "krea": WorkflowKind.FLUX_DEV,
    "schnell": WorkflowKind.FLUX_SCHNELL,
    "kontext": WorkflowKind.FLUX_KONTEXT,
    "sd35": WorkflowKind.SD35,
    # Checkpoints with bundled encoders load through the simple loader.
    "sd35-inclclip": WorkflowKind.SIMPLE_SD,
    "sd3": WorkflowKind.SIMPLE_SD,
    "sd15-t2i": WorkflowKind.SIMPLE_SD,
    "sdxl-t2i": WorkflowKind.SIMPLE_SD,
    "sdxl-i2i": WorkflowKind.SIMPLE_SD,
    "custom-sd": WorkflowKind.SIMPLE_SD,
}

ARCHITECTURE_DEFAULT_WORKFLOWS: dict[str, WorkflowKind] = {
    "FLUX": WorkflowKind.FLUX_DEV,
    "SD3": WorkflowKind.SD35,
    "SD1": WorkflowKind.SIMPLE_SD,
    "SDXL": WorkflowKind.SIMPLE_SD,
}


def detect_workflow(model_file_name: str) -> WorkflowDetectionResult:
    config = resolve_model_config(model_file_name)
    if config is None:
        return WorkflowDetectionResult(architecture="unknown", is_supported=False)
    return WorkflowDetectionResult(
        architecture=config.model_family.value,
        is_supported=True,
        variant=config.variant,
    )


def route_workflow(model_id: str, detection: WorkflowDetectionResult) -> WorkflowKind:
    if not detection.is_supported:
        raise ComfyUIError(
            ErrorKind.UNSUPPORTED_MODEL,
            f"Unsupported model: {model_id}",
            {"model_id": model_id, "architecture": detection.architecture},
        )

    kind = EXACT_MODEL_WORKFLOWS.get(model_id)
    if kind is None and detection.variant:
        kind = VARIANT_WORKFLOWS.get(detection.variant)
    if kind is None:
        kind = ARCHITECTURE_DEFAULT_WORKFLOWS.get(detection.architecture)
    if kind is None:
        raise ComfyUIError(
            ErrorKind.UNSUPPORTED_MODEL,
            f"No workflow for {detection.architecture} model {model_id}",
            {
                "model_id": model_id,
                "architecture": detection.architecture,
                "variant": detection.variant,
            },
        )
    logger.debug(
        "Routing %s (%s/%s) to %s",
        model_id,
        detection.architecture,
        detection.variant,
        kind.value,
    )
    return kind


def get_workflow_filename_prefix(kind: WorkflowKind, variant: str | None = None) -> str:
    if kind == WorkflowKind.FLUX_DEV:
        return FLUX_FILENAME_PREFIXES["KREA" if variant == "krea" else "DEV"]
    if kind == WorkflowKind.FLUX_SCHNELL:
        return FLUX_FILENAME_PREFIXES["SCHNELL"]
    if kind == WorkflowKind.FLUX_KONTEXT:
        return FLUX_FILENAME_PREFIXES["KONTEXT"]
    if kind == WorkflowKind.SD35 or variant in ("sd35-inclclip", "sd3"):
        return SD_FILENAME_PREFIXES["SD35"]
    if variant == "custom-sd":
        return SD_FILENAME_PREFIXES["CUSTOM"]
    if variant and variant.startswith("sdxl"):
        return SD_FILENAME_PREFIXES["SDXL"]
    return SD_FILENAME_PREFIXES["SD15"]
