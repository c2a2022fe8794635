from __future__ import annotations

import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from core.constants import FLUX_FILENAME_PREFIXES
from core.graph import NodeRef, WorkflowGraph
from core.model_registry import select_optimal_weight_dtype
from core.models import ComponentType, GenerationParams, ModelFamily
from services.model_resolver import ModelResolverService


@dataclass
class WorkflowContext:
    """What a builder needs besides the model file and the parameters."""

    model_resolver: ModelResolverService
    variant: str | None = None
    filename_prefix: str = FLUX_FILENAME_PREFIXES["DEV"]


WorkflowBuilder = Callable[[str, GenerationParams, WorkflowContext], Awaitable[WorkflowGraph]]


def random_seed() -> int:
    return random.randint(0, 2**63 - 1)


def resolve_seed(seed: int | None) -> int:
    # 0 is a valid seed
    return random_seed() if seed is None else int(seed)


def pick(value: Any, default: Any) -> Any:
    return default if value is None else value


async def add_flux_loaders(
    graph: WorkflowGraph,
    model_file_name: str,
    context: WorkflowContext,
) -> tuple[NodeRef, NodeRef, NodeRef]:
    """Add nodes 1-3 (dual CLIP, UNET, VAE) shared by all FLUX graphs."""
    resolver = context.model_resolver
    t5 = await resolver.get_optimal_component(ComponentType.T5, ModelFamily.FLUX)
    clip_l = await resolver.get_optimal_component(ComponentType.CLIP, ModelFamily.FLUX)
    vae = await resolver.get_optimal_component(ComponentType.VAE, ModelFamily.FLUX)

    clip = graph.add_node(
        "1",
        "DualCLIPLoader",
        {"clip_name1": t5, "clip_name2": clip_l, "type": "flux"},
        title="DualCLIP Loader",
    )
    unet = graph.add_node(
        "2",
        "UNETLoader",
        {
            "unet_name": model_file_name,
            "weight_dtype": select_optimal_weight_dtype(model_file_name),
        },
        title="Load Diffusion Model",
    )
    vae_ref = graph.add_node("3", "VAELoader", {"vae_name": vae}, title="Load VAE")
    return clip, unet, vae_ref
