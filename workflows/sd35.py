from __future__ import annotations

import logging

from core.constants import (
    BATCH_SIZE,
    DEFAULT_IMAGE_SIZE,
    DEFAULT_NEGATIVE_PROMPT,
    SD3_SHIFT,
    SD35_DEFAULTS,
    T2I_DENOISE,
)
from core.errors import ComfyUIError, ErrorKind
from core.graph import NodeRef, WorkflowGraph, ref
from core.models import ComponentType, GenerationParams, ModelFamily
from workflows.common import WorkflowContext, pick, resolve_seed

logger = logging.getLogger(__name__)


async def _find_component(
    context: WorkflowContext,
    component_type: ComponentType,
    model_family: ModelFamily,
) -> str | None:
    try:
        return await context.model_resolver.get_optimal_component(component_type, model_family)
    except ComfyUIError as exc:
        if exc.kind != ErrorKind.MISSING_COMPONENT:
            raise
        return None


async def add_sd3_text_encoder(
    graph: WorkflowGraph,
    model_file_name: str,
    context: WorkflowContext,
) -> NodeRef:
    """
    Add node 2, the best text-encoder loader the server can satisfy:
    CLIP-L + CLIP-G + T5, then CLIP-L + CLIP-G, then T5 alone.
    """
    # CLIP-L and T5 are registered under FLUX, which shares them with SD3.
    clip_l = await _find_component(context, ComponentType.CLIP, ModelFamily.FLUX)
    clip_g = await _find_component(context, ComponentType.CLIP, ModelFamily.SD3)
    t5 = await _find_component(context, ComponentType.T5, ModelFamily.FLUX)

    if clip_l and clip_g and t5:
        return graph.add_node(
            "2",
            "TripleCLIPLoader",
            {"clip_name1": clip_l, "clip_name2": clip_g, "clip_name3": t5},
            title="TripleCLIPLoader",
        )
    if clip_l and clip_g:
        logger.info("No T5 encoder for %s, using CLIP-L + CLIP-G", model_file_name)
        return graph.add_node(
            "2",
            "DualCLIPLoader",
            {"clip_name1": clip_l, "clip_name2": clip_g, "type": "sd3"},
            title="DualCLIPLoader",
        )
    if t5:
        logger.info("No CLIP-L/CLIP-G pair for %s, using T5 only", model_file_name)
        return graph.add_node(
            "2",
            "CLIPLoader",
            {"clip_name": t5, "type": "sd3"},
            title="CLIPLoader",
        )
    raise ComfyUIError(
        ErrorKind.MISSING_ENCODER,
        "SD3.5 needs external text encoders (CLIP-L + CLIP-G and/or T5), "
        "but none are available on the ComfyUI server",
        {"model": model_file_name},
    )


async def build_sd35_workflow(
    model_file_name: str,
    params: GenerationParams,
    context: WorkflowContext,
) -> WorkflowGraph:
    """SD3.5 checkpoints without bundled text encoders."""
    steps, cfg, sampler_name, scheduler = SD35_DEFAULTS

    graph = WorkflowGraph()
    graph.add_node(
        "1",
        "CheckpointLoaderSimple",
        {"ckpt_name": model_file_name},
        title="Load Checkpoint",
    )
    clip = await add_sd3_text_encoder(graph, model_file_name, context)

    graph.add_node("3", "CLIPTextEncode", {"clip": clip}, title="CLIP Text Encode (Positive)")
    graph.bind("prompt", "3", "text", params.prompt)
    graph.add_node("4", "CLIPTextEncode", {"clip": clip}, title="CLIP Text Encode (Negative)")
    negative = pick(params.negative_prompt, DEFAULT_NEGATIVE_PROMPT)
    graph.bind("negative_prompt", "4", "text", negative)

    graph.add_node("5", "EmptySD3LatentImage", {"batch_size": BATCH_SIZE}, title="Empty Latent")
    graph.bind("width", "5", "width", pick(params.width, DEFAULT_IMAGE_SIZE))
    graph.bind("height", "5", "height", pick(params.height, DEFAULT_IMAGE_SIZE))

    graph.add_node("12", "ModelSamplingSD3", {"model": ref("1", 0)}, title="ModelSamplingSD3")
    graph.bind("shift", "12", "shift", pick(params.shift, SD3_SHIFT))

    graph.add_node(
        "6",
        "KSampler",
        {
            "model": ref("12"),
            "positive": ref("3"),
            "negative": ref("4"),
            "latent_image": ref("5"),
        },
        title="KSampler",
    )
    graph.bind("steps", "6", "steps", pick(params.steps, steps))
    graph.bind("cfg", "6", "cfg", pick(params.cfg, cfg))
    graph.bind("seed", "6", "seed", resolve_seed(params.seed))
    graph.bind("sampler_name", "6", "sampler_name", pick(params.sampler_name, sampler_name))
    graph.bind("scheduler", "6", "scheduler", pick(params.scheduler, scheduler))
    graph.bind("denoise", "6", "denoise", pick(params.denoise, T2I_DENOISE))

    # SD3 checkpoints bundle their VAE.
    graph.add_node(
        "7",
        "VAEDecode",
        {"samples": ref("6"), "vae": ref("1", 2)},
        title="VAE Decode",
    )
    graph.add_node(
        "8",
        "SaveImage",
        {"filename_prefix": context.filename_prefix, "images": ref("7")},
        title="Save Image",
    )
    graph.set_output("images", "8")
    return graph.validate()
