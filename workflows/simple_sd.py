from __future__ import annotations

import logging

from core.constants import (
    BATCH_SIZE,
    CUSTOM_SD_MODEL_FILENAME,
    DEFAULT_IMAGE_SIZE,
    DEFAULT_NEGATIVE_PROMPT,
    I2I_DENOISE,
    SIMPLE_SD_DEFAULTS,
    T2I_DENOISE,
)
from core.graph import WorkflowGraph, ref
from core.model_registry import resolve_model_config
from core.models import GenerationParams, ModelFamily
from services.model_resolver import should_attach_vae
from workflows.common import WorkflowContext, pick, resolve_seed

logger = logging.getLogger(__name__)


async def build_simple_sd_workflow(
    model_file_name: str,
    params: GenerationParams,
    context: WorkflowContext,
) -> WorkflowGraph:
    """
    Single-checkpoint SD graph for SD1.5, SDXL, SD3 with bundled encoders
    and the custom SD file.

    Text-to-image starts from an empty latent at denoise 1.0; with an input
    image the latent comes from LoadImage -> VAEEncode and denoise follows
    ``strength`` (default 0.75).
    """
    steps, cfg, sampler_name, scheduler = SIMPLE_SD_DEFAULTS
    config = resolve_model_config(model_file_name)
    family = config.model_family if config else None
    if family == ModelFamily.SD3:
        scheduler = "sgm_uniform"
    is_custom_sd = (
        context.variant == "custom-sd" or model_file_name == CUSTOM_SD_MODEL_FILENAME
    )
    input_image = params.input_image

    vae_name: str | None = None
    if is_custom_sd:
        vae_name = await context.model_resolver.select_vae(
            model_file_name, is_custom_sd=True, custom_vae=params.custom_vae
        )
    elif should_attach_vae(family):
        vae_name = await context.model_resolver.select_vae(model_file_name)

    graph = WorkflowGraph()
    checkpoint = graph.add_node(
        "1",
        "CheckpointLoaderSimple",
        {"ckpt_name": model_file_name},
        title="Load Checkpoint",
    )
    clip = ref("1", 1)
    vae = ref("1", 2)
    if vae_name:
        vae = graph.add_node("vae_loader", "VAELoader", {"vae_name": vae_name}, title="Load VAE")
        logger.debug("Using external VAE %s for %s", vae_name, model_file_name)

    graph.add_node("2", "CLIPTextEncode", {"clip": clip}, title="CLIP Text Encode (Positive)")
    graph.bind("prompt", "2", "text", params.prompt)
    graph.add_node("3", "CLIPTextEncode", {"clip": clip}, title="CLIP Text Encode (Negative)")
    negative = pick(params.negative_prompt, DEFAULT_NEGATIVE_PROMPT)
    graph.bind("negative_prompt", "3", "text", negative)

    if input_image:
        graph.add_node("img_load", "LoadImage", title="Load Image")
        graph.bind("image", "img_load", "image", input_image)
        latent = graph.add_node(
            "img_encode",
            "VAEEncode",
            {"pixels": ref("img_load"), "vae": vae},
            title="VAE Encode",
        )
        denoise = pick(params.strength, I2I_DENOISE)
    else:
        latent = graph.add_node(
            "4",
            "EmptyLatentImage",
            {"batch_size": BATCH_SIZE},
            title="Empty Latent",
        )
        graph.bind("width", "4", "width", pick(params.width, DEFAULT_IMAGE_SIZE))
        graph.bind("height", "4", "height", pick(params.height, DEFAULT_IMAGE_SIZE))
        denoise = T2I_DENOISE

    graph.add_node(
        "5",
        "KSampler",
        {
            "model": checkpoint,
            "positive": ref("2"),
            "negative": ref("3"),
            "latent_image": latent,
        },
        title="KSampler",
    )
    graph.bind("steps", "5", "steps", pick(params.steps, steps))
    graph.bind("cfg", "5", "cfg", pick(params.cfg, cfg))
    graph.bind("seed", "5", "seed", resolve_seed(params.seed))
    graph.bind("sampler_name", "5", "sampler_name", pick(params.sampler_name, sampler_name))
    graph.bind("scheduler", "5", "scheduler", pick(params.scheduler, scheduler))
    graph.bind("denoise", "5", "denoise", denoise)

    graph.add_node("6", "VAEDecode", {"samples": ref("5"), "vae": vae}, title="VAE Decode")
    graph.add_node(
        "7",
        "SaveImage",
        {"filename_prefix": context.filename_prefix, "images": ref("6")},
        title="Save Image",
    )
    graph.set_output("images", "7")
    return graph.validate()
