from __future__ import annotations

from core.constants import (
    BATCH_SIZE,
    DEFAULT_IMAGE_SIZE,
    FLUX_BASE_SHIFT,
    FLUX_KONTEXT_DEFAULTS,
    FLUX_MAX_SHIFT,
    I2I_DENOISE,
    T2I_DENOISE,
)
from core.graph import WorkflowGraph, ref
from core.models import GenerationParams
from core.prompt_splitter import split_prompt_for_dual_clip
from workflows.common import WorkflowContext, add_flux_loaders, pick, resolve_seed


async def build_flux_kontext_workflow(
    model_file_name: str,
    params: GenerationParams,
    context: WorkflowContext,
) -> WorkflowGraph:
    """
    FLUX.1 Kontext, for image editing and text-to-image.

    Uses the custom sampler pipeline (noise, sampler select, scheduler,
    guider).  With an input image the latent comes from LoadImage ->
    VAEEncode and denoise follows ``strength``; without one it starts from
    an empty latent at full denoise.
    """
    steps, cfg, sampler_name, scheduler = FLUX_KONTEXT_DEFAULTS
    cfg = pick(params.cfg, cfg)
    width = pick(params.width, DEFAULT_IMAGE_SIZE)
    height = pick(params.height, DEFAULT_IMAGE_SIZE)
    input_image = params.input_image
    prompts = split_prompt_for_dual_clip(params.prompt)

    graph = WorkflowGraph()
    clip, unet, vae = await add_flux_loaders(graph, model_file_name, context)

    model = graph.add_node(
        "4",
        "ModelSamplingFlux",
        {
            "model": unet,
            "max_shift": FLUX_MAX_SHIFT,
            "base_shift": FLUX_BASE_SHIFT,
            "width": width,
            "height": height,
        },
        title="ModelSamplingFlux",
    )

    graph.add_node(
        "5",
        "CLIPTextEncodeFlux",
        {"clip": clip},
        title="CLIP Text Encode (Flux)",
    )
    graph.bind("prompt_clip_l", "5", "clip_l", prompts.clip_l_prompt)
    graph.bind("prompt_t5xxl", "5", "t5xxl", prompts.t5xxl_prompt)

    guided = graph.add_node("6", "FluxGuidance", {"conditioning": ref("5")}, title="FluxGuidance")
    graph.bind("cfg", "6", "guidance", cfg)
    graph.mirror("cfg", "5", "guidance")

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
            "7",
            "EmptySD3LatentImage",
            {"batch_size": BATCH_SIZE},
            title="Empty SD3 Latent Image",
        )
        graph.bind("width", "7", "width", width)
        graph.bind("height", "7", "height", height)
        denoise = T2I_DENOISE

    sampler = graph.add_node("8", "KSamplerSelect", title="KSamplerSelect")
    graph.bind("sampler_name", "8", "sampler_name", pick(params.sampler_name, sampler_name))

    sigmas = graph.add_node("9", "BasicScheduler", {"model": model}, title="BasicScheduler")
    graph.bind("scheduler", "9", "scheduler", pick(params.scheduler, scheduler))
    graph.bind("steps", "9", "steps", pick(params.steps, steps))
    graph.bind("denoise", "9", "denoise", denoise)

    noise = graph.add_node("13", "RandomNoise", title="RandomNoise")
    graph.bind("seed", "13", "noise_seed", resolve_seed(params.seed))

    guider = graph.add_node(
        "14",
        "BasicGuider",
        {"model": model, "conditioning": guided},
        title="BasicGuider",
    )

    graph.add_node(
        "10",
        "SamplerCustomAdvanced",
        {
            "noise": noise,
            "guider": guider,
            "sampler": sampler,
            "sigmas": sigmas,
            "latent_image": latent,
        },
        title="SamplerCustomAdvanced",
    )
    graph.add_node("11", "VAEDecode", {"samples": ref("10"), "vae": vae}, title="VAE Decode")
    graph.add_node(
        "12",
        "SaveImage",
        {"filename_prefix": context.filename_prefix, "images": ref("11")},
        title="Save Image",
    )
    graph.set_output("images", "12")
    return graph.validate()
