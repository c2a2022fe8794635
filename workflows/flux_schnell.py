from __future__ import annotations

from core.constants import BATCH_SIZE, DEFAULT_IMAGE_SIZE, FLUX_SCHNELL_DEFAULTS, T2I_DENOISE
from core.graph import WorkflowGraph, ref
from core.models import GenerationParams
from core.prompt_splitter import split_prompt_for_dual_clip
from workflows.common import WorkflowContext, add_flux_loaders, pick, resolve_seed


async def build_flux_schnell_workflow(
    model_file_name: str,
    params: GenerationParams,
    context: WorkflowContext,
) -> WorkflowGraph:
    """FLUX.1 schnell: distilled model, cfg 1 and 4 steps unless overridden."""
    steps, cfg, sampler_name, scheduler = FLUX_SCHNELL_DEFAULTS
    cfg = pick(params.cfg, cfg)
    prompts = split_prompt_for_dual_clip(params.prompt)

    graph = WorkflowGraph()
    clip, unet, vae = await add_flux_loaders(graph, model_file_name, context)

    conditioning = graph.add_node(
        "4",
        "CLIPTextEncodeFlux",
        {"clip": clip, "guidance": cfg},
        title="CLIP Text Encode (Flux)",
    )
    graph.bind("prompt_clip_l", "4", "clip_l", prompts.clip_l_prompt)
    graph.bind("prompt_t5xxl", "4", "t5xxl", prompts.t5xxl_prompt)

    latent = graph.add_node(
        "5",
        "EmptySD3LatentImage",
        {"batch_size": BATCH_SIZE},
        title="Empty SD3 Latent Image",
    )
    graph.bind("width", "5", "width", pick(params.width, DEFAULT_IMAGE_SIZE))
    graph.bind("height", "5", "height", pick(params.height, DEFAULT_IMAGE_SIZE))

    graph.add_node(
        "6",
        "KSampler",
        {
            "model": unet,
            "positive": conditioning,
            "negative": conditioning,
            "latent_image": latent,
            "denoise": T2I_DENOISE,
        },
        title="KSampler",
    )
    graph.bind("cfg", "6", "cfg", cfg)
    graph.bind("steps", "6", "steps", pick(params.steps, steps))
    graph.bind("seed", "6", "seed", resolve_seed(params.seed))
    graph.bind("sampler_name", "6", "sampler_name", pick(params.sampler_name, sampler_name))
    graph.bind("scheduler", "6", "scheduler", pick(params.scheduler, scheduler))

    graph.add_node("7", "VAEDecode", {"samples": ref("6"), "vae": vae}, title="VAE Decode")
    graph.add_node(
        "8",
        "SaveImage",
        {"filename_prefix": context.filename_prefix, "images": ref("7")},
        title="Save Image",
    )
    graph.set_output("images", "8")
    return graph.validate()
