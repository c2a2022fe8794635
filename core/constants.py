from __future__ import annotations

PROVIDER_ID = "comfyui"

FLUX_FILENAME_PREFIXES = {
    "DEV": "LobeChat/%year%-%month%-%day%/FLUX_Dev",
    "KONTEXT": "LobeChat/%year%-%month%-%day%/FLUX_Kontext",
    "KREA": "LobeChat/%year%-%month%-%day%/FLUX_Krea",
    "SCHNELL": "LobeChat/%year%-%month%-%day%/FLUX_Schnell",
}

SD_FILENAME_PREFIXES = {
    "CUSTOM": "LobeChat/%year%-%month%-%day%/CustomSD",
    "SD15": "LobeChat/%year%-%month%-%day%/SD15",
    "SD35": "LobeChat/%year%-%month%-%day%/SD35",
    "SDXL": "LobeChat/%year%-%month%-%day%/SDXL",
}

DEFAULT_IMAGE_SIZE = 1024
BATCH_SIZE = 1
T2I_DENOISE = 1.0
I2I_DENOISE = 0.75
FLUX_MAX_SHIFT = 1.15
FLUX_BASE_SHIFT = 0.5
SD3_SHIFT = 3.0

# (steps, cfg, sampler, scheduler) per workflow family
FLUX_DEV_DEFAULTS = (20, 3.5, "euler", "simple")
FLUX_SCHNELL_DEFAULTS = (4, 1.0, "euler", "simple")
FLUX_KONTEXT_DEFAULTS = (28, 2.5, "dpmpp_2m", "karras")
SD35_DEFAULTS = (28, 4.5, "euler", "sgm_uniform")
SIMPLE_SD_DEFAULTS = (20, 7.0, "euler", "normal")

MAX_INPUT_IMAGE_BYTES = 30 * 1024 * 1024

DEFAULT_NEGATIVE_PROMPT = (
    "worst quality, normal quality, low quality, low res, blurry, distortion, text, "
    "watermark, logo, banner, extra digits, cropped, jpeg artifacts, signature, username, "
    "error, sketch, duplicate, ugly, monochrome, horror, geometry, mutation, disgusting, "
    "bad anatomy, bad proportions, bad quality, deformed, disconnected limbs, out of frame, "
    "out of focus, dehydrated, disfigured, extra arms, extra limbs, extra hands, "
    "fused fingers, gross proportions, long neck, jpeg, malformed limbs, mutated, "
    "mutated hands, mutated limbs, missing arms, missing fingers, picture frame, "
    "poorly drawn hands, poorly drawn face, collage, pixel, pixelated, grainy, "
    "color aberration, amputee, autograph, bad illustration, beyond the borders, "
    "blank background, body out of frame, boring background, branding, cut off, "
    "dismembered, disproportioned, distorted, draft, duplicated features, extra fingers, "
    "extra legs, fault, flaw, grains, hazy, identifying mark, improper scale, "
    "incorrect physiology, incorrect ratio, indistinct, kitsch, low resolution, macabre, "
    "malformed, mark, misshapen, missing hands, missing legs, mistake, morbid, mutilated, "
    "off-screen, outside the picture, poorly drawn feet, printed words, render, repellent, "
    "replicate, reproduce, revolting dimensions, script, shortened, sign, split image, "
    "squint, storyboard, tiling, trimmed, unfocused, unattractive, unnatural pose, "
    "unreal engine, unsightly, written language"
)

CUSTOM_SD_MODEL_FILENAME = "custom_sd_lobe.safetensors"
CUSTOM_SD_VAE_FILENAME = "custom_sd_vae_lobe.safetensors"
CUSTOM_SD_MODEL_IDS = frozenset({"stable-diffusion-custom", "stable-diffusion-custom-refiner"})

# Loader nodes whose file inputs list the components the server can see.
COMPONENT_NODE_MAPPINGS: dict[str, tuple[tuple[str, str], ...]] = {
    "clip": (
        ("CLIPLoader", "clip_name"),
        ("DualCLIPLoader", "clip_name1"),
        ("DualCLIPLoader", "clip_name2"),
        ("TripleCLIPLoader", "clip_name1"),
        ("TripleCLIPLoader", "clip_name2"),
        ("TripleCLIPLoader", "clip_name3"),
    ),
    "vae": (("VAELoader", "vae_name"),),
}
COMPONENT_NODE_MAPPINGS["t5"] = COMPONENT_NODE_MAPPINGS["clip"]

CHECKPOINT_LOADERS = (
    ("CheckpointLoaderSimple", "ckpt_name"),
    ("UNETLoader", "unet_name"),
)

STYLE_KEYWORDS = {
    "artists": (
        "by greg rutkowski",
        "by artgerm",
        "trending on artstation",
        "concept art",
        "illustration",
        "artwork",
        "painting",
    ),
    "art_styles": (
        "photorealistic",
        "photo realistic",
        "realistic",
        "anime",
        "cartoon",
        "oil painting",
        "watercolor",
        "sketch",
        "digital art",
        "3d render",
        "pixel art",
        "manga",
        "cinematic",
    ),
    "lighting": (
        "dramatic lighting",
        "soft lighting",
        "studio lighting",
        "golden hour",
        "neon lights",
        "rim lighting",
        "volumetric lighting",
        "natural lighting",
        "warm lighting",
        "cold lighting",
    ),
    "photography": (
        "depth of field",
        "bokeh",
        "motion blur",
        "film grain",
        "macro",
        "wide angle",
        "telephoto",
        "portrait",
        "landscape",
        "close-up",
        "dof",
        "35mm photograph",
        "professional photograph",
    ),
    "quality": (
        "high quality",
        "best quality",
        "4k",
        "8k",
        "ultra detailed",
        "highly detailed",
        "masterpiece",
        "professional",
        "sharp focus",
        "detailed",
        "intricate",
        "extremely detailed",
    ),
    "rendering": (
        "octane render",
        "unreal engine",
        "ray tracing",
        "cycles render",
        "global illumination",
        "subsurface scattering",
        "bloom",
        "lens flare",
    ),
}
