"""
Command-line image generation through a ComfyUI server.

Usage:
    python generate.py MODEL PROMPT [--width 1024] [--height 1024] [--steps N]
                       [--cfg X] [--seed N] [--negative TEXT] [--image URL]

The result (or the structured error) is printed as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from comfyui_provider import ComfyUIProvider
from services.error_handler import ImageGenerationError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate an image with ComfyUI")
    parser.add_argument("model", help="model id, e.g. comfyui/flux-schnell")
    parser.add_argument("prompt")
    parser.add_argument("--negative", dest="negative_prompt")
    parser.add_argument("--width", type=int)
    parser.add_argument("--height", type=int)
    parser.add_argument("--steps", type=int)
    parser.add_argument("--cfg", type=float)
    parser.add_argument("--seed", type=int)
    parser.add_argument("--sampler", dest="sampler_name")
    parser.add_argument("--scheduler")
    parser.add_argument("--strength", type=float)
    parser.add_argument("--image", dest="image_url", help="input image URL for img2img")
    return parser


def payload_from_args(args: argparse.Namespace) -> dict[str, Any]:
    params: dict[str, Any] = {"prompt": args.prompt}
    for name in (
        "negative_prompt",
        "width",
        "height",
        "steps",
        "cfg",
        "seed",
        "sampler_name",
        "scheduler",
        "strength",
        "image_url",
    ):
        value = getattr(args, name)
        if value is not None:
            params[name] = value
    return {"model": args.model, "params": params}


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        provider = ComfyUIProvider()
    except ImageGenerationError as exc:
        print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
        return 1

    try:
        result = await provider.create_image(payload_from_args(args))
    except ImageGenerationError as exc:
        print(json.dumps(exc.to_dict(), indent=2, default=str), file=sys.stderr)
        return 1
    finally:
        await provider.close()

    print(json.dumps(result, indent=2))
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
