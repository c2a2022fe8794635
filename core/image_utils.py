from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError


@dataclass
class PreparedImage:
    data: bytes
    width: int
    height: int


def prepare_input_image(image_bytes: bytes) -> PreparedImage:
    """
    Decode an input image and return it as PNG bytes along with its size.
    PNG input is passed through untouched.

    Raises ValueError when the bytes are not a readable image.
    """
    try:
        with Image.open(BytesIO(image_bytes)) as image:
            image.load()
            if image.format == "PNG":
                return PreparedImage(image_bytes, image.width, image.height)
            image = ImageOps.exif_transpose(image)
            if image.mode not in ("RGB", "RGBA"):
                image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
            buffer = BytesIO()
            image.save(buffer, format="PNG", optimize=True)
            return PreparedImage(buffer.getvalue(), image.width, image.height)
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Not a readable image: {exc}") from exc

