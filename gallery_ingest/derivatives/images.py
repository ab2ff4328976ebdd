import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import blurhash
from PIL import Image, ImageFile, UnidentifiedImageError

from .. import config
from ..exceptions import DerivativeError

# Decode what we can from truncated files instead of failing outright
ImageFile.LOAD_TRUNCATED_IMAGES = True


@dataclass
class ImageInfo:
    width: int
    height: int
    format: Optional[str]
    mime_type: str
    file_size: int


@dataclass
class Thumbnail:
    data: bytes
    width: int
    height: int


def approximate_aspect_ratio(width: int, height: int) -> float:
    """
    Snaps width/height to the first common ratio within tolerance,
    otherwise rounds to 2 decimals.
    """
    if not width or not height:
        return 1.0
    raw = width / height
    for ratio, _label in config.COMMON_ASPECT_RATIOS:
        if abs(raw - ratio) <= config.ASPECT_RATIO_TOLERANCE:
            return ratio
    return round(raw, 2)


def _open(path: Path) -> Image.Image:
    try:
        return Image.open(path)
    except (UnidentifiedImageError, OSError) as e:
        raise DerivativeError(f"Cannot decode {path}: {e}") from e


def _to_rgb(img: Image.Image) -> Image.Image:
    """
    Forces any source mode (CMYK, palette, 16-bit, alpha) to 8-bit RGB.
    Transparent areas are flattened onto white.
    """
    if img.mode == 'RGB':
        return img
    if img.mode in ('RGBA', 'LA', 'PA') or (img.mode == 'P' and 'transparency' in img.info):
        rgba = img.convert('RGBA')
        background = Image.new('RGB', rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel('A'))
        return background
    if img.mode.startswith('I;16') or img.mode in ('I', 'F'):
        # Scale 16/32-bit greyscale down to 8 bits before widening to RGB
        return img.convert('I').point(lambda v: v * (1 / 256)).convert('L').convert('RGB')
    return img.convert('RGB')


def probe_image(path: Path) -> ImageInfo:
    """Original dimensions, format and size, without a full decode."""
    path = Path(path)
    with _open(path) as img:
        width, height = img.size
        fmt = img.format
    mime = Image.MIME.get(fmt or '', 'image/jpeg')
    return ImageInfo(width=width, height=height, format=fmt, mime_type=mime,
                     file_size=path.stat().st_size)


def create_thumbnail(path: Path,
                     output_path: Path,
                     width: int = config.THUMBNAIL_WIDTH,
                     quality: int = config.THUMBNAIL_QUALITY) -> Thumbnail:
    """
    Resizes to `width` (downscale only, aspect preserved), encodes as JPEG and
    writes the bytes to output_path.
    """
    try:
        with _open(path) as src:
            img = _to_rgb(src)
            if img.width > width:
                new_height = max(1, round(img.height * width / img.width))
                img = img.resize((width, new_height), Image.LANCZOS)

            buf = io.BytesIO()
            img.save(buf, format='JPEG', quality=quality)
            size = img.size
    except OSError as e:
        raise DerivativeError(f"Thumbnail generation failed for {path}: {e}") from e

    data = buf.getvalue()
    Path(output_path).write_bytes(data)
    logging.debug(f"Thumbnail {output_path.name}: {size[0]}x{size[1]}, {len(data)} bytes")
    return Thumbnail(data=data, width=size[0], height=size[1])


def generate_placeholder(path: Path,
                         components_x: int = config.BLURHASH_COMPONENTS_X,
                         components_y: int = config.BLURHASH_COMPONENTS_Y) -> str:
    """
    Blurhash of the image: forced to RGB, fitted inside a small grid, then
    encoded with components_x * components_y frequency components.
    """
    try:
        with _open(path) as src:
            img = _to_rgb(src)
            img.thumbnail(config.PLACEHOLDER_GRID)
            w, h = img.size
            px = img.load()
            rows = [[px[x, y] for x in range(w)] for y in range(h)]
    except OSError as e:
        raise DerivativeError(f"Placeholder generation failed for {path}: {e}") from e

    return blurhash.encode(rows, components_x=components_x, components_y=components_y)


class DerivativeGenerator:
    """Thumbnail + placeholder generation with run-level settings."""

    def __init__(self,
                 thumbnail_width: int = config.THUMBNAIL_WIDTH,
                 quality: int = config.THUMBNAIL_QUALITY,
                 components_x: int = config.BLURHASH_COMPONENTS_X,
                 components_y: int = config.BLURHASH_COMPONENTS_Y):
        self.thumbnail_width = thumbnail_width
        self.quality = quality
        self.components_x = components_x
        self.components_y = components_y

    def probe(self, path: Path) -> ImageInfo:
        return probe_image(path)

    def thumbnail(self, path: Path, output_path: Path) -> Thumbnail:
        return create_thumbnail(path, output_path, self.thumbnail_width, self.quality)

    def placeholder(self, path: Path) -> str:
        return generate_placeholder(path, self.components_x, self.components_y)
