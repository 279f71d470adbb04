"""
Render a distilled palette as a strip of solid swatches.
"""

from pathlib import Path
from typing import Union

import numpy as np
from loguru import logger
from PIL import Image

from distil import DistilResult, SwatchExportError


SWATCH_SIZE = 80  # Tile edge in pixels
SWATCH_COUNT = 5  # Default number of tiles


def render_swatch(result: DistilResult, count: int = SWATCH_COUNT,
                  size: int = SWATCH_SIZE) -> Image.Image:
    """
    Build a swatch image: one size x size tile per color, left to right.

    The strip holds min(count, len(result)) tiles, most frequent color first.
    """
    if count < 1:
        raise ValueError(f"Swatch needs at least one color, got {count}")
    if len(result) == 0:
        raise ValueError("Cannot render a swatch for an empty palette")

    tiles = min(count, len(result))
    buffer = np.zeros((size, size * tiles, 3), dtype=np.uint8)

    for i, rgb in enumerate(result.colors[:tiles]):
        x_offset = i * size
        buffer[:, x_offset:x_offset + size] = rgb

    return Image.fromarray(buffer)


def save_swatch(result: DistilResult, output_path: Union[str, Path],
                count: int = SWATCH_COUNT, size: int = SWATCH_SIZE) -> Path:
    """
    Render and write a swatch PNG.

    Raises:
        SwatchExportError: If the file can't be written
    """
    output_path = Path(output_path)
    img = render_swatch(result, count, size)

    try:
        img.save(output_path, format='PNG')
    except OSError as e:
        raise SwatchExportError(output_path, e) from e

    logger.info(f"Saved swatch to {output_path}")
    return output_path
