#!/usr/bin/env python3
"""
Distil an image down to a ranked, perceptually deduplicated color palette.

Six stages, strictly left to right:
Sampling → Quantization → Histogram → LAB Conversion → Merge → Export
"""

import math
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
from loguru import logger
from PIL import Image

from color_space import rgb_to_lab, lab_to_rgb, delta_e_2000
from quantizers import QUANTIZERS, NeuQuantQuantizer, Quantizer, assign_to_palette, get_quantizer


# =============================================================================
# Constants
# =============================================================================

MAX_SAMPLE_COUNT = 1000  # Pixel budget for sampling
MIN_BLACK = 8  # Pixels with every channel below this are near-black
MAX_WHITE = 247  # Pixels with every channel above this are near-white
NQ_PALETTE_SIZE = 256  # Quantizer capacity
NQ_SAMPLE_FACTOR = 10  # NeuQuant learns from every 10th sample
MIN_DISTANCE_FOR_UNIQUENESS = 10.0  # ΔE2000 merge threshold

MERGE_MODES = ('first', 'nearest')

SUPPORTED_FORMATS = frozenset({'png', 'jpeg'})
HEADER_SIZE = 16

# (magic bytes, format name), checked in order
IMAGE_SIGNATURES = (
    (b'\x89PNG\r\n\x1a\n', 'png'),
    (b'\xff\xd8\xff', 'jpeg'),
    (b'GIF87a', 'gif'),
    (b'GIF89a', 'gif'),
    (b'BM', 'bmp'),
    (b'II*\x00', 'tiff'),
    (b'MM\x00*', 'tiff'),
    (b'\x00\x00\x01\x00', 'ico'),
)


# =============================================================================
# Errors
# =============================================================================

class DistilError(Exception):
    """Base class for every failure of a distillation run."""


class DecodeError(DistilError):
    """The image could not be read or parsed."""

    def __init__(self, path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to decode {path}: {cause}")


class UnsupportedFormat(DistilError):
    """The image isn't a JPEG or a PNG."""

    def __init__(self, path, format: Optional[str] = None):
        self.path = path
        self.format = format
        detected = format or 'unknown format'
        super().__init__(f"{path} isn't a JPEG or a PNG ({detected})")


class Uninteresting(DistilError):
    """
    No interesting colors remain after filtering.

    Pixels are interesting when fully opaque and neither near-black nor
    near-white. A legitimate outcome for blank images, not a decode failure.
    """

    def __init__(self, message: str = "The image does not contain any interesting colours"):
        super().__init__(message)


class SwatchExportError(DistilError):
    """A palette swatch could not be written."""

    def __init__(self, path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write swatch {path}: {cause}")


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class DistilConfig:
    """Tunables for one pipeline run."""
    max_sample_count: int = MAX_SAMPLE_COUNT
    min_black: int = MIN_BLACK
    max_white: int = MAX_WHITE
    quantizer: str = 'neuquant'
    capacity: int = NQ_PALETTE_SIZE
    sample_factor: int = NQ_SAMPLE_FACTOR
    min_distance: float = MIN_DISTANCE_FOR_UNIQUENESS
    merge_mode: str = 'first'

    def __post_init__(self):
        if self.max_sample_count < 1:
            raise ValueError(f"max_sample_count must be positive, got {self.max_sample_count}")
        for name in ('min_black', 'max_white'):
            value = getattr(self, name)
            if not 0 <= value <= 255:
                raise ValueError(f"{name} must be within 0-255, got {value}")
        if not 1 <= self.capacity <= 256:
            raise ValueError(f"capacity must be within 1-256, got {self.capacity}")
        if not 1 <= self.sample_factor <= 30:
            raise ValueError(f"sample_factor must be within 1-30, got {self.sample_factor}")
        if self.min_distance <= 0:
            raise ValueError(f"min_distance must be positive, got {self.min_distance}")
        if self.quantizer not in QUANTIZERS:
            raise ValueError(f"Unknown quantizer {self.quantizer!r}, expected one of {sorted(QUANTIZERS)}")
        if self.merge_mode not in MERGE_MODES:
            raise ValueError(f"Unknown merge mode {self.merge_mode!r}, expected one of {MERGE_MODES}")


def make_quantizer(config: DistilConfig) -> Quantizer:
    """Build the quantizer named by the config."""
    if config.quantizer == NeuQuantQuantizer.name:
        return NeuQuantQuantizer(sample_factor=config.sample_factor)
    return get_quantizer(config.quantizer)


# =============================================================================
# Result
# =============================================================================

@dataclass(frozen=True)
class DistilResult:
    """
    A distilled image.

    `colors` holds the RGB values the image was distilled into, from most
    to least frequent. `counts` holds, at the same positions, how many
    sampled pixels were distilled into each color; use them to weight a
    color's importance, e.g. when combining several palettes.
    """
    colors: tuple
    counts: tuple

    def __len__(self) -> int:
        return len(self.colors)

    @property
    def color_count(self) -> dict:
        """Map of color index to pixel count."""
        return dict(enumerate(self.counts))

    @property
    def total(self) -> int:
        return sum(self.counts)

    @property
    def hex_colors(self) -> tuple:
        return tuple(f"#{r:02x}{g:02x}{b:02x}" for r, g, b in self.colors)


# =============================================================================
# Loading
# =============================================================================

def guess_format(header: bytes) -> Optional[str]:
    """Identify an image container from its first bytes."""
    if header[:4] == b'RIFF' and header[8:12] == b'WEBP':
        return 'webp'
    for magic, name in IMAGE_SIGNATURES:
        if header.startswith(magic):
            return name
    return None


def load_image(path: Union[str, Path]) -> Image.Image:
    """
    Sniff and decode an image file.

    Raises:
        UnsupportedFormat: If the file isn't a PNG or JPEG (checked before decoding)
        DecodeError: If the file can't be read or Pillow fails to decode it
    """
    path = Path(path)
    try:
        with open(path, 'rb') as f:
            header = f.read(HEADER_SIZE)
    except OSError as e:
        raise DecodeError(path, e) from e

    image_format = guess_format(header)
    if image_format not in SUPPORTED_FORMATS:
        raise UnsupportedFormat(path, image_format)

    try:
        with Image.open(path) as img:
            img.load()
    except (OSError, SyntaxError, ValueError, EOFError, Image.DecompressionBombError) as e:
        raise DecodeError(path, e) from e

    logger.debug(f"Loaded {path.name}: {image_format} {img.size[0]}x{img.size[1]} {img.mode}")
    return img


# =============================================================================
# Stage 1: Sampling
# =============================================================================

def scale_image(image: Image.Image, max_sample_count: int = MAX_SAMPLE_COUNT) -> Image.Image:
    """
    Proportionally scale an image so its pixel count does not exceed the budget.

    Images already within budget are returned unchanged.
    """
    width, height = image.size
    if width * height <= max_sample_count:
        return image

    ratio = width / height
    scaled_width = max(1, min(round(math.sqrt(max_sample_count * ratio)), max_sample_count))
    scaled_height = max(1, min(round(scaled_width / ratio), max_sample_count // scaled_width))

    logger.debug(f"Scaling {width}x{height} to {scaled_width}x{scaled_height}")
    return image.resize((scaled_width, scaled_height), Image.Resampling.BOX)


def sample_pixels(image: Image.Image, min_black: int = MIN_BLACK,
                  max_white: int = MAX_WHITE) -> np.ndarray:
    """
    Collect the interesting pixels of an image.

    Drops pixels that are not fully opaque, near-black (every channel below
    min_black) or near-white (every channel above max_white).

    Returns:
        (N, 4) uint8 RGBA samples in row-major order

    Raises:
        Uninteresting: If no pixel survives filtering
    """
    rgba = np.asarray(image.convert('RGBA')).reshape(-1, 4)
    rgb = rgba[:, :3]

    opaque = rgba[:, 3] == 255
    black = np.all(rgb < min_black, axis=1)
    white = np.all(rgb > max_white, axis=1)

    samples = rgba[opaque & ~black & ~white]
    logger.debug(f"Sampling: kept {len(samples)}/{len(rgba)} pixels")

    if len(samples) == 0:
        raise Uninteresting()

    return samples


# =============================================================================
# Stage 2: Quantization (see quantizers.py)
# Stage 3: Histogram
# =============================================================================

def build_histogram(assigned: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Count each distinct quantized color.

    Args:
        assigned: (N, 3) uint8 stream of quantized colors

    Returns:
        Tuple of (colors (M, 3) uint8, counts (M,) int64), sorted by count
        descending. Equal counts keep the order in which the colors first
        appear in the stream.
    """
    colors, first_seen, counts = np.unique(
        assigned, axis=0, return_index=True, return_counts=True
    )
    order = np.lexsort((first_seen, -counts))
    logger.debug(f"Histogram: {len(colors)} distinct colors from {len(assigned)} samples")
    return colors[order], counts[order]


# =============================================================================
# Stage 4: LAB Conversion
# =============================================================================

def to_lab(colors: np.ndarray, counts: np.ndarray) -> np.ndarray:
    """Return an (n, 4) array with columns [L, a, b, count]."""
    return np.column_stack([rgb_to_lab(colors), counts.astype(np.float64)])


# =============================================================================
# Stage 5: Merge
# =============================================================================

def merge_similar_colors(palette: np.ndarray,
                         min_distance: float = MIN_DISTANCE_FOR_UNIQUENESS,
                         mode: str = 'first') -> np.ndarray:
    """
    Greedily fold perceptually similar colors into each other.

    Colors are visited in the given order (most frequent first). Each one is
    compared by ΔE2000 against the current position of every color kept so
    far. In 'first' mode it is folded into the first kept color closer than
    min_distance; in 'nearest' mode into the closest one. Folding moves the
    kept color to the count-weighted mean of both and adds the counts.
    Colors with no close match are kept as new entries. Single pass: kept
    colors are never compared with each other again, so later merges can
    leave two kept colors closer than min_distance.

    Args:
        palette: Array of shape (n, 4) with columns [L, a, b, count]
        min_distance: ΔE2000 below which two colors are considered the same
        mode: 'first' or 'nearest'

    Returns:
        Array of shape (k, 4) with columns [L, a, b, count], sorted by count
        descending (stable).
    """
    if mode not in MERGE_MODES:
        raise ValueError(f"Unknown merge mode {mode!r}, expected one of {MERGE_MODES}")

    merged = np.zeros((len(palette), 4))
    kept = 0

    for color in palette:
        lab, count = color[:3], color[3]

        match = None
        if kept:
            distances = delta_e_2000(lab, merged[:kept, :3])
            close = np.flatnonzero(distances < min_distance)
            if close.size:
                match = close[0] if mode == 'first' else close[np.argmin(distances[close])]

        if match is None:
            merged[kept] = color
            kept += 1
            continue

        target = merged[match]
        total = target[3] + count
        target[:3] = (target[:3] * target[3] + lab * count) / total
        target[3] = total

    merged = merged[:kept]
    logger.debug(f"Merge ({mode}): {len(palette)} → {kept} colors")

    return merged[np.argsort(-merged[:, 3], kind='stable')]


# =============================================================================
# Stage 6: Export
# =============================================================================

def export_palette(palette: np.ndarray) -> DistilResult:
    """Organise the merged palette into a DistilResult, preserving order."""
    rgb = lab_to_rgb(palette[:, :3])
    colors = tuple((int(r), int(g), int(b)) for r, g, b in rgb)
    counts = tuple(int(round(c)) for c in palette[:, 3])
    return DistilResult(colors=colors, counts=counts)


# =============================================================================
# Main Pipeline
# =============================================================================

def distil(image: Union[Image.Image, np.ndarray],
           config: Optional[DistilConfig] = None) -> DistilResult:
    """
    Run the full pipeline on a decoded image.

    Args:
        image: PIL image, or an (H, W, 3) / (H, W, 4) uint8 array
        config: Pipeline tunables, defaults when omitted

    Raises:
        Uninteresting: If the image has no interesting colors
    """
    config = config or DistilConfig()
    if isinstance(image, np.ndarray):
        image = Image.fromarray(image)

    # Stage 1: Sampling
    scaled = scale_image(image, config.max_sample_count)
    samples = sample_pixels(scaled, config.min_black, config.max_white)

    # Stage 2: Quantization
    palette = make_quantizer(config).quantize(samples, config.capacity)
    assigned = assign_to_palette(samples, palette)

    # Stage 3: Histogram
    colors, counts = build_histogram(assigned)

    # Stage 4: LAB Conversion
    lab_palette = to_lab(colors, counts)

    # Stage 5: Merge
    merged = merge_similar_colors(lab_palette, config.min_distance, config.merge_mode)

    # Stage 6: Export
    result = export_palette(merged)

    logger.info(f"Distilled {len(samples)} samples into {len(result)} colors")
    return result


def distil_path(path: Union[str, Path], config: Optional[DistilConfig] = None) -> DistilResult:
    """Load an image file and distil it."""
    return distil(load_image(path), config)


# =============================================================================
# CLI
# =============================================================================

def configure_logging(verbose: bool = False) -> None:
    """Send library logs to stderr at INFO, or DEBUG when verbose."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="{time:HH:mm:ss} | {level} | {message}",
        level='DEBUG' if verbose else 'INFO',
    )


def build_config(args) -> DistilConfig:
    """Translate parsed CLI arguments into a DistilConfig."""
    return DistilConfig(
        max_sample_count=args.max_samples,
        quantizer=args.quantizer,
        capacity=args.capacity,
        min_distance=args.min_distance,
        merge_mode=args.merge_mode,
    )


def add_config_arguments(parser) -> None:
    """Register the pipeline tunables on an argparse parser."""
    parser.add_argument(
        '--quantizer',
        choices=sorted(QUANTIZERS),
        default='neuquant',
        help='Quantization method (default: neuquant)'
    )
    parser.add_argument(
        '--capacity',
        type=int,
        default=NQ_PALETTE_SIZE,
        help=f'Quantizer palette size, 1-256 (default: {NQ_PALETTE_SIZE})'
    )
    parser.add_argument(
        '--max-samples',
        type=int,
        default=MAX_SAMPLE_COUNT,
        help=f'Pixel budget before downscaling (default: {MAX_SAMPLE_COUNT})'
    )
    parser.add_argument(
        '--min-distance',
        type=float,
        default=MIN_DISTANCE_FOR_UNIQUENESS,
        help=f'ΔE2000 merge threshold (default: {MIN_DISTANCE_FOR_UNIQUENESS})'
    )
    parser.add_argument(
        '--merge-mode',
        choices=MERGE_MODES,
        default='first',
        help='Merge into the first close color or the nearest one (default: first)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Log every pipeline stage'
    )


def format_palette(result: DistilResult) -> str:
    """One line per color: hex, rgb, count and share of samples."""
    lines = []
    total = result.total
    for hex_color, rgb, count in zip(result.hex_colors, result.colors, result.counts):
        lines.append(f"{hex_color}  rgb{rgb!s:<16} {count:>6}  {count / total:6.1%}")
    return '\n'.join(lines)


def main(argv: Optional[list] = None) -> int:
    import argparse

    from swatch import SWATCH_COUNT, save_swatch

    parser = argparse.ArgumentParser(
        description='Distil an image into a ranked color palette.'
    )
    parser.add_argument(
        '--input', '-i',
        required=True,
        help='Path to a PNG or JPEG image'
    )
    parser.add_argument(
        '--output', '-o',
        nargs='?',
        const=True,
        default=None,
        help='Write a swatch PNG. Optionally specify path, otherwise auto-names from input.'
    )
    parser.add_argument(
        '--swatches', '-n',
        type=int,
        default=SWATCH_COUNT,
        help=f'Number of colors in the swatch (default: {SWATCH_COUNT})'
    )
    add_config_arguments(parser)

    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    image_path = Path(args.input)

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    try:
        result = distil_path(image_path, config)
    except Uninteresting as e:
        logger.warning(f"{image_path.name}: {e}")
        return 3
    except (DecodeError, UnsupportedFormat) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(format_palette(result))

    if args.output:
        if args.output is True:
            output_path = image_path.with_name(f"{image_path.stem}-palette.png")
        else:
            output_path = Path(args.output)

        try:
            save_swatch(result, output_path, args.swatches)
        except (SwatchExportError, ValueError) as e:
            print(f"Error writing output: {e}", file=sys.stderr)
            return 1
        print(f"\nWrote: {output_path}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
