"""
Color quantization methods for reducing a pixel stream to a bounded palette.

Every quantizer takes the (N, 4) RGBA sample stream and a capacity and
returns at most `capacity` RGB colors in a deterministic order. NeuQuant is
the default; median cut (Pillow) and k-means (scikit-learn) can be swapped in
without touching the later pipeline stages.
"""

import numpy as np
from loguru import logger
from PIL import Image
from scipy.spatial import cKDTree
from sklearn.cluster import KMeans

from neuquant import NeuQuant


class Quantizer:
    """Base class: reduce an unbounded sample stream to a bounded palette."""

    name = ''

    def quantize(self, samples: np.ndarray, capacity: int) -> np.ndarray:
        """
        Reduce samples to a palette.

        Args:
            samples: (N, 4) uint8 RGBA samples
            capacity: Maximum number of palette colors

        Returns:
            (K, 3) uint8 RGB palette with K <= capacity
        """
        raise NotImplementedError


class NeuQuantQuantizer(Quantizer):
    """Competitive-learning network. Always returns exactly `capacity` colors."""

    name = 'neuquant'

    def __init__(self, sample_factor: int = 10):
        self.sample_factor = sample_factor

    def quantize(self, samples: np.ndarray, capacity: int) -> np.ndarray:
        network = NeuQuant(samples, colors=capacity, sample_factor=self.sample_factor)
        return network.color_map_rgb()


class MedianCutQuantizer(Quantizer):
    """Pillow's median cut over the samples laid out as a one-row strip."""

    name = 'median-cut'

    def quantize(self, samples: np.ndarray, capacity: int) -> np.ndarray:
        rgb = np.ascontiguousarray(samples[:, :3]).reshape(1, -1, 3)
        strip = Image.fromarray(rgb)
        quantized = strip.quantize(colors=capacity, method=Image.Quantize.MEDIANCUT)

        palette_data = quantized.getpalette() or []
        palette = np.array(palette_data, dtype=np.uint8).reshape(-1, 3)

        # Keep only the palette entries the strip actually uses, in index order
        used = np.unique(np.asarray(quantized))
        return palette[used]


class KMeansQuantizer(Quantizer):
    """K-means in RGB space with a fixed seed."""

    name = 'kmeans'

    def __init__(self, random_state: int = 42, n_init: int = 10):
        self.random_state = random_state
        self.n_init = n_init

    def quantize(self, samples: np.ndarray, capacity: int) -> np.ndarray:
        pixels = samples[:, :3].astype(np.float64)
        distinct = len(np.unique(samples[:, :3], axis=0))
        n_clusters = min(capacity, distinct)

        kmeans = KMeans(n_clusters=n_clusters, random_state=self.random_state, n_init=self.n_init)
        kmeans.fit(pixels)

        return np.clip(np.round(kmeans.cluster_centers_), 0, 255).astype(np.uint8)


QUANTIZERS = {
    cls.name: cls
    for cls in (NeuQuantQuantizer, MedianCutQuantizer, KMeansQuantizer)
}


def get_quantizer(name: str, **options) -> Quantizer:
    """Instantiate a registered quantizer by name."""
    try:
        cls = QUANTIZERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown quantizer {name!r}, expected one of {sorted(QUANTIZERS)}"
        ) from None
    return cls(**options)


def assign_to_palette(samples: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """
    Map every sample to its nearest palette color (Euclidean RGB distance).

    Args:
        samples: (N, 4) or (N, 3) uint8 samples
        palette: (K, 3) uint8 palette

    Returns:
        (N, 3) uint8 array of palette colors, one per sample
    """
    tree = cKDTree(palette.astype(np.float64))
    _, indices = tree.query(samples[:, :3].astype(np.float64))
    logger.debug(f"Assigned {len(samples)} samples to a {len(palette)}-color palette")
    return palette[indices]
