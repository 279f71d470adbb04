"""
NeuQuant neural-net color quantization.

A self-organising Kohonen network after Anthony Dekker (1994). Neurons start
on the gray diagonal and are pulled toward the RGBA samples they win, with a
learning rate and neighbourhood radius that decay over the training cycles.
A frequency-sensitive bias keeps rarely winning neurons in play so that the
trained network spreads across the whole sample population.

Designed for networks of 64-256 colors; the learning schedule is not tuned
outside that range.
"""

import numpy as np
from loguru import logger


CHANNELS = 4  # RGBA
NUM_CYCLES = 100  # learning cycles over the sampled pixels

# Learning rate: starts at 1.0, biased by 10 bits
ALPHA_BIAS_SHIFT = 10
INIT_ALPHA = 1 << ALPHA_BIAS_SHIFT

# Radius: starts at netsize / 8, biased by 6 bits, shrinks by 1/30 per cycle
RADIUS_BIAS_SHIFT = 6
RADIUS_BIAS = 1 << RADIUS_BIAS_SHIFT
RADIUS_DECREASE = 30

# Frequency/bias contest
GAMMA = 1024.0
BETA = 1.0 / GAMMA
BETA_GAMMA = BETA * GAMMA

# Four primes near 500; sampling steps by the first one that does not divide
# the sample count so every sample is reachable.
PRIMES = (499, 491, 487, 503)

# Neurons below this index start with a ramped alpha instead of opaque
TRANSPARENT_NEURONS = 16


class NeuQuant:
    """Trained NeuQuant network over a stream of RGBA samples."""

    def __init__(self, samples: np.ndarray, colors: int = 256, sample_factor: int = 10):
        """
        Build and train the network.

        Args:
            samples: (N, 4) uint8 RGBA samples
            colors: Network size, the number of colors in the palette
            sample_factor: Learn from every Nth sample (1 = all samples, 30 = fastest)
        """
        if colors < 1:
            raise ValueError(f"Network needs at least one neuron, got {colors}")
        if sample_factor < 1:
            raise ValueError(f"Sample factor must be positive, got {sample_factor}")

        self.netsize = colors
        self.sample_factor = sample_factor

        index = np.arange(colors, dtype=np.float64)
        self.network = np.empty((colors, CHANNELS), dtype=np.float64)
        self.network[:, :3] = (index * 256.0 / colors)[:, None]
        self.network[:, 3] = np.where(index < TRANSPARENT_NEURONS, index * 16.0, 255.0)

        self.freq = np.full(colors, 1.0 / colors)
        self.bias = np.zeros(colors)

        samples = np.asarray(samples, dtype=np.uint8).reshape(-1, CHANNELS)
        self._learn(samples)
        self.colormap = self._build_colormap()

    def _contest(self, pixel: np.ndarray) -> int:
        """
        Find the winning neuron for a sample.

        Updates the frequency of the closest neuron and returns the position
        of the best neuron after bias (distance minus bias). Frequently
        winning neurons carry a negative bias.
        """
        dist = np.abs(self.network - pixel).sum(axis=1)
        best = int(np.argmin(dist))
        best_biased = int(np.argmin(dist - self.bias))

        beta_freq = BETA * self.freq
        self.freq -= beta_freq
        self.bias += beta_freq * GAMMA
        self.freq[best] += BETA
        self.bias[best] -= BETA_GAMMA

        return best_biased

    def _alter_single(self, alpha: float, i: int, pixel: np.ndarray) -> None:
        """Move neuron i toward the sample by factor alpha."""
        self.network[i] -= alpha * (self.network[i] - pixel)

    def _alter_neighbours(self, alpha: float, radius: int, i: int, pixel: np.ndarray) -> None:
        """Move the neighbours of neuron i toward the sample, falling off with distance."""
        lo = max(i - radius, -1)
        hi = min(i + radius, self.netsize)

        neighbours = np.concatenate([np.arange(i + 1, hi), np.arange(i - 1, lo, -1)])
        if neighbours.size == 0:
            return

        offsets = np.abs(neighbours - i).astype(np.float64)
        rad_sq = float(radius * radius)
        rates = alpha * (rad_sq - offsets**2) / rad_sq

        self.network[neighbours] -= rates[:, None] * (self.network[neighbours] - pixel)

    def _learn(self, samples: np.ndarray) -> None:
        """Main learning loop."""
        length = len(samples)
        # Small streams are still visited in full, up to one step per cycle
        sample_count = max(length // self.sample_factor, min(length, NUM_CYCLES))
        alpha_decrease = 30 + (self.sample_factor - 1) // 3
        delta = max(sample_count // NUM_CYCLES, 1)

        alpha = INIT_ALPHA
        bias_radius = (self.netsize >> 3) * RADIUS_BIAS
        radius = bias_radius >> RADIUS_BIAS_SHIFT
        if radius <= 1:
            radius = 0

        step = next((p for p in PRIMES if length % p != 0), PRIMES[-1])

        logger.debug(
            f"NeuQuant learning: {sample_count} of {length} samples, "
            f"netsize={self.netsize}, initial radius={radius}"
        )

        pos = 0
        for i in range(1, sample_count + 1):
            pixel = samples[pos].astype(np.float64)

            j = self._contest(pixel)
            rate = alpha / INIT_ALPHA
            self._alter_single(rate, j, pixel)
            if radius:
                self._alter_neighbours(rate, radius, j, pixel)

            pos = (pos + step) % length

            if i % delta == 0:
                alpha -= alpha // alpha_decrease
                bias_radius -= bias_radius // RADIUS_DECREASE
                radius = bias_radius >> RADIUS_BIAS_SHIFT
                if radius <= 1:
                    radius = 0

    def _build_colormap(self) -> np.ndarray:
        """Round the network to 8-bit RGBA, ordered by green channel."""
        colormap = np.clip(np.round(self.network), 0, 255).astype(np.uint8)
        order = np.argsort(colormap[:, 1], kind='stable')
        return colormap[order]

    def color_map_rgb(self) -> np.ndarray:
        """Return the palette as a (netsize, 3) uint8 RGB array."""
        return self.colormap[:, :3].copy()
