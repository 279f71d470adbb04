"""
Unit tests for the NeuQuant network and the pluggable quantizers.
"""

import numpy as np
import pytest

from neuquant import NeuQuant
from quantizers import (
    QUANTIZERS, KMeansQuantizer, MedianCutQuantizer, NeuQuantQuantizer,
    assign_to_palette, get_quantizer,
)


def rgba(colors, repeat=1):
    """Build an (N, 4) opaque sample stream."""
    rows = [(*c, 255) for c in colors] * repeat
    return np.array(rows, dtype=np.uint8)


class TestNeuQuant:
    """Test the competitive-learning network"""

    def test_learns_from_fewer_samples_than_sample_factor(self):
        """A stream shorter than the sample factor is still learned in full"""
        samples = rgba([(220, 20, 20), (220, 20, 20), (200, 200, 200)])
        palette = NeuQuant(samples, colors=256, sample_factor=10).color_map_rgb()

        assert np.any(np.all(palette == (220, 20, 20), axis=1))
        assert np.any(np.all(palette == (200, 200, 200), axis=1))

    def test_palette_size_matches_capacity(self):
        samples = rgba([(200, 30, 30), (30, 200, 30), (30, 30, 200)], repeat=200)
        for colors in (16, 64, 256):
            palette = NeuQuant(samples, colors=colors, sample_factor=1).color_map_rgb()
            assert palette.shape == (colors, 3)
            assert palette.dtype == np.uint8

    def test_learns_repeated_color(self):
        """A single repeated color ends up exactly in the palette"""
        samples = rgba([(200, 30, 30)], repeat=2000)
        palette = NeuQuant(samples, colors=256, sample_factor=1).color_map_rgb()

        assert np.any(np.all(palette == (200, 30, 30), axis=1))

    def test_deterministic(self):
        rng = np.random.default_rng(3)
        samples = np.column_stack([
            rng.integers(0, 256, size=(1000, 3)),
            np.full(1000, 255),
        ]).astype(np.uint8)

        first = NeuQuant(samples, colors=64, sample_factor=1).color_map_rgb()
        second = NeuQuant(samples, colors=64, sample_factor=1).color_map_rgb()
        np.testing.assert_array_equal(first, second)

    def test_ordered_by_green(self):
        rng = np.random.default_rng(5)
        samples = np.column_stack([
            rng.integers(0, 256, size=(500, 3)),
            np.full(500, 255),
        ]).astype(np.uint8)

        palette = NeuQuant(samples, colors=32, sample_factor=1).color_map_rgb()
        assert np.all(np.diff(palette[:, 1].astype(int)) >= 0)

    def test_invalid_arguments(self):
        samples = rgba([(1, 2, 3)])
        with pytest.raises(ValueError):
            NeuQuant(samples, colors=0)
        with pytest.raises(ValueError):
            NeuQuant(samples, sample_factor=0)


class TestQuantizers:
    """Test the quantizer registry and alternative quantizers"""

    def test_registry(self):
        assert set(QUANTIZERS) == {'neuquant', 'median-cut', 'kmeans'}
        assert isinstance(get_quantizer('kmeans'), KMeansQuantizer)
        assert isinstance(get_quantizer('neuquant', sample_factor=3), NeuQuantQuantizer)

    def test_unknown_quantizer(self):
        with pytest.raises(ValueError, match="Unknown quantizer"):
            get_quantizer('octree')

    def test_neuquant_returns_capacity_colors(self):
        samples = rgba([(200, 30, 30), (30, 30, 200)], repeat=50)
        palette = NeuQuantQuantizer().quantize(samples, 128)
        assert palette.shape == (128, 3)

    def test_kmeans_finds_exact_colors(self):
        samples = rgba([(200, 30, 30), (30, 30, 200)], repeat=50)
        palette = KMeansQuantizer().quantize(samples, 256)

        assert {tuple(int(c) for c in row) for row in palette} == {(200, 30, 30), (30, 30, 200)}

    def test_median_cut_stays_close_to_inputs(self):
        colors = [(200, 30, 30), (30, 30, 200), (30, 200, 30)]
        samples = rgba(colors, repeat=40)
        palette = MedianCutQuantizer().quantize(samples, 256)

        assert 1 <= len(palette) <= 256
        for color in colors:
            distances = np.linalg.norm(palette.astype(float) - color, axis=1)
            assert distances.min() <= 2

    def test_median_cut_respects_capacity(self):
        rng = np.random.default_rng(11)
        samples = np.column_stack([
            rng.integers(0, 256, size=(800, 3)),
            np.full(800, 255),
        ]).astype(np.uint8)

        assert len(MedianCutQuantizer().quantize(samples, 8)) <= 8


class TestAssignToPalette:
    """Test nearest-color reassignment"""

    def test_nearest_color(self):
        palette = np.array([[0, 0, 0], [100, 100, 100], [250, 10, 10]], dtype=np.uint8)
        samples = rgba([(90, 95, 110), (240, 0, 0), (5, 5, 5), (100, 100, 100)])

        assigned = assign_to_palette(samples, palette)
        np.testing.assert_array_equal(assigned, [
            [100, 100, 100],
            [250, 10, 10],
            [0, 0, 0],
            [100, 100, 100],
        ])

    def test_every_sample_assigned(self):
        samples = rgba([(10, 20, 30)], repeat=17)
        palette = np.array([[0, 0, 0], [255, 255, 255]], dtype=np.uint8)
        assert assign_to_palette(samples, palette).shape == (17, 3)
