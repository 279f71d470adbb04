"""
Unit tests for color space conversion and CIEDE2000.
"""

import numpy as np
import pytest

from color_space import delta_e_2000, lab_to_rgb, rgb_to_lab


class TestRgbToLab:
    """Test sRGB to LAB conversion"""

    def test_black_and_white(self):
        """Black maps to L=0 and white to L=100, both neutral"""
        lab = rgb_to_lab(np.array([[0, 0, 0], [255, 255, 255]]))
        np.testing.assert_allclose(lab[0], [0, 0, 0], atol=1e-6)
        np.testing.assert_allclose(lab[1], [100, 0, 0], atol=1e-2)

    def test_pure_red(self):
        """sRGB red has the well-known D65 LAB coordinates"""
        lab = rgb_to_lab(np.array([255, 0, 0]))
        np.testing.assert_allclose(lab[0], [53.24, 80.09, 67.20], atol=0.05)

    def test_gray_is_neutral(self):
        """Equal channels have no chroma"""
        lab = rgb_to_lab(np.array([[128, 128, 128], [10, 10, 10]]))
        np.testing.assert_allclose(lab[:, 1:], 0, atol=1e-2)


class TestLabToRgb:
    """Test LAB to sRGB conversion"""

    def test_round_trip_is_exact(self):
        """Every 8-bit color on a coarse grid survives RGB → LAB → RGB"""
        levels = np.append(np.arange(0, 256, 5), 255)
        grid = np.stack(np.meshgrid(levels, levels, levels), axis=-1).reshape(-1, 3)
        rgb = grid.astype(np.uint8)

        np.testing.assert_array_equal(lab_to_rgb(rgb_to_lab(rgb)), rgb)

    def test_out_of_gamut_is_clamped(self):
        """LAB values outside sRGB clamp to 0-255"""
        rgb = lab_to_rgb(np.array([[100, 120, -120], [0, -80, 80]]))
        assert rgb.dtype == np.uint8
        assert rgb.min() >= 0 and rgb.max() <= 255

    def test_single_color(self):
        """A 1-D LAB triple converts to a single row"""
        assert lab_to_rgb(np.array([50.0, 0.0, 0.0])).shape == (1, 3)


class TestDeltaE2000:
    """Test CIEDE2000 against Sharma, Wu & Dalal (2005) reference pairs"""

    @pytest.mark.parametrize("lab1, lab2, expected", [
        ((50.0000, 2.6772, -79.7751), (50.0000, 0.0000, -82.7485), 2.0425),
        ((50.0000, 0.0000, 0.0000), (50.0000, -1.0000, 2.0000), 2.3669),
        ((50.0000, 2.5000, 0.0000), (73.0000, 25.0000, -18.0000), 27.1492),
        ((60.2574, -34.0099, 36.2677), (60.4626, -34.1751, 39.4387), 1.2644),
    ])
    def test_reference_pairs(self, lab1, lab2, expected):
        assert delta_e_2000(lab1, lab2)[0] == pytest.approx(expected, abs=1e-3)

    def test_symmetric(self):
        a = np.array([50.0, 2.5, 0.0])
        b = np.array([61.0, -5.0, 29.0])
        assert delta_e_2000(a, b)[0] == pytest.approx(delta_e_2000(b, a)[0])

    def test_identical_colors(self):
        lab = np.array([[40.0, 10.0, -20.0], [70.0, 0.0, 0.0]])
        np.testing.assert_allclose(delta_e_2000(lab, lab), 0, atol=1e-9)

    def test_one_against_many(self):
        """A single color broadcasts against a list of colors"""
        palette = np.array([[50.0, 0, 0], [60.0, 0, 0], [50.0, 20, 0]])
        distances = delta_e_2000(np.array([50.0, 0, 0]), palette)
        assert distances.shape == (3,)
        assert distances[0] == pytest.approx(0)
        assert distances[1] > 0 and distances[2] > 0

    def test_lightness_only_difference(self):
        """Neutral colors differ only by the lightness term"""
        # L̄ = 50 makes S_L exactly 1
        assert delta_e_2000([45.0, 0, 0], [55.0, 0, 0])[0] == pytest.approx(10.0)
