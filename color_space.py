"""
Color space conversions and perceptual color difference.

sRGB <-> CIE Lab (D65 reference white) and the CIEDE2000 difference metric,
vectorised over numpy arrays.
"""

import numpy as np


# D65 reference white
XN, YN, ZN = 0.95047, 1.0, 1.08883

# CIE constants for the Lab nonlinearity
EPSILON = 0.008856
KAPPA = 903.3


def rgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert RGB array (0-255) to LAB color space."""
    rgb = np.asarray(rgb)
    if rgb.ndim == 1:
        rgb = rgb.reshape(1, -1)

    rgb_norm = rgb.astype(np.float64) / 255.0

    # Undo sRGB companding
    mask = rgb_norm > 0.04045
    rgb_linear = np.where(mask, ((rgb_norm + 0.055) / 1.055) ** 2.4, rgb_norm / 12.92)

    # RGB to XYZ matrix
    r, g, b = rgb_linear[:, 0], rgb_linear[:, 1], rgb_linear[:, 2]
    x = r * 0.4124564 + g * 0.3575761 + b * 0.1804375
    y = r * 0.2126729 + g * 0.7151522 + b * 0.0721750
    z = r * 0.0193339 + g * 0.1191920 + b * 0.9503041

    x, y, z = x / XN, y / YN, z / ZN

    fx = np.where(x > EPSILON, x ** (1/3), (KAPPA * x + 16) / 116)
    fy = np.where(y > EPSILON, y ** (1/3), (KAPPA * y + 16) / 116)
    fz = np.where(z > EPSILON, z ** (1/3), (KAPPA * z + 16) / 116)

    L = 116 * fy - 16
    a = 500 * (fx - fy)
    b_val = 200 * (fy - fz)

    return np.column_stack([L, a, b_val])


def lab_to_rgb(lab: np.ndarray) -> np.ndarray:
    """Convert LAB array to RGB (0-255), rounded and clamped per channel."""
    lab = np.asarray(lab, dtype=np.float64)
    if lab.ndim == 1:
        lab = lab.reshape(1, -1)

    L, a, b = lab[:, 0], lab[:, 1], lab[:, 2]

    fy = (L + 16) / 116
    fx = a / 500 + fy
    fz = fy - b / 200

    x = np.where(fx**3 > EPSILON, fx**3, (116 * fx - 16) / KAPPA)
    y = np.where(L > KAPPA * EPSILON, ((L + 16) / 116) ** 3, L / KAPPA)
    z = np.where(fz**3 > EPSILON, fz**3, (116 * fz - 16) / KAPPA)

    x = x * XN
    y = y * YN
    z = z * ZN

    r = x * 3.2404542 - y * 1.5371385 - z * 0.4985314
    g = -x * 0.9692660 + y * 1.8760108 + z * 0.0415560
    b_out = x * 0.0556434 - y * 0.2040259 + z * 1.0572252

    # Reapply sRGB companding
    rgb_linear = np.column_stack([r, g, b_out])
    mask = rgb_linear > 0.0031308
    rgb = np.where(mask, 1.055 * np.power(np.clip(rgb_linear, 0, None), 1/2.4) - 0.055, 12.92 * rgb_linear)

    return np.clip(np.round(rgb * 255), 0, 255).astype(np.uint8)


def delta_e_2000(lab1: np.ndarray, lab2: np.ndarray) -> np.ndarray:
    """
    CIEDE2000 color difference (kL = kC = kH = 1).

    Args:
        lab1: LAB color of shape (3,) or (n, 3)
        lab2: LAB colors of shape (3,) or (n, 3), broadcast against lab1

    Returns:
        Array of shape (n,) with the difference for each pair.
    """
    lab1 = np.atleast_2d(np.asarray(lab1, dtype=np.float64))
    lab2 = np.atleast_2d(np.asarray(lab2, dtype=np.float64))

    L1, a1, b1 = lab1[:, 0], lab1[:, 1], lab1[:, 2]
    L2, a2, b2 = lab2[:, 0], lab2[:, 1], lab2[:, 2]

    C1 = np.hypot(a1, b1)
    C2 = np.hypot(a2, b2)
    C_bar7 = ((C1 + C2) / 2) ** 7
    G = 0.5 * (1 - np.sqrt(C_bar7 / (C_bar7 + 25.0**7)))

    a1_prime = a1 * (1 + G)
    a2_prime = a2 * (1 + G)
    C1_prime = np.hypot(a1_prime, b1)
    C2_prime = np.hypot(a2_prime, b2)
    h1_prime = np.degrees(np.arctan2(b1, a1_prime)) % 360
    h2_prime = np.degrees(np.arctan2(b2, a2_prime)) % 360

    achromatic = (C1_prime * C2_prime) == 0

    delta_L_prime = L2 - L1
    delta_C_prime = C2_prime - C1_prime

    delta_h = h2_prime - h1_prime
    delta_h = np.where(delta_h > 180, delta_h - 360, delta_h)
    delta_h = np.where(delta_h < -180, delta_h + 360, delta_h)
    delta_h = np.where(achromatic, 0.0, delta_h)
    delta_H_prime = 2 * np.sqrt(C1_prime * C2_prime) * np.sin(np.radians(delta_h) / 2)

    L_bar_prime = (L1 + L2) / 2
    C_bar_prime = (C1_prime + C2_prime) / 2

    h_sum = h1_prime + h2_prime
    h_bar_prime = np.where(
        np.abs(h1_prime - h2_prime) > 180,
        np.where(h_sum < 360, (h_sum + 360) / 2, (h_sum - 360) / 2),
        h_sum / 2,
    )
    h_bar_prime = np.where(achromatic, h_sum, h_bar_prime)

    T = (1
         - 0.17 * np.cos(np.radians(h_bar_prime - 30))
         + 0.24 * np.cos(np.radians(2 * h_bar_prime))
         + 0.32 * np.cos(np.radians(3 * h_bar_prime + 6))
         - 0.20 * np.cos(np.radians(4 * h_bar_prime - 63)))

    delta_theta = 30 * np.exp(-(((h_bar_prime - 275) / 25) ** 2))
    C_bar_prime7 = C_bar_prime ** 7
    R_C = 2 * np.sqrt(C_bar_prime7 / (C_bar_prime7 + 25.0**7))
    R_T = -np.sin(np.radians(2 * delta_theta)) * R_C

    L_offset = (L_bar_prime - 50) ** 2
    S_L = 1 + (0.015 * L_offset) / np.sqrt(20 + L_offset)
    S_C = 1 + 0.045 * C_bar_prime
    S_H = 1 + 0.015 * C_bar_prime * T

    dL = delta_L_prime / S_L
    dC = delta_C_prime / S_C
    dH = delta_H_prime / S_H

    return np.sqrt(dL**2 + dC**2 + dH**2 + R_T * dC * dH)
