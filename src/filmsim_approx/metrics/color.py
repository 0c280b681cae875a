"""8-bit sRGB to CIELAB conversion and CIE colour-difference formulas (D65)."""
from __future__ import annotations

import numpy as np


D65_WHITE = np.array([0.95047, 1.0, 1.08883], dtype=np.float64)

SRGB_TO_XYZ = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.072175],
        [0.0193339, 0.119192, 0.9503041],
    ],
    dtype=np.float64,
)

_LAB_DELTA = 6.0 / 29.0


def _build_srgb_lut() -> np.ndarray:
    v = np.arange(256, dtype=np.float64) / 255.0
    return np.where(v <= 0.04045, v / 12.92, np.power((v + 0.055) / 1.055, 2.4))


# IEC 61966-2-1 transfer, one entry per 8-bit code value.
SRGB_TO_LINEAR = _build_srgb_lut()


def _f_lab(t: np.ndarray) -> np.ndarray:
    return np.where(
        t > _LAB_DELTA**3,
        np.cbrt(t),
        t / (3.0 * _LAB_DELTA * _LAB_DELTA) + 4.0 / 29.0,
    )


def srgb8_to_linear(rgb8: np.ndarray) -> np.ndarray:
    return SRGB_TO_LINEAR[np.asarray(rgb8, dtype=np.uint8)]


def linear_to_xyz(linear: np.ndarray) -> np.ndarray:
    return np.einsum("ij,...j->...i", SRGB_TO_XYZ, linear, optimize=True)


def xyz_to_lab(xyz: np.ndarray) -> np.ndarray:
    f = _f_lab(xyz / D65_WHITE)
    fx, fy, fz = f[..., 0], f[..., 1], f[..., 2]
    return np.stack([116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz)], axis=-1)


def srgb8_to_lab(rgb8: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return (Lab, Y) for uint8 sRGB values of shape (..., 3)."""

    xyz = linear_to_xyz(srgb8_to_linear(rgb8))
    return xyz_to_lab(xyz), xyz[..., 1]


def normalize_degrees(angle: np.ndarray) -> np.ndarray:
    return np.mod(angle, 360.0)


def hue_degrees(lab: np.ndarray) -> np.ndarray:
    return normalize_degrees(np.degrees(np.arctan2(lab[..., 2], lab[..., 1])))


def angular_difference(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    delta = np.abs(normalize_degrees(a) - normalize_degrees(b))
    return np.where(delta > 180.0, 360.0 - delta, delta)


def chroma(lab: np.ndarray) -> np.ndarray:
    return np.hypot(lab[..., 1], lab[..., 2])


def delta_e_76(lab1: np.ndarray, lab2: np.ndarray) -> np.ndarray:
    return np.linalg.norm(np.asarray(lab1, dtype=np.float64) - np.asarray(lab2, dtype=np.float64), axis=-1)


def delta_e_2000(lab1: np.ndarray, lab2: np.ndarray, k_l: float = 1.0, k_c: float = 1.0, k_h: float = 1.0) -> np.ndarray:
    """CIEDE2000 over Lab arrays of shape (..., 3); symmetric in its arguments."""

    lab1 = np.asarray(lab1, dtype=np.float64)
    lab2 = np.asarray(lab2, dtype=np.float64)
    L1, a1, b1 = lab1[..., 0], lab1[..., 1], lab1[..., 2]
    L2, a2, b2 = lab2[..., 0], lab2[..., 1], lab2[..., 2]

    c_mean = (np.hypot(a1, b1) + np.hypot(a2, b2)) / 2.0
    c_mean7 = c_mean**7
    g = 0.5 * (1.0 - np.sqrt(c_mean7 / (c_mean7 + 25.0**7)))

    a1p = (1.0 + g) * a1
    a2p = (1.0 + g) * a2
    c1p = np.hypot(a1p, b1)
    c2p = np.hypot(a2p, b2)
    h1p = normalize_degrees(np.degrees(np.arctan2(b1, a1p)))
    h2p = normalize_degrees(np.degrees(np.arctan2(b2, a2p)))

    chroma_product = c1p * c2p
    achromatic = chroma_product == 0

    dLp = L2 - L1
    dCp = c2p - c1p

    dh = h2p - h1p
    dh = np.where(dh > 180.0, dh - 360.0, np.where(dh < -180.0, dh + 360.0, dh))
    dh = np.where(achromatic, 0.0, dh)
    dHp = 2.0 * np.sqrt(chroma_product) * np.sin(np.radians(dh / 2.0))

    L_mean = (L1 + L2) / 2.0
    Cp_mean = (c1p + c2p) / 2.0

    h_sum = h1p + h2p
    h_mean = np.where(
        np.abs(h1p - h2p) <= 180.0,
        h_sum / 2.0,
        np.where(h_sum < 360.0, (h_sum + 360.0) / 2.0, (h_sum - 360.0) / 2.0),
    )
    h_mean = np.where(achromatic, h_sum, h_mean)

    t = (
        1.0
        - 0.17 * np.cos(np.radians(h_mean - 30.0))
        + 0.24 * np.cos(np.radians(2.0 * h_mean))
        + 0.32 * np.cos(np.radians(3.0 * h_mean + 6.0))
        - 0.20 * np.cos(np.radians(4.0 * h_mean - 63.0))
    )
    d_theta = 30.0 * np.exp(-(((h_mean - 275.0) / 25.0) ** 2))
    cp_mean7 = Cp_mean**7
    r_c = 2.0 * np.sqrt(cp_mean7 / (cp_mean7 + 25.0**7))
    l_off = (L_mean - 50.0) ** 2
    s_l = 1.0 + 0.015 * l_off / np.sqrt(20.0 + l_off)
    s_c = 1.0 + 0.045 * Cp_mean
    s_h = 1.0 + 0.015 * Cp_mean * t
    r_t = -np.sin(np.radians(2.0 * d_theta)) * r_c

    l_term = dLp / (k_l * s_l)
    c_term = dCp / (k_c * s_c)
    h_term = dHp / (k_h * s_h)
    return np.sqrt(l_term**2 + c_term**2 + h_term**2 + r_t * c_term * h_term)
