"""
Presentation filters applied to a finished RGB frame.
The stored pixel surface is never modified; dither lives in the mapper.
"""
import numpy as np
from scipy.ndimage import gaussian_filter

from fractile.utils.enums import FilterMode

_LUMA = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)


def gaussian_soft(rgb: np.ndarray, sigma: float) -> np.ndarray:
    if sigma <= 0.0:
        return rgb
    out = gaussian_filter(rgb.astype(np.float32), sigma=(sigma, sigma, 0), mode="nearest")
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


def vivid(rgb: np.ndarray, saturation: float = 1.35, contrast: float = 1.15) -> np.ndarray:
    f = rgb.astype(np.float32)
    grey = (f @ _LUMA)[..., None]
    f = grey + (f - grey) * saturation
    f = (f - 127.5) * contrast + 127.5
    return np.clip(np.rint(f), 0, 255).astype(np.uint8)


def mono(rgb: np.ndarray) -> np.ndarray:
    grey = np.clip(np.rint(rgb.astype(np.float32) @ _LUMA), 0, 255).astype(np.uint8)
    return np.repeat(grey[..., None], 3, axis=2)


def hue_rotate(rgb: np.ndarray, degrees: float) -> np.ndarray:
    """Rotate hue around the luma axis (the CSS hue-rotate matrix)."""
    if degrees % 360.0 == 0.0:
        return rgb
    a = np.deg2rad(degrees)
    c, s = np.cos(a), np.sin(a)
    m = np.array([
        [0.213 + c * 0.787 - s * 0.213, 0.715 - c * 0.715 - s * 0.715, 0.072 - c * 0.072 + s * 0.928],
        [0.213 - c * 0.213 + s * 0.143, 0.715 + c * 0.285 + s * 0.140, 0.072 - c * 0.072 - s * 0.283],
        [0.213 - c * 0.213 - s * 0.787, 0.715 - c * 0.715 + s * 0.715, 0.072 + c * 0.928 + s * 0.072],
    ], dtype=np.float32)
    out = rgb.astype(np.float32) @ m.T
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


def apply_filters(rgb: np.ndarray, mode: FilterMode, gaussian_blur: float = 0.6,
                  hue_degrees: float = 0.0) -> np.ndarray:
    if mode is FilterMode.GAUSSIAN_SOFT:
        rgb = gaussian_soft(rgb, gaussian_blur)
    elif mode is FilterMode.VIVID:
        rgb = vivid(rgb)
    elif mode is FilterMode.MONO:
        rgb = mono(rgb)
    return hue_rotate(rgb, hue_degrees)
