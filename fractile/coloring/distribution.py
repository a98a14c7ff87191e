"""
Histogram equalization of iteration values.

The CDF is built from the integer part of every finite exterior sample and
rescaled so the lowest populated bin maps to 0. Colouring then reads the CDF
at the sample's value, interpolating between neighbouring bins.
"""
import math
from typing import Optional, Tuple

import numpy as np


def build_cdf(values: np.ndarray, max_iter: float) -> Optional[np.ndarray]:
    """
    :return: float64 array of `ceil(max_iter)` bins in [0, 1], or None when
             no exterior samples exist yet.
    """
    bins = max(1, int(math.ceil(max_iter)))
    flat = np.asarray(values, dtype=np.float64).ravel()
    with np.errstate(invalid="ignore"):
        keep = np.isfinite(flat) & (flat < max_iter)
    samples = flat[keep]
    if samples.size == 0:
        return None
    idx = np.clip(np.floor(samples), 0, bins - 1).astype(np.int64)
    histogram = np.bincount(idx, minlength=bins)
    cdf = np.cumsum(histogram, dtype=np.float64) / samples.size
    cdf_min = cdf[np.argmax(histogram > 0)]
    denom = 1.0 - cdf_min
    if denom > 0.0:
        cdf = np.maximum(0.0, (cdf - cdf_min) / denom)
    return cdf


def equalize(values: np.ndarray, max_iter: float, cdf: np.ndarray,
             palette_size: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Map values onto palette indices through the CDF.

    :return: (scaled indices in [0, palette_size - 1], interior mask)
    """
    values = np.asarray(values, dtype=np.float64)
    with np.errstate(invalid="ignore"):
        interior = ~(values < max_iter)
    safe = np.where(interior, 0.0, values)
    base = np.floor(safe)
    frac = safe - base
    last = cdf.shape[0] - 1
    base_idx = np.clip(base, 0, last).astype(np.int64)
    next_idx = np.minimum(base_idx + 1, last)
    cdf_value = cdf[base_idx] + (cdf[next_idx] - cdf[base_idx]) * frac
    scaled = np.clip(cdf_value * (palette_size - 1), 0.0, palette_size - 1)
    return scaled, interior
