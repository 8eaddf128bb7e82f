"""Peak detection for profile mode spectra."""

import typing

import numba as nb
import numpy as np

from mascotsearch.data import Scan
from mascotsearch.utils import USE_NUMBA_CACHING


class Centroider(typing.Protocol):
    """Reduces a profile scan to (mz, intensity) peak arrays."""

    def __call__(self, scan: Scan) -> tuple[np.ndarray, np.ndarray]: ...


@nb.njit(cache=USE_NUMBA_CACHING)
def local_maxima(
    mz_values: np.ndarray, intensity_values: np.ndarray, noise_level: float
):
    """Find local intensity maxima in a profile spectrum.

    A point is a maximum if it is strictly higher than its left neighbour and at least as high as its right neighbour,
    so that the first point of a plateau is reported once.

    Parameters
    ----------

    mz_values : np.ndarray
        array of shape (n_points,), sorted ascending

    intensity_values : np.ndarray
        array of shape (n_points,)

    noise_level : float
        maxima with an intensity at or below this value are discarded

    Returns
    -------

    np.ndarray, np.ndarray
        m/z and intensity of the maxima

    """
    n_points = len(intensity_values)
    is_max = np.zeros(n_points, dtype=np.bool_)

    for i in range(n_points):
        intensity = intensity_values[i]
        if intensity <= noise_level:
            continue
        left = intensity_values[i - 1] if i > 0 else 0.0
        right = intensity_values[i + 1] if i < n_points - 1 else 0.0
        if intensity > left and intensity >= right:
            is_max[i] = True

    return mz_values[is_max], intensity_values[is_max]


class LocalMaxCentroider:
    def __init__(self, noise_level: float = 0.0):
        self.noise_level = noise_level

    def __call__(self, scan: Scan) -> tuple[np.ndarray, np.ndarray]:
        return local_maxima(
            scan.mz_values.astype(np.float64),
            scan.intensity_values.astype(np.float64),
            float(self.noise_level),
        )
