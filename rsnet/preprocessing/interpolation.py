"""
rsnet.preprocessing.interpolation
=================================

Fill censored frames of a per-frame signal with a natural cubic spline
fitted through the good frames only.  Used for nuisance channels before
they enter the design matrix and for voxel time courses before temporal
filtering.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.interpolate import CubicSpline

from ..errors import InsufficientDataError
from ..timeseries import FrameQuality, TimeSeriesMatrix


logger = logging.getLogger(__name__)


def interpolate_bad_frames(signal: np.ndarray, quality: FrameQuality) -> np.ndarray:
    """Replace bad-frame samples by spline interpolation over good frames.

    Parameters
    ----------
    signal : np.ndarray
        Array of shape (T,) or (T, C).  Values at bad frames are ignored
        and may be ``NaN``; values at good frames must be finite.
    quality : FrameQuality
        Good/bad classification of the T frames.

    Returns
    -------
    np.ndarray
        New array of the same shape.  Good-frame values are returned
        unchanged.

    Raises
    ------
    InsufficientDataError
        If fewer than two good frames are available.

    Notes
    -----
    Bad frames before the first or after the last good frame cannot be
    interpolated.  They are extended linearly with the end slope of the
    spline, which is how a natural spline continues beyond its knots.
    """
    values = np.asarray(signal, dtype=float)
    squeeze = values.ndim == 1
    if squeeze:
        values = values[:, None]
    if values.ndim != 2 or values.shape[0] != quality.n_frames:
        raise ValueError("signal must have one row per frame")
    good = quality.good_frames
    bad = quality.bad_frames
    if good.size < 2:
        raise InsufficientDataError(
            f"Spline interpolation needs at least 2 good frames, got {good.size}"
        )
    if not np.all(np.isfinite(values[good])):
        raise ValueError("signal has non-finite values at good frames")
    out = values.copy()
    if bad.size and values.shape[1]:
        spline = CubicSpline(good, values[good], axis=0, bc_type='natural')
        first, last = good[0], good[-1]
        inside = bad[(bad > first) & (bad < last)]
        if inside.size:
            out[inside] = spline(inside)
        before = bad[bad < first]
        after = bad[bad > last]
        if before.size or after.size:
            logger.debug(
                'Extrapolating %d leading and %d trailing bad frames',
                before.size, after.size,
            )
        if before.size:
            slope = spline(first, 1)
            out[before] = values[first] + (before - first)[:, None] * slope
        if after.size:
            slope = spline(last, 1)
            out[after] = values[last] + (after - last)[:, None] * slope
    return out[:, 0] if squeeze else out


class Interpolator:
    """Fill bad frames of every voxel of a :class:`TimeSeriesMatrix`."""

    def run(self, matrix: TimeSeriesMatrix, quality: FrameQuality) -> TimeSeriesMatrix:
        filled = interpolate_bad_frames(matrix.data, quality)
        logger.info('Interpolated %d bad frames across %d voxels', quality.n_bad, matrix.n_voxels)
        return matrix.with_data(filled)


__all__ = [
    'interpolate_bad_frames',
    'Interpolator',
]
