"""
rsnet.preprocessing.filtering
=============================

Frequency-domain band-pass filtering of voxel time courses.

Filtering assumes uniform sampling, so censored frames are first filled
by spline interpolation, the full-length series is filtered and the
censored frames are then marked invalid again.  :class:`FrequencyFilter`
performs the three steps in that order.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from scipy.fft import rfft, irfft, rfftfreq

from ..timeseries import FrameQuality, TimeSeriesMatrix
from .config import FilterConfig
from .interpolation import interpolate_bad_frames


logger = logging.getLogger(__name__)


def bandpass_filter(
    values: np.ndarray,
    tr: float,
    low_cut: float = 0.009,
    high_cut: float = 0.08,
) -> np.ndarray:
    """Zero all spectral components outside ``[low_cut, high_cut]``.

    Parameters
    ----------
    values : np.ndarray
        Array of shape (T,) or (T, V) with no missing values.
    tr : float
        Sampling interval in seconds.
    low_cut, high_cut : float
        Pass band edges in Hz.  ``high_cut`` is clipped to the Nyquist
        frequency.

    Returns
    -------
    np.ndarray
        Filtered array of the same shape.  The DC component lies outside
        any band with ``low_cut > 0`` so the output has zero mean.
    """
    data = np.asarray(values, dtype=float)
    if not np.all(np.isfinite(data)):
        raise ValueError("bandpass_filter requires fully populated input; interpolate bad frames first")
    if tr <= 0:
        raise ValueError("tr must be positive")
    nyquist = 0.5 / tr
    if low_cut < 0 or low_cut >= nyquist:
        raise ValueError("low_cut must be between 0 and the Nyquist frequency")
    if high_cut <= low_cut:
        raise ValueError("low_cut must be less than high_cut")
    n = data.shape[0]
    spectrum = rfft(data, axis=0)
    freqs = rfftfreq(n, d=tr)
    stop = (freqs < low_cut) | (freqs > min(high_cut, nyquist))
    spectrum[stop] = 0.0
    return irfft(spectrum, n=n, axis=0)


class FrequencyFilter:
    """Interpolate, band-pass and re-censor a voxel matrix."""

    def __init__(self, config: FilterConfig, tr: Optional[float]) -> None:
        self.config = config
        self.config.validate()
        if config.enabled and (tr is None or tr <= 0):
            raise ValueError("A positive repetition time is required for temporal filtering")
        self.tr = tr

    def run(self, matrix: TimeSeriesMatrix, quality: FrameQuality) -> TimeSeriesMatrix:
        filled = interpolate_bad_frames(matrix.data, quality)
        if self.config.enabled:
            filled = bandpass_filter(filled, self.tr, self.config.low_cut, self.config.high_cut)
            logger.info(
                'Band-pass filtered %d voxels to %.3f-%.3f Hz',
                matrix.n_voxels, self.config.low_cut, self.config.high_cut,
            )
        filled[quality.bad_frames] = np.nan
        return matrix.with_data(filled)


__all__ = [
    'bandpass_filter',
    'FrequencyFilter',
]
