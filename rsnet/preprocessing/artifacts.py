"""
rsnet.preprocessing.artifacts
=============================

Motion based frame censoring.

Framewise displacement measures head motion between a frame and its
predecessor, so an excessive value contaminates both endpoints of the
transition.  :func:`detect_bad_frames` therefore censors every frame
above threshold together with its immediate successor.

When no frame exceeds the threshold the first frame is still censored.
This keeps the bad set non-empty for downstream code that expects at
least one censored sample.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from ..timeseries import FrameQuality
from .config import ArtifactConfig


logger = logging.getLogger(__name__)


def framewise_displacement(motion_params: np.ndarray, head_radius: float = 50.0) -> np.ndarray:
    """Compute framewise displacement from rigid-body motion parameters.

    Parameters
    ----------
    motion_params : np.ndarray
        Array of shape (T, 6): three translations in mm followed by three
        rotations in radians.
    head_radius : float
        Radius (mm) of the sphere used to convert rotations to arc length.

    Returns
    -------
    np.ndarray
        Array of length T.  The first frame has no predecessor and is 0.
    """
    params = np.asarray(motion_params, dtype=float)
    if params.ndim != 2 or params.shape[1] != 6:
        raise ValueError("motion_params must have shape (T, 6)")
    diffs = np.abs(np.diff(params, axis=0))
    diffs[:, 3:] *= head_radius
    fd = np.zeros(params.shape[0], dtype=float)
    fd[1:] = diffs.sum(axis=1)
    return fd


def detect_bad_frames(displacement: Sequence[float], threshold: float) -> FrameQuality:
    """Classify frames as good or bad from their displacement values.

    Parameters
    ----------
    displacement : Sequence[float]
        Framewise displacement for each of the T frames.
    threshold : float
        Frames whose displacement is strictly greater than this value
        are censored along with the frame that follows them.

    Returns
    -------
    FrameQuality
        Classification with a non-empty set of bad frames.
    """
    disp = np.asarray(displacement, dtype=float)
    if disp.ndim != 1 or disp.size == 0:
        raise ValueError("displacement must be a non-empty 1D sequence")
    if not np.all(np.isfinite(disp)):
        raise ValueError("displacement contains non-finite values")
    if threshold < 0:
        raise ValueError("threshold must be non-negative")
    n = disp.size
    exceed = np.flatnonzero(disp > threshold)
    if exceed.size == 0:
        bad = np.array([0])
    else:
        successors = exceed + 1
        bad = np.union1d(exceed, successors[successors < n])
    good = np.ones(n, dtype=bool)
    good[bad] = False
    return FrameQuality(good=good, displacement=disp, threshold=threshold)


class ArtifactDetector:
    """Run frame censoring with a fixed configuration."""

    def __init__(self, config: ArtifactConfig) -> None:
        self.config = config
        self.config.validate()

    def run(self, displacement: Sequence[float]) -> FrameQuality:
        quality = detect_bad_frames(displacement, self.config.fd_threshold)
        fraction = quality.n_bad / quality.n_frames
        logger.info(
            'Censored %d of %d frames (FD > %.3f)',
            quality.n_bad, quality.n_frames, self.config.fd_threshold,
        )
        if fraction > self.config.max_bad_fraction:
            logger.warning('%.1f%% of frames are censored', 100.0 * fraction)
        return quality


__all__ = [
    'framewise_displacement',
    'detect_bad_frames',
    'ArtifactDetector',
]
