"""
rsnet.preprocessing.nuisance
============================

Linear detrending and nuisance regression restricted to good frames.

The nuisance design is assembled in a fixed channel order:

1. the six rigid motion parameters,
2. their element-wise squares,
3. first differences of (1) and (2),
4. mean signal of each configured tissue class and their first
   differences,
5. a small number of data-driven noise components (CompCor style):
   principal components of the highest-variance voxels over the good
   frames.

Channels that are undefined at censored frames are gap-filled with
:func:`~rsnet.preprocessing.interpolation.interpolate_bad_frames` so the
returned :class:`NuisanceMatrix` is complete.  The regression itself is
fitted on good frames only and the coefficients are discarded once the
residuals have been computed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

from ..errors import InsufficientDataError, SingularDesignError
from ..timeseries import FrameQuality, TimeSeriesMatrix
from .config import NuisanceConfig
from .interpolation import interpolate_bad_frames


logger = logging.getLogger(__name__)

MOTION_NAMES = ('trans_x', 'trans_y', 'trans_z', 'rot_x', 'rot_y', 'rot_z')


@dataclass(frozen=True)
class NuisanceMatrix:
    """Frames×channels matrix of nuisance regressors.

    Attributes
    ----------
    values : np.ndarray
        Read-only array of shape (T, C) with no missing entries.
    names : Tuple[str, ...]
        Channel names, one per column.
    """

    values: np.ndarray
    names: Tuple[str, ...]

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=float, copy=True)
        if values.ndim != 2 or values.shape[1] != len(self.names):
            raise ValueError("values must be 2D with one column per name")
        values.setflags(write=False)
        object.__setattr__(self, 'values', values)
        object.__setattr__(self, 'names', tuple(self.names))

    @property
    def n_channels(self) -> int:
        return self.values.shape[1]

    def column(self, name: str) -> np.ndarray:
        return self.values[:, self.names.index(name)]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.values, columns=list(self.names))


def _first_difference(values: np.ndarray) -> np.ndarray:
    diff = np.zeros_like(values)
    diff[1:] = np.diff(values, axis=0)
    return diff


def _detrend_good(values: np.ndarray, good: np.ndarray) -> np.ndarray:
    t = good.astype(float)
    design = np.column_stack([np.ones_like(t), t])
    betas = np.linalg.lstsq(design, values[good], rcond=None)[0]
    out = np.full(values.shape, np.nan)
    out[good] = values[good] - design @ betas
    return out


def linear_detrend(matrix: TimeSeriesMatrix, quality: FrameQuality) -> TimeSeriesMatrix:
    """Remove the best-fit line in time from every voxel.

    The line is fitted on good frames only.  Bad frames are set to
    ``NaN`` to mark them invalid until they are interpolated.
    """
    good = quality.good_frames
    if good.size < 2:
        raise InsufficientDataError("Detrending needs at least 2 good frames")
    return matrix.with_data(_detrend_good(matrix.data, good))


def _tissue_labels_per_voxel(matrix: TimeSeriesMatrix, tissue_labels: np.ndarray) -> np.ndarray:
    labels = np.asarray(tissue_labels)
    if labels.ndim == 3:
        if labels.shape != matrix.grid_shape:
            raise ValueError("tissue label volume does not match the voxel grid")
        return labels[tuple(matrix.voxel_indices.T)]
    if labels.shape != (matrix.n_voxels,):
        raise ValueError("tissue labels must be a 3D volume or one label per voxel")
    return labels


def compcor_components(
    values: np.ndarray,
    quality: FrameQuality,
    n_components: int = 4,
    variance_quantile: float = 0.975,
) -> np.ndarray:
    """Estimate noise components from the highest-variance voxels.

    Parameters
    ----------
    values : np.ndarray
        Frames×voxels array; only good frames are read.
    quality : FrameQuality
        Frame classification.
    n_components : int
        Number of principal components to return.
    variance_quantile : float
        Voxels with temporal variance at or above this quantile are used.

    Returns
    -------
    np.ndarray
        Array of shape (T, n) with component scores at good frames and
        ``NaN`` at bad frames.  ``n`` may be smaller than requested when
        there are too few good frames or voxels.
    """
    good = quality.good_frames
    sub = values[good]
    out = np.full((values.shape[0], 0), np.nan)
    if n_components == 0 or sub.shape[1] == 0:
        return out
    variance = sub.var(axis=0)
    cutoff = np.quantile(variance, variance_quantile)
    selected = np.flatnonzero(variance >= cutoff)
    if selected.size < n_components:
        selected = np.argsort(variance)[::-1][:n_components]
    n = min(n_components, selected.size, good.size)
    if n < n_components:
        logger.warning('Only %d of %d noise components can be estimated', n, n_components)
    if n == 0:
        return out
    pca = PCA(n_components=n)
    scores = pca.fit_transform(sub[:, selected])
    logger.info(
        'Noise components from %d voxels explain %.1f%% of their variance',
        selected.size, 100.0 * float(np.sum(pca.explained_variance_ratio_)),
    )
    out = np.full((values.shape[0], n), np.nan)
    out[good] = scores
    return out


def build_nuisance_matrix(
    matrix: TimeSeriesMatrix,
    quality: FrameQuality,
    motion_params: Optional[np.ndarray],
    tissue_labels: Optional[np.ndarray],
    config: NuisanceConfig,
) -> NuisanceMatrix:
    """Assemble the full nuisance design for a run.

    Parameters
    ----------
    matrix : TimeSeriesMatrix
        Voxel data used for tissue means and noise components.  Bad
        frames may be ``NaN``.
    quality : FrameQuality
        Frame classification.
    motion_params : np.ndarray | None
        Array of shape (T, 6) with rigid motion parameters.
    tissue_labels : np.ndarray | None
        Tissue segmentation, either a 3D volume on the voxel grid or one
        integer label per voxel column.
    config : NuisanceConfig
        Channel selection.

    Returns
    -------
    NuisanceMatrix
        Gap-filled channels in the documented order.
    """
    n_frames = matrix.n_frames
    columns: List[np.ndarray] = []
    names: List[str] = []

    if motion_params is not None:
        motion = np.asarray(motion_params, dtype=float)
        if motion.shape != (n_frames, 6):
            raise ValueError(f"motion_params must have shape ({n_frames}, 6)")
        blocks = [(motion, list(MOTION_NAMES))]
        if config.motion_derivatives:
            squares = motion ** 2
            blocks.append((squares, [f'{n}_power2' for n in MOTION_NAMES]))
            blocks.append((_first_difference(motion), [f'{n}_derivative1' for n in MOTION_NAMES]))
            blocks.append((_first_difference(squares), [f'{n}_power2_derivative1' for n in MOTION_NAMES]))
        for block, block_names in blocks:
            columns.append(block)
            names.extend(block_names)

    if tissue_labels is not None and config.tissue_labels:
        per_voxel = _tissue_labels_per_voxel(matrix, tissue_labels)
        means: List[np.ndarray] = []
        mean_names: List[str] = []
        for tissue, label in config.tissue_labels.items():
            members = per_voxel == label
            if not np.any(members):
                logger.warning("No voxels carry tissue label %s (%d); channel skipped", tissue, label)
                continue
            signal = np.full(n_frames, np.nan)
            good = quality.good_frames
            signal[good] = matrix.data[np.ix_(good, np.flatnonzero(members))].mean(axis=1)
            means.append(interpolate_bad_frames(signal, quality))
            mean_names.append(tissue)
        if means:
            tissue_block = np.column_stack(means)
            columns.append(tissue_block)
            names.extend(mean_names)
            columns.append(_first_difference(tissue_block))
            names.extend(f'{n}_derivative1' for n in mean_names)

    if config.n_compcor:
        comps = compcor_components(
            matrix.data, quality, config.n_compcor, config.compcor_variance_quantile
        )
        if comps.shape[1]:
            columns.append(interpolate_bad_frames(comps, quality))
            names.extend(f'compcor_{i:02d}' for i in range(comps.shape[1]))

    values = np.column_stack(columns) if columns else np.zeros((n_frames, 0))
    logger.info('Nuisance design has %d channels', len(names))
    return NuisanceMatrix(values=values, names=tuple(names))


def regress_nuisance(
    matrix: TimeSeriesMatrix,
    nuisance: NuisanceMatrix,
    quality: FrameQuality,
) -> TimeSeriesMatrix:
    """Replace good-frame values with OLS residuals of the nuisance design.

    An intercept is always included.  Regressors are standardised over
    the good frames before fitting, which leaves the residuals unchanged
    but keeps the rank test independent of channel scale.

    Raises
    ------
    SingularDesignError
        If the design restricted to good frames has no more rows than
        columns or is rank deficient.
    """
    good = quality.good_frames
    regressors = nuisance.values[good]
    if regressors.shape[1]:
        centred = regressors - regressors.mean(axis=0)
        scale = centred.std(axis=0)
        scale[scale == 0] = 1.0
        regressors = centred / scale
    design = np.column_stack([np.ones(good.size), regressors])
    n_rows, n_cols = design.shape
    if n_rows <= n_cols:
        logger.error('%d good frames cannot support %d regressors', n_rows, n_cols)
        raise SingularDesignError(
            f"{n_rows} good frames is not enough for {n_cols} regressors"
        )
    rank = np.linalg.matrix_rank(design)
    if rank < n_cols:
        logger.error('Nuisance design has rank %d with %d columns', rank, n_cols)
        raise SingularDesignError(f"Nuisance design is rank deficient ({rank} < {n_cols})")
    targets = matrix.data[good]
    if not np.all(np.isfinite(targets)):
        raise ValueError("voxel data has non-finite values at good frames")
    betas = np.linalg.lstsq(design, targets, rcond=None)[0]
    residuals = np.full(matrix.data.shape, np.nan)
    residuals[good] = targets - design @ betas
    return matrix.with_data(residuals)


@dataclass(frozen=True)
class RegressionResult:
    """Outputs of :class:`DetrendRegressor` kept for quality control."""

    detrended: TimeSeriesMatrix
    cleaned: TimeSeriesMatrix
    nuisance: NuisanceMatrix


class DetrendRegressor:
    """Detrend voxel time courses and regress out nuisance signals."""

    def __init__(self, config: NuisanceConfig) -> None:
        self.config = config
        self.config.validate()

    def run(
        self,
        matrix: TimeSeriesMatrix,
        quality: FrameQuality,
        motion_params: Optional[np.ndarray] = None,
        tissue_labels: Optional[np.ndarray] = None,
    ) -> RegressionResult:
        if self.config.detrend:
            detrended = linear_detrend(matrix, quality)
        else:
            data = np.array(matrix.data, copy=True)
            data[quality.bad_frames] = np.nan
            detrended = matrix.with_data(data)
        nuisance = build_nuisance_matrix(detrended, quality, motion_params, tissue_labels, self.config)
        cleaned = regress_nuisance(detrended, nuisance, quality)
        return RegressionResult(detrended=detrended, cleaned=cleaned, nuisance=nuisance)


__all__ = [
    'MOTION_NAMES',
    'NuisanceMatrix',
    'RegressionResult',
    'linear_detrend',
    'compcor_components',
    'build_nuisance_matrix',
    'regress_nuisance',
    'DetrendRegressor',
]
