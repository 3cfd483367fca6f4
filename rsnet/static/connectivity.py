"""
rsnet.static.connectivity
=========================

This module defines the :class:`ConnectivityMatrix` container and the
Pearson correlation between ROI time series.  Correlations are computed
over good frames only; regions flagged missing keep their row and column
in the matrix but are set to zero so that node indices remain aligned
with the atlas.  Regions whose signal is constant over those frames have
no defined correlation and are flagged missing as well.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectivityMatrix:
    """Encapsulate a functional connectivity matrix and its labels.

    Parameters
    ----------
    matrix : np.ndarray
        2D array of shape (N, N), symmetric with zeros on the diagonal.
    labels : Sequence[str]
        ROI labels for the rows/columns of ``matrix``.
    missing : np.ndarray
        Boolean vector of length N marking regions excluded from the
        network.  Their rows and columns are zero.
    method : str, optional
        Name of the method used to compute the matrix.
    """

    matrix: np.ndarray
    labels: Sequence[str]
    missing: Optional[np.ndarray] = None
    method: str = 'pearson'

    def __post_init__(self) -> None:
        mat = np.array(self.matrix, dtype=float, copy=True)
        if mat.ndim != 2 or mat.shape[0] != mat.shape[1]:
            raise ValueError("matrix must be square")
        if len(self.labels) != mat.shape[0]:
            raise ValueError("Number of labels must match the matrix size")
        missing = np.zeros(mat.shape[0], dtype=bool) if self.missing is None else np.array(self.missing, dtype=bool)
        if missing.shape != (mat.shape[0],):
            raise ValueError("missing must have one entry per node")
        mat.setflags(write=False)
        missing.setflags(write=False)
        object.__setattr__(self, 'matrix', mat)
        object.__setattr__(self, 'labels', list(self.labels))
        object.__setattr__(self, 'missing', missing)

    @property
    def n_nodes(self) -> int:
        return self.matrix.shape[0]


def compute_pearson_connectivity(
    roi_timeseries: np.ndarray,
    labels: Sequence[str],
    good: Optional[np.ndarray] = None,
    missing: Optional[np.ndarray] = None,
) -> ConnectivityMatrix:
    """Compute a Pearson correlation connectivity matrix for ROI signals.

    Parameters
    ----------
    roi_timeseries : np.ndarray
        Array of shape (T, N_ROI) where each column contains the signal
        for one region.
    labels : Sequence[str]
        Names or identifiers for each ROI.  Length must equal ``N_ROI``.
    good : np.ndarray, optional
        Boolean mask or integer indices of the frames to use.  Defaults
        to all frames.
    missing : np.ndarray, optional
        Boolean vector marking regions to exclude.

    Returns
    -------
    ConnectivityMatrix
        Correlation matrix with zero diagonal and zeroed missing rows.
        Its ``missing`` vector also marks regions with constant signals.
    """
    roi_timeseries = np.asarray(roi_timeseries, dtype=float)
    if roi_timeseries.ndim != 2:
        raise ValueError("roi_timeseries must be a 2D array of shape (T, N_ROI)")
    T, N = roi_timeseries.shape
    if len(labels) != N:
        raise ValueError("Number of labels must match number of columns in roi_timeseries")
    missing = np.zeros(N, dtype=bool) if missing is None else np.asarray(missing, dtype=bool)
    series = roi_timeseries if good is None else roi_timeseries[np.asarray(good)]
    if series.shape[0] < 3:
        raise ValueError("At least 3 frames are needed to compute correlations")
    if not np.all(np.isfinite(series[:, ~missing])):
        raise ValueError("ROI time series contain non-finite values at the selected frames")
    constant = ~missing & (np.ptp(series, axis=0) == 0)
    if np.any(constant):
        logger.warning(
            'ROIs %s have constant signals and are excluded from the network',
            [labels[i] for i in np.flatnonzero(constant)],
        )
        missing = missing | constant
    present = np.flatnonzero(~missing)
    corr = np.zeros((N, N), dtype=float)
    if present.size:
        sub_corr = np.atleast_2d(np.corrcoef(series[:, present].T))
        corr[np.ix_(present, present)] = sub_corr
    np.fill_diagonal(corr, 0.0)
    return ConnectivityMatrix(matrix=corr, labels=list(labels), missing=missing, method='pearson')


__all__ = [
    'ConnectivityMatrix',
    'compute_pearson_connectivity',
]
