"""
rsnet.timeseries
================

Core data containers shared by every stage of the pipeline.

:class:`TimeSeriesMatrix` stores a dense frames×voxels array together
with the grid coordinates of each voxel column, so that the 4D volume can
be reconstructed and atlas regions can be located in the grid.
:class:`FrameQuality` records which frames survived motion censoring.

Both containers are frozen dataclasses whose arrays are flagged
read-only on construction.  Stages never modify them; they return new
instances via :meth:`TimeSeriesMatrix.with_data`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class TimeSeriesMatrix:
    """Frames×voxels signal matrix with its voxel index map.

    Parameters
    ----------
    data : np.ndarray
        Array of shape (T, V).  Bad frames may hold ``NaN`` between
        stages where they are marked invalid.
    voxel_indices : np.ndarray
        Integer array of shape (V, 3) giving the (i, j, k) grid
        coordinate of each column of ``data``.
    grid_shape : Tuple[int, int, int]
        Shape of the 3D voxel grid the indices refer to.
    """

    data: np.ndarray
    voxel_indices: np.ndarray
    grid_shape: Tuple[int, int, int]

    def __post_init__(self) -> None:
        data = np.asarray(self.data, dtype=float)
        idx = np.asarray(self.voxel_indices, dtype=int)
        if data.ndim != 2:
            raise ValueError("data must be a 2D array of shape (T, V)")
        if idx.ndim != 2 or idx.shape[1] != 3:
            raise ValueError("voxel_indices must have shape (V, 3)")
        if idx.shape[0] != data.shape[1]:
            raise ValueError(
                f"data has {data.shape[1]} voxel columns but {idx.shape[0]} voxel indices were given"
            )
        shape = tuple(int(s) for s in self.grid_shape)
        if len(shape) != 3:
            raise ValueError("grid_shape must be three dimensional")
        if idx.size and (np.any(idx < 0) or np.any(idx >= np.array(shape))):
            raise ValueError("voxel_indices fall outside grid_shape")
        object.__setattr__(self, 'data', _readonly(data))
        object.__setattr__(self, 'voxel_indices', _readonly(idx))
        object.__setattr__(self, 'grid_shape', shape)

    @classmethod
    def from_volume(cls, volume: np.ndarray, mask: np.ndarray) -> 'TimeSeriesMatrix':
        """Flatten a 4D (X, Y, Z, T) volume through a 3D brain mask.

        The resulting matrix has one column per non-zero mask voxel, in
        C order of the grid.
        """
        volume = np.asarray(volume, dtype=float)
        mask = np.asarray(mask).astype(bool)
        if volume.ndim != 4:
            raise ValueError("volume must be 4D (X, Y, Z, T)")
        if mask.shape != volume.shape[:3]:
            raise ValueError("mask shape does not match the spatial shape of the volume")
        indices = np.argwhere(mask)
        data = volume[mask, :].T  # (T, V)
        return cls(data=data, voxel_indices=indices, grid_shape=mask.shape)

    @property
    def n_frames(self) -> int:
        return self.data.shape[0]

    @property
    def n_voxels(self) -> int:
        return self.data.shape[1]

    def with_data(self, data: np.ndarray) -> 'TimeSeriesMatrix':
        """Return a new matrix holding ``data`` over the same voxel map."""
        return TimeSeriesMatrix(data=data, voxel_indices=self.voxel_indices, grid_shape=self.grid_shape)

    def mask(self) -> np.ndarray:
        """Boolean 3D mask of the voxels present in the matrix."""
        out = np.zeros(self.grid_shape, dtype=bool)
        if self.n_voxels:
            out[tuple(self.voxel_indices.T)] = True
        return out

    def select_voxels(self, selection: np.ndarray) -> 'TimeSeriesMatrix':
        """Return the sub-matrix of columns where ``selection`` is true."""
        selection = np.asarray(selection, dtype=bool)
        if selection.shape != (self.n_voxels,):
            raise ValueError("selection must be a boolean vector over voxels")
        return TimeSeriesMatrix(
            data=self.data[:, selection],
            voxel_indices=self.voxel_indices[selection],
            grid_shape=self.grid_shape,
        )

    def to_volume(self, fill: float = 0.0) -> np.ndarray:
        """Scatter the matrix back into a 4D (X, Y, Z, T) array."""
        vol = np.full(self.grid_shape + (self.n_frames,), fill, dtype=float)
        if self.n_voxels:
            vol[tuple(self.voxel_indices.T)] = self.data.T
        return vol


@dataclass(frozen=True)
class FrameQuality:
    """Per-frame good/bad classification produced by artifact detection.

    Attributes
    ----------
    good : np.ndarray
        Boolean array of length T; ``True`` for frames kept for analysis.
    displacement : np.ndarray
        Framewise displacement values the classification was derived from.
    threshold : float
        Displacement threshold that was applied.
    """

    good: np.ndarray
    displacement: np.ndarray
    threshold: float

    def __post_init__(self) -> None:
        good = np.asarray(self.good, dtype=bool)
        disp = np.asarray(self.displacement, dtype=float)
        if good.ndim != 1 or disp.shape != good.shape:
            raise ValueError("good and displacement must be 1D arrays of equal length")
        object.__setattr__(self, 'good', _readonly(good))
        object.__setattr__(self, 'displacement', _readonly(disp))
        object.__setattr__(self, 'threshold', float(self.threshold))

    @property
    def n_frames(self) -> int:
        return self.good.shape[0]

    @property
    def good_frames(self) -> np.ndarray:
        return np.flatnonzero(self.good)

    @property
    def bad_frames(self) -> np.ndarray:
        return np.flatnonzero(~self.good)

    @property
    def n_good(self) -> int:
        return int(self.good.sum())

    @property
    def n_bad(self) -> int:
        return int((~self.good).sum())


__all__ = [
    'TimeSeriesMatrix',
    'FrameQuality',
]
