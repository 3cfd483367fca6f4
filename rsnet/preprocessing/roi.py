"""
rsnet.preprocessing.roi
=======================

Point-based atlas handling and reduction of the voxel matrix to one
time course per region of interest.

Each atlas entry is a coordinate in a reference space (usually MNI mm)
with an optional functional system label.  An injected
:data:`CoordinateMap` maps the coordinate into the continuous voxel grid
of the functional image; the region is then rasterised as all brain-mask
voxels within a fixed physical radius of the mapped point.

Regions that cannot be populated (the point falls outside the grid, or
fewer than ``min_voxels`` mask voxels lie within the sphere) are not
errors.  They are flagged ``missing`` and contribute an all-zero column
so that region indices stay stable downstream.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from nibabel.affines import apply_affine

from ..errors import EmptyROIError, OutOfBoundsMappingError
from ..timeseries import FrameQuality, TimeSeriesMatrix
from .config import RoiConfig


logger = logging.getLogger(__name__)

CoordinateMap = Callable[[np.ndarray], np.ndarray]


def _normalise(name: str) -> str:
    return re.sub(r'[^a-z0-9]', '', name.lower())


class SystemLabel(enum.Enum):
    """Functional systems of the Power 264 node atlas."""

    SENSORY_HAND = 'Sensory/somatomotor Hand'
    SENSORY_MOUTH = 'Sensory/somatomotor Mouth'
    CINGULO_OPERCULAR = 'Cingulo-opercular Task Control'
    AUDITORY = 'Auditory'
    DEFAULT_MODE = 'Default mode'
    MEMORY_RETRIEVAL = 'Memory retrieval?'
    VENTRAL_ATTENTION = 'Ventral attention'
    VISUAL = 'Visual'
    FRONTO_PARIETAL = 'Fronto-parietal Task Control'
    SALIENCE = 'Salience'
    SUBCORTICAL = 'Subcortical'
    CEREBELLAR = 'Cerebellar'
    DORSAL_ATTENTION = 'Dorsal attention'
    UNCERTAIN = 'Uncertain'

    @classmethod
    def from_name(cls, name: Optional[str]) -> 'SystemLabel':
        """Parse a label leniently; unknown or empty names map to ``UNCERTAIN``."""
        if name is None or (isinstance(name, float) and np.isnan(name)):
            return cls.UNCERTAIN
        key = _normalise(str(name))
        for member in cls:
            if key in (_normalise(member.value), _normalise(member.name)):
                return member
        logger.debug('Unknown system label %r treated as uncertain', name)
        return cls.UNCERTAIN


@dataclass(frozen=True)
class AtlasPoint:
    """A single atlas entry.

    Attributes
    ----------
    id : int
        Region identifier.
    position : Tuple[float, float, float]
        Coordinate in the atlas reference space (mm).
    system : SystemLabel
        Functional system the region belongs to.
    color : str | None
        Display colour carried along from the atlas table.
    """

    id: int
    position: Tuple[float, float, float]
    system: SystemLabel = SystemLabel.UNCERTAIN
    color: Optional[str] = None


@dataclass(frozen=True)
class ROI:
    """Rasterised region: column indices of its member voxels."""

    id: int
    voxels: np.ndarray
    system: SystemLabel = SystemLabel.UNCERTAIN
    missing: bool = False

    def __post_init__(self) -> None:
        voxels = np.array(self.voxels, dtype=int, copy=True).reshape(-1)
        voxels.setflags(write=False)
        object.__setattr__(self, 'voxels', voxels)

    @property
    def n_voxels(self) -> int:
        return int(self.voxels.size)


_ATLAS_COLUMNS = {
    'id': ('roi', 'id', 'index', 'label'),
    'x': ('x', 'mni_x'),
    'y': ('y', 'mni_y'),
    'z': ('z', 'mni_z'),
    'system': ('systemname', 'system', 'network'),
    'color': ('color', 'colour'),
}


def _find_column(df: pd.DataFrame, key: str) -> Optional[str]:
    lookup = {_normalise(c): c for c in df.columns}
    for candidate in _ATLAS_COLUMNS[key]:
        if candidate in lookup:
            return lookup[candidate]
    return None


def atlas_points_from_dataframe(df: pd.DataFrame) -> List[AtlasPoint]:
    """Convert an atlas table into :class:`AtlasPoint` records.

    Coordinate columns ``x``, ``y`` and ``z`` are required.  Identifier,
    system and colour columns are optional; identifiers default to
    ``1..N``.
    """
    coords = [_find_column(df, axis) for axis in ('x', 'y', 'z')]
    if any(c is None for c in coords):
        raise ValueError("Atlas table must provide x, y and z columns")
    id_col = _find_column(df, 'id')
    system_col = _find_column(df, 'system')
    color_col = _find_column(df, 'color')
    points: List[AtlasPoint] = []
    for row_idx, (_, row) in enumerate(df.iterrows()):
        color = row[color_col] if color_col is not None else None
        points.append(AtlasPoint(
            id=int(row[id_col]) if id_col is not None else row_idx + 1,
            position=tuple(float(row[c]) for c in coords),
            system=SystemLabel.from_name(row[system_col]) if system_col is not None else SystemLabel.UNCERTAIN,
            color=None if color is None or pd.isna(color) else str(color),
        ))
    return points


def read_table(path) -> pd.DataFrame:
    """Read a delimited table; ``.tsv`` and ``.txt`` files are tab separated, others comma separated."""
    sep = '\t' if Path(path).suffix.lower() in ('.tsv', '.txt') else ','
    return pd.read_csv(path, sep=sep)


def load_atlas_points(path: str) -> List[AtlasPoint]:
    """Read a CSV or TSV atlas table from ``path``."""
    df = read_table(path)
    points = atlas_points_from_dataframe(df)
    logger.info('Loaded %d atlas points from %s', len(points), path)
    return points


def affine_coordinate_map(affine: np.ndarray) -> CoordinateMap:
    """Map world coordinates to continuous voxel coordinates.

    Parameters
    ----------
    affine : np.ndarray
        4×4 voxel-to-world affine of the functional image.  The atlas
        points must already be expressed in the same world space.
    """
    inverse = np.linalg.inv(np.asarray(affine, dtype=float))

    def _map(point: np.ndarray) -> np.ndarray:
        return apply_affine(inverse, np.asarray(point, dtype=float))

    return _map


def map_point(point: AtlasPoint, coordinate_map: CoordinateMap, grid_shape: Sequence[int]) -> np.ndarray:
    """Map an atlas point into the voxel grid.

    Raises
    ------
    OutOfBoundsMappingError
        If the nearest voxel lies outside ``grid_shape``.
    """
    centre = np.asarray(coordinate_map(np.asarray(point.position, dtype=float)), dtype=float)
    if centre.shape != (3,) or not np.all(np.isfinite(centre)):
        raise ValueError(f"Coordinate map returned an invalid voxel for ROI {point.id}")
    nearest = np.rint(centre).astype(int)
    if np.any(nearest < 0) or np.any(nearest >= np.asarray(grid_shape)):
        raise OutOfBoundsMappingError(point.id, nearest)
    return centre


def rasterize_roi(
    point: AtlasPoint,
    coordinate_map: CoordinateMap,
    matrix: TimeSeriesMatrix,
    voxel_size: Sequence[float] = (1.0, 1.0, 1.0),
    radius: float = 5.0,
) -> ROI:
    """Collect the mask voxels within ``radius`` mm of a mapped atlas point.

    Parameters
    ----------
    point : AtlasPoint
        Atlas entry to rasterise.
    coordinate_map : CoordinateMap
        Callable mapping atlas coordinates to voxel coordinates.
    matrix : TimeSeriesMatrix
        Provides the brain-mask voxel map; member indices refer to its
        columns.
    voxel_size : Sequence[float]
        Voxel dimensions in mm used to measure physical distance.
    radius : float
        Sphere radius in mm.

    Returns
    -------
    ROI
        Region with its member voxel columns.  Points that map outside
        the volume yield an empty region flagged ``missing``.
    """
    try:
        centre = map_point(point, coordinate_map, matrix.grid_shape)
    except OutOfBoundsMappingError as exc:
        logger.warning('%s; ROI marked missing', exc)
        return ROI(id=point.id, voxels=np.zeros(0, dtype=int), system=point.system, missing=True)
    offsets = (matrix.voxel_indices - centre) * np.asarray(voxel_size, dtype=float)
    distance = np.sqrt(np.sum(offsets ** 2, axis=1))
    members = np.flatnonzero(distance <= radius)
    return ROI(id=point.id, voxels=members, system=point.system)


def roi_mean_timecourse(
    matrix: TimeSeriesMatrix,
    roi: ROI,
    quality: FrameQuality,
    min_voxels: int = 2,
) -> np.ndarray:
    """Average the member voxels of ``roi`` on good frames.

    Bad frames are returned as ``NaN``.

    Raises
    ------
    EmptyROIError
        If the region has fewer than ``min_voxels`` members.
    """
    if roi.n_voxels < min_voxels:
        raise EmptyROIError(roi.id, roi.n_voxels)
    good = quality.good_frames
    out = np.full(matrix.n_frames, np.nan)
    out[good] = matrix.data[np.ix_(good, roi.voxels)].mean(axis=1)
    return out


@dataclass(frozen=True)
class RoiTimeSeries:
    """ROI signals together with the regions they were computed from.

    Attributes
    ----------
    values : np.ndarray
        Array of shape (T, R).  Present regions hold ``NaN`` at bad
        frames; missing regions are all zero.
    rois : Tuple[ROI, ...]
        Regions in column order.
    system_mean, system_std : pandas.DataFrame
        Per-frame mean and standard deviation across the present
        regions of each functional system, one column per system.
    """

    values: np.ndarray
    rois: Tuple[ROI, ...]
    system_mean: pd.DataFrame
    system_std: pd.DataFrame

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=float, copy=True)
        values.setflags(write=False)
        object.__setattr__(self, 'values', values)
        object.__setattr__(self, 'rois', tuple(self.rois))

    @property
    def labels(self) -> List[str]:
        return [str(r.id) for r in self.rois]

    @property
    def missing(self) -> np.ndarray:
        return np.array([r.missing for r in self.rois], dtype=bool)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.values, columns=self.labels)


def aggregate_rois(
    matrix: TimeSeriesMatrix,
    rois: Sequence[ROI],
    quality: FrameQuality,
    min_voxels: int = 2,
) -> Tuple[np.ndarray, Tuple[ROI, ...]]:
    """Compute the mean time course of every region.

    Returns the (T, R) signal array and the regions with their ``missing``
    flag updated.
    """
    values = np.zeros((matrix.n_frames, len(rois)), dtype=float)
    updated: List[ROI] = []
    for col, roi in enumerate(rois):
        if roi.missing:
            updated.append(roi)
            continue
        try:
            values[:, col] = roi_mean_timecourse(matrix, roi, quality, min_voxels)
        except EmptyROIError as exc:
            logger.warning('%s; ROI marked missing', exc)
            roi = dataclasses.replace(roi, missing=True)
        updated.append(roi)
    return values, tuple(updated)


def system_timecourses(values: np.ndarray, rois: Sequence[ROI]) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Mean and standard deviation across regions of each system.

    Only present regions contribute.  Systems are ordered as in
    :class:`SystemLabel`; systems without any present region are left out.
    When no region carries a system label the tables have no columns.
    """
    frame = pd.DataFrame(values)
    means = {}
    stds = {}
    if all(r.system is SystemLabel.UNCERTAIN for r in rois):
        logger.debug('Atlas carries no system labels; system signals skipped')
        return pd.DataFrame(index=frame.index), pd.DataFrame(index=frame.index)
    for system in SystemLabel:
        cols = [i for i, r in enumerate(rois) if r.system is system and not r.missing]
        if not cols:
            continue
        means[system.value] = frame[cols].mean(axis=1)
        stds[system.value] = frame[cols].std(axis=1)
    return pd.DataFrame(means, index=frame.index), pd.DataFrame(stds, index=frame.index)


class ROIAggregator:
    """Rasterise atlas points and reduce a voxel matrix to ROI signals."""

    def __init__(self, config: RoiConfig, coordinate_map: CoordinateMap) -> None:
        self.config = config
        self.config.validate()
        self.coordinate_map = coordinate_map

    def rasterize(
        self,
        points: Sequence[AtlasPoint],
        matrix: TimeSeriesMatrix,
        voxel_size: Sequence[float],
    ) -> List[ROI]:
        return [
            rasterize_roi(p, self.coordinate_map, matrix, voxel_size, self.config.radius)
            for p in points
        ]

    def run(
        self,
        matrix: TimeSeriesMatrix,
        points: Sequence[AtlasPoint],
        quality: FrameQuality,
        voxel_size: Sequence[float] = (1.0, 1.0, 1.0),
    ) -> RoiTimeSeries:
        rois = self.rasterize(points, matrix, voxel_size)
        values, rois = aggregate_rois(matrix, rois, quality, self.config.min_voxels)
        n_missing = sum(r.missing for r in rois)
        logger.info('Extracted %d ROI time courses (%d missing)', len(rois) - n_missing, n_missing)
        system_mean, system_std = system_timecourses(values, rois)
        return RoiTimeSeries(values=values, rois=rois, system_mean=system_mean, system_std=system_std)


__all__ = [
    'CoordinateMap',
    'SystemLabel',
    'AtlasPoint',
    'ROI',
    'RoiTimeSeries',
    'atlas_points_from_dataframe',
    'read_table',
    'load_atlas_points',
    'affine_coordinate_map',
    'map_point',
    'rasterize_roi',
    'roi_mean_timecourse',
    'aggregate_rois',
    'system_timecourses',
    'ROIAggregator',
]
