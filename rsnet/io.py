"""Helpers for loading pipeline inputs and saving its outputs.

Images are read with :mod:`nibabel`; tabular inputs (motion parameters,
atlas tables) with :mod:`pandas`.  Results are written as CSV for easy
inspection, with ``.npy`` copies of the matrices for efficient
reloading and a JSON file for scalar metrics.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

import nibabel as nib
import numpy as np
import pandas as pd

from .pipeline import PipelineInputs, PipelineResult
from .preprocessing.nuisance import MOTION_NAMES
from .preprocessing.roi import load_atlas_points, read_table
from .timeseries import TimeSeriesMatrix


logger = logging.getLogger(__name__)

FD_COLUMN = 'framewise_displacement'


def _ensure_dir(path: Path) -> None:
    """Create directory if it does not already exist."""
    path.mkdir(parents=True, exist_ok=True)


def load_motion_table(
    path: str | Path,
    motion_columns: Sequence[str] = MOTION_NAMES,
    fd_column: Optional[str] = FD_COLUMN,
) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
    """Read motion parameters and framewise displacement from a CSV/TSV.

    Returns
    -------
    tuple
        ``(motion_params, displacement)``.  Either is ``None`` when the
        corresponding columns are absent.  Missing displacement values
        (e.g. the first frame in fMRIPrep tables) are read as 0.
    """
    df = read_table(path)
    motion = None
    if all(col in df.columns for col in motion_columns):
        motion = df[list(motion_columns)].to_numpy(dtype=float)
    else:
        logger.warning('Motion columns %s not found in %s', list(motion_columns), path)
    displacement = None
    if fd_column and fd_column in df.columns:
        displacement = df[fd_column].fillna(0.0).to_numpy(dtype=float)
    return motion, displacement


def load_volume(path: str | Path) -> Tuple[np.ndarray, np.ndarray, Tuple[float, ...]]:
    """Load an image and return ``(data, affine, zooms)``."""
    img = nib.load(str(path))
    data = np.asanyarray(img.get_fdata())
    return data, img.affine.copy(), tuple(float(z) for z in img.header.get_zooms())


def load_inputs(
    func_path: str | Path,
    mask_path: str | Path,
    motion_path: str | Path,
    atlas_path: str | Path,
    tissue_path: Optional[str | Path] = None,
) -> Tuple[PipelineInputs, np.ndarray]:
    """Load the files of one run.

    Returns
    -------
    tuple
        ``(PipelineInputs, affine)``; the affine of the functional image
        can be turned into a coordinate map with
        :func:`rsnet.preprocessing.roi.affine_coordinate_map`.
    """
    func, affine, zooms = load_volume(func_path)
    mask, _, _ = load_volume(mask_path)
    matrix = TimeSeriesMatrix.from_volume(func, mask > 0)
    tissue = None
    if tissue_path is not None:
        tissue_vol, _, _ = load_volume(tissue_path)
        tissue = np.rint(tissue_vol).astype(int)
    motion, displacement = load_motion_table(motion_path)
    atlas = load_atlas_points(str(atlas_path))
    tr = zooms[3] if len(zooms) > 3 and zooms[3] > 0 else None
    inputs = PipelineInputs(
        matrix=matrix,
        atlas=atlas,
        displacement=displacement,
        motion_params=motion,
        tissue_labels=tissue,
        voxel_size=tuple(zooms[:3]),
        tr=tr,
    )
    logger.info('Loaded %s: %d frames, %d brain voxels, TR=%s', func_path, matrix.n_frames, matrix.n_voxels, tr)
    return inputs, affine


def _json_value(value: float) -> Optional[float]:
    value = float(value)
    return None if math.isnan(value) or math.isinf(value) else value


def save_result(result: PipelineResult, output_dir: str | Path) -> Dict[str, Path]:
    """Write the outputs of a pipeline run to ``output_dir``.

    Returns a mapping from output name to the written path.
    """
    out = Path(output_dir)
    _ensure_dir(out)
    labels = result.roi.labels
    paths: Dict[str, Path] = {}

    paths['roi_timeseries'] = out / 'roi_timeseries.csv'
    result.roi.to_dataframe().to_csv(paths['roi_timeseries'], index_label='frame')
    paths['system_mean'] = out / 'system_mean.csv'
    result.roi.system_mean.to_csv(paths['system_mean'], index_label='frame')
    paths['system_std'] = out / 'system_std.csv'
    result.roi.system_std.to_csv(paths['system_std'], index_label='frame')

    paths['frame_quality'] = out / 'frame_quality.csv'
    pd.DataFrame({
        'displacement': result.quality.displacement,
        'good': result.quality.good.astype(int),
    }).to_csv(paths['frame_quality'], index_label='frame')
    paths['nuisance'] = out / 'nuisance.csv'
    result.nuisance.to_dataframe().to_csv(paths['nuisance'], index_label='frame')

    for name, matrix in (
        ('connectivity', result.connectivity.matrix),
        ('adjacency', result.network.pruned.adjacency),
    ):
        np.save(out / f'{name}.npy', matrix)
        paths[name] = out / f'{name}.csv'
        pd.DataFrame(matrix, index=labels, columns=labels).to_csv(paths[name])

    paths['node_metrics'] = out / 'node_metrics.csv'
    result.metrics.to_dataframe(labels).to_csv(paths['node_metrics'])

    paths['global_metrics'] = out / 'global_metrics.json'
    payload = {
        'global_metrics': {k: _json_value(v) for k, v in result.metrics.global_metrics.items()},
        'summary': {k: _json_value(v) for k, v in result.metrics.summary().items()},
        'qc_metrics': {k: _json_value(v) for k, v in result.qc_metrics.items()},
        'missing_rois': [lbl for lbl, miss in zip(labels, result.roi.missing) if miss],
    }
    with open(paths['global_metrics'], 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=2)
    logger.info('Wrote %d output files to %s', len(paths), out)
    return paths


def load_node_metrics(output_dir: str | Path) -> pd.DataFrame:
    """Read ``node_metrics.csv`` back; undefined values come back as NaN."""
    return pd.read_csv(Path(output_dir) / 'node_metrics.csv', index_col=0)


__all__ = [
    'load_motion_table',
    'load_volume',
    'load_inputs',
    'save_result',
    'load_node_metrics',
]
