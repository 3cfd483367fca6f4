"""
rsnet.pipeline
==============

This module coordinates the stages of the resting-state connectivity
analysis.  Rather than passing a mutable metadata dictionary from step
to step, each stage receives the immutable outputs of its predecessors
and returns new values; :class:`PipelineResult` collects all of them so
intermediate matrices can be inspected for quality control.

Stage order
-----------

1. **Artifact detection** – censor frames from framewise displacement.
2. **Detrend and nuisance regression** – fitted on good frames only.
3. **Interpolation and band-pass filtering** – censored frames are
   filled, the series filtered and the frames censored again.
4. **Spatial smoothing** – optional externally supplied callable.
5. **ROI aggregation** – mean signals of atlas spheres on good frames.
6. **Network construction** – correlation, density threshold, largest
   component.
7. **Graph metrics** – node and global statistics of the pruned graph.

Structural failures (:class:`~rsnet.errors.InsufficientDataError`,
:class:`~rsnet.errors.SingularDesignError`) propagate to the caller and
no partial result is returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import numpy as np

from .errors import InsufficientDataError
from .preprocessing.artifacts import ArtifactDetector, framewise_displacement
from .preprocessing.config import PipelineConfig
from .preprocessing.filtering import FrequencyFilter
from .preprocessing.nuisance import DetrendRegressor, NuisanceMatrix
from .preprocessing.roi import AtlasPoint, CoordinateMap, ROIAggregator, RoiTimeSeries
from .static.analyzer import StaticAnalyzer
from .static.connectivity import ConnectivityMatrix
from .static.metrics import GraphMetrics
from .static.network import NetworkResult
from .timeseries import FrameQuality, TimeSeriesMatrix


logger = logging.getLogger(__name__)

Smoother = Callable[[TimeSeriesMatrix], TimeSeriesMatrix]


@dataclass(frozen=True)
class PipelineInputs:
    """Everything a single run consumes.

    Parameters
    ----------
    matrix : TimeSeriesMatrix
        Raw frames×voxels signal over the brain mask.
    atlas : Sequence[AtlasPoint]
        Atlas points in the space understood by the coordinate map.
    displacement : np.ndarray | None
        Framewise displacement per frame.  Derived from
        ``motion_params`` when omitted.
    motion_params : np.ndarray | None
        Rigid motion parameters, shape (T, 6).
    tissue_labels : np.ndarray | None
        Tissue segmentation on the voxel grid or per voxel column.
    voxel_size : Tuple[float, float, float]
        Voxel dimensions in mm.
    tr : float | None
        Repetition time in seconds; overrides ``PipelineConfig.tr``.
    """

    matrix: TimeSeriesMatrix
    atlas: Sequence[AtlasPoint]
    displacement: Optional[np.ndarray] = None
    motion_params: Optional[np.ndarray] = None
    tissue_labels: Optional[np.ndarray] = None
    voxel_size: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    tr: Optional[float] = None


@dataclass(frozen=True)
class PipelineResult:
    """Outputs of one pipeline run.

    Attributes
    ----------
    quality : FrameQuality
        Frame censoring shared by every stage.
    nuisance : NuisanceMatrix
        Gap-filled nuisance regressors.
    stages : Dict[str, TimeSeriesMatrix]
        Voxel matrices after each stage (``'raw'``, ``'detrended'``,
        ``'regressed'``, ``'filtered'`` and ``'smoothed'`` when a
        smoother was supplied).
    roi : RoiTimeSeries
        ROI and system signals.
    connectivity : ConnectivityMatrix
        ROI×ROI correlation over good frames.
    network : NetworkResult
        Threshold, thresholded graph and pruned graph.
    metrics : GraphMetrics
        Metrics of the pruned graph.
    qc_metrics : Dict[str, float]
        Run level quality indicators.
    """

    quality: FrameQuality
    nuisance: NuisanceMatrix
    stages: Dict[str, TimeSeriesMatrix]
    roi: RoiTimeSeries
    connectivity: ConnectivityMatrix
    network: NetworkResult
    metrics: GraphMetrics
    qc_metrics: Dict[str, float] = field(default_factory=dict)


def temporal_snr(matrix: TimeSeriesMatrix, quality: FrameQuality) -> float:
    """Mean over voxels of mean/SD across good frames."""
    sub = matrix.data[quality.good_frames]
    mean_signal = sub.mean(axis=0)
    std_signal = sub.std(axis=0)
    valid = std_signal > 0
    if not np.any(valid):
        return float('nan')
    return float(np.mean(mean_signal[valid] / std_signal[valid]))


class RestingStatePipeline:
    """Run all stages from a raw voxel matrix to graph metrics.

    Parameters
    ----------
    config : PipelineConfig
        Stage options.
    coordinate_map : CoordinateMap
        Maps atlas coordinates to continuous voxel coordinates of the
        functional grid.
    smoother : callable, optional
        Spatial smoothing applied to the filtered matrix.  It receives a
        matrix whose censored frames are ``NaN`` and must return a new
        matrix over the same voxels.
    """

    def __init__(
        self,
        config: PipelineConfig,
        coordinate_map: CoordinateMap,
        smoother: Optional[Smoother] = None,
    ) -> None:
        self.config = config
        self.config.validate()
        self.coordinate_map = coordinate_map
        self.smoother = smoother
        self.detector = ArtifactDetector(config.artifacts)
        self.regressor = DetrendRegressor(config.nuisance)
        self.aggregator = ROIAggregator(config.roi, coordinate_map)
        self.analyzer = StaticAnalyzer(config.network)

    def _displacement(self, inputs: PipelineInputs) -> np.ndarray:
        if inputs.displacement is not None:
            disp = np.asarray(inputs.displacement, dtype=float)
        elif inputs.motion_params is not None:
            logger.info('No displacement given; deriving it from motion parameters')
            disp = framewise_displacement(inputs.motion_params)
        else:
            raise ValueError("Either displacement or motion_params must be provided")
        if disp.shape != (inputs.matrix.n_frames,):
            raise ValueError(
                f"displacement has {disp.shape[0]} entries for {inputs.matrix.n_frames} frames"
            )
        return disp

    def run(self, inputs: PipelineInputs) -> PipelineResult:
        tr = inputs.tr if inputs.tr is not None else self.config.tr
        raw = inputs.matrix
        logger.info('Processing %d frames x %d voxels', raw.n_frames, raw.n_voxels)

        quality = self.detector.run(self._displacement(inputs))
        if quality.n_good < 3:
            logger.error('Only %d good frames remain after censoring', quality.n_good)
            raise InsufficientDataError(
                f"{quality.n_good} good frames remain; at least 3 are required"
            )

        regression = self.regressor.run(raw, quality, inputs.motion_params, inputs.tissue_labels)
        filtered = FrequencyFilter(self.config.filter, tr).run(regression.cleaned, quality)
        stages: Dict[str, TimeSeriesMatrix] = {
            'raw': raw,
            'detrended': regression.detrended,
            'regressed': regression.cleaned,
            'filtered': filtered,
        }
        current = filtered
        if self.smoother is not None:
            current = self.smoother(filtered)
            if current.voxel_indices.shape != filtered.voxel_indices.shape:
                raise ValueError("smoother must preserve the voxel map")
            stages['smoothed'] = current

        roi = self.aggregator.run(current, inputs.atlas, quality, inputs.voxel_size)
        connectivity = self.analyzer.compute_connectivity(
            roi.values, roi.labels, good=quality.good, missing=roi.missing
        )
        network, metrics = self.analyzer.analyse(connectivity)

        qc: Dict[str, Any] = {
            'tSNR': temporal_snr(raw, quality),
            'n_frames': float(quality.n_frames),
            'n_bad_frames': float(quality.n_bad),
            'bad_frame_fraction': quality.n_bad / quality.n_frames,
            'mean_displacement': float(np.mean(quality.displacement)),
            'n_missing_rois': float(np.sum(roi.missing)),
            'threshold': network.threshold,
        }
        return PipelineResult(
            quality=quality,
            nuisance=regression.nuisance,
            stages=stages,
            roi=roi,
            connectivity=connectivity,
            network=network,
            metrics=metrics,
            qc_metrics=qc,
        )


__all__ = [
    'PipelineInputs',
    'PipelineResult',
    'RestingStatePipeline',
    'temporal_snr',
]
