"""
rsnet.preprocessing
===================

Signal conditioning stages that turn a raw frames×voxels matrix into
clean ROI time courses.

Modules
-------

config
    Stage configuration dataclasses and the aggregate
    :class:`PipelineConfig`.

artifacts
    Motion based frame censoring (:class:`ArtifactDetector`).

interpolation
    Natural cubic spline filling of censored frames.

nuisance
    Linear detrending, nuisance design construction and regression
    (:class:`DetrendRegressor`).

filtering
    Frequency-domain band-pass filter (:class:`FrequencyFilter`).

roi
    Atlas records, sphere rasterisation and ROI/system averaging
    (:class:`ROIAggregator`).
"""

from .config import (
    ArtifactConfig,
    NuisanceConfig,
    FilterConfig,
    RoiConfig,
    NetworkConfig,
    PipelineConfig,
)
from .artifacts import ArtifactDetector, detect_bad_frames, framewise_displacement
from .interpolation import Interpolator, interpolate_bad_frames
from .nuisance import (
    DetrendRegressor,
    NuisanceMatrix,
    RegressionResult,
    build_nuisance_matrix,
    linear_detrend,
    regress_nuisance,
)
from .filtering import FrequencyFilter, bandpass_filter
from .roi import (
    AtlasPoint,
    ROI,
    ROIAggregator,
    RoiTimeSeries,
    SystemLabel,
    affine_coordinate_map,
    load_atlas_points,
)

__all__ = [
    'ArtifactConfig',
    'NuisanceConfig',
    'FilterConfig',
    'RoiConfig',
    'NetworkConfig',
    'PipelineConfig',
    'ArtifactDetector',
    'detect_bad_frames',
    'framewise_displacement',
    'Interpolator',
    'interpolate_bad_frames',
    'DetrendRegressor',
    'NuisanceMatrix',
    'RegressionResult',
    'build_nuisance_matrix',
    'linear_detrend',
    'regress_nuisance',
    'FrequencyFilter',
    'bandpass_filter',
    'AtlasPoint',
    'ROI',
    'ROIAggregator',
    'RoiTimeSeries',
    'SystemLabel',
    'affine_coordinate_map',
    'load_atlas_points',
]
