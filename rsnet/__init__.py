"""
rsnet
=====

This package builds resting-state functional brain networks from a
single fMRI run.  A raw frames×voxels matrix is censored for head
motion, detrended and cleaned of nuisance signals, band-pass filtered,
averaged into atlas-defined regions of interest, correlated, thresholded
to a fixed edge density and summarised with graph-theoretic metrics.

The key modules include:

* ``timeseries`` – the immutable voxel matrix and frame censoring record.
* ``preprocessing`` – artifact detection, interpolation, nuisance
  regression, filtering and ROI aggregation.
* ``static`` – connectivity matrices, network construction and graph
  metrics.
* ``pipeline`` – :class:`RestingStatePipeline`, which chains the stages.
* ``io`` – loading images and tables, writing results.

See ``rsnet.main`` for the command line entry point.
"""

from .errors import (
    RsnetError,
    InsufficientDataError,
    SingularDesignError,
    EmptyROIError,
    OutOfBoundsMappingError,
    DisconnectedGraphWarning,
)
from .timeseries import FrameQuality, TimeSeriesMatrix
from .preprocessing.config import PipelineConfig
from .pipeline import PipelineInputs, PipelineResult, RestingStatePipeline

__all__ = [
    'RsnetError',
    'InsufficientDataError',
    'SingularDesignError',
    'EmptyROIError',
    'OutOfBoundsMappingError',
    'DisconnectedGraphWarning',
    'FrameQuality',
    'TimeSeriesMatrix',
    'PipelineConfig',
    'PipelineInputs',
    'PipelineResult',
    'RestingStatePipeline',
]
