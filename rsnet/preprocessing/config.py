"""
rsnet.preprocessing.config
==========================

Configuration dataclasses for each pipeline stage and the aggregate
:class:`PipelineConfig`.  Every class exposes ``validate()`` which raises
``ValueError`` on inconsistent options; :class:`PipelineConfig` calls the
validators of all its members.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional


@dataclass
class ArtifactConfig:
    """Options for motion based frame censoring.

    Parameters
    ----------
    fd_threshold : float
        Framewise displacement (mm) above which a frame and its
        successor are censored.  Typical values lie between 0.1 and 0.5.
    max_bad_fraction : float
        Fraction of censored frames above which a warning is logged.
    """

    fd_threshold: float = 0.2
    max_bad_fraction: float = 0.5

    def validate(self) -> None:
        if self.fd_threshold < 0:
            raise ValueError("fd_threshold must be non-negative")
        if not 0 < self.max_bad_fraction <= 1:
            raise ValueError("max_bad_fraction must be in (0, 1]")


@dataclass
class NuisanceConfig:
    """Options for detrending and nuisance regression.

    Parameters
    ----------
    detrend : bool
        Remove a linear trend from each voxel before regression.
    motion_derivatives : bool
        Include squared motion parameters and first differences of both.
    tissue_labels : Dict[str, int]
        Tissue classes whose mean signal is used as a regressor, mapped
        to their integer value in the segmentation.  The defaults follow
        the usual three class ordering (1 CSF, 2 grey, 3 white matter).
    n_compcor : int
        Number of data-driven noise components to extract.
    compcor_variance_quantile : float
        Voxels whose temporal variance exceeds this quantile are used to
        estimate the noise components.
    """

    detrend: bool = True
    motion_derivatives: bool = True
    tissue_labels: Dict[str, int] = field(default_factory=lambda: {'csf': 1, 'wm': 3})
    n_compcor: int = 4
    compcor_variance_quantile: float = 0.975

    def validate(self) -> None:
        if self.n_compcor < 0:
            raise ValueError("n_compcor must be non-negative")
        if not 0 <= self.compcor_variance_quantile < 1:
            raise ValueError("compcor_variance_quantile must be in [0, 1)")


@dataclass
class FilterConfig:
    """Band-pass filter cutoffs in Hz."""

    enabled: bool = True
    low_cut: float = 0.009
    high_cut: float = 0.08

    def validate(self) -> None:
        if self.low_cut < 0 or self.high_cut <= 0:
            raise ValueError("filter cutoffs must be positive")
        if self.low_cut >= self.high_cut:
            raise ValueError("low_cut must be less than high_cut for bandpass filtering")


@dataclass
class RoiConfig:
    """Options for sphere rasterisation and ROI averaging.

    Parameters
    ----------
    radius : float
        Sphere radius in mm around each mapped atlas point.
    min_voxels : int
        ROIs with fewer member voxels are flagged missing.
    """

    radius: float = 5.0
    min_voxels: int = 2

    def validate(self) -> None:
        if self.radius <= 0:
            raise ValueError("radius must be positive")
        if self.min_voxels < 1:
            raise ValueError("min_voxels must be at least 1")


@dataclass
class NetworkConfig:
    """Options for graph construction.

    Parameters
    ----------
    density : float
        Target fraction of node pairs retained as edges.
    prune : bool
        Keep only the edges of the largest connected component.
    pagerank_damping : float
        Damping factor of the page-rank random walk.
    """

    density: float = 0.10
    prune: bool = True
    pagerank_damping: float = 0.85

    def validate(self) -> None:
        if not 0 < self.density <= 1:
            raise ValueError("density must be in (0, 1]")
        if not 0 < self.pagerank_damping < 1:
            raise ValueError("pagerank_damping must be in (0, 1)")


@dataclass
class PipelineConfig:
    """Aggregate configuration for :class:`rsnet.pipeline.RestingStatePipeline`."""

    artifacts: ArtifactConfig = field(default_factory=ArtifactConfig)
    nuisance: NuisanceConfig = field(default_factory=NuisanceConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    roi: RoiConfig = field(default_factory=RoiConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    tr: Optional[float] = None

    def validate(self) -> None:
        self.artifacts.validate()
        self.nuisance.validate()
        self.filter.validate()
        self.roi.validate()
        self.network.validate()
        if self.tr is not None and self.tr <= 0:
            raise ValueError("tr must be positive")

    @classmethod
    def from_dict(cls, options: Dict[str, Any]) -> 'PipelineConfig':
        """Build a configuration from nested dictionaries.

        Unknown section or option names raise ``ValueError`` so typos in
        configuration files do not pass silently.
        """
        sections = {
            'artifacts': ArtifactConfig,
            'nuisance': NuisanceConfig,
            'filter': FilterConfig,
            'roi': RoiConfig,
            'network': NetworkConfig,
        }
        kwargs: Dict[str, Any] = {}
        for key, value in options.items():
            if key == 'tr':
                kwargs['tr'] = None if value is None else float(value)
                continue
            if key not in sections:
                raise ValueError(f"Unknown configuration section '{key}'")
            section_cls = sections[key]
            allowed = {f.name for f in fields(section_cls)}
            unknown = set(value) - allowed
            if unknown:
                raise ValueError(f"Unknown options for '{key}': {sorted(unknown)}")
            kwargs[key] = section_cls(**value)
        config = cls(**kwargs)
        config.validate()
        return config


__all__ = [
    'ArtifactConfig',
    'NuisanceConfig',
    'FilterConfig',
    'RoiConfig',
    'NetworkConfig',
    'PipelineConfig',
]
