"""
rsnet.errors
============

Exception and warning types raised by the connectivity pipeline.

Two families are distinguished.  Structural failures
(:class:`InsufficientDataError`, :class:`SingularDesignError`) abort a
run because continuing would produce statistically meaningless output.
Local data-quality problems (:class:`EmptyROIError`,
:class:`OutOfBoundsMappingError`) are raised by low level helpers and
caught by the ROI aggregator, which records the affected region as
missing instead of failing.  :class:`DisconnectedGraphWarning` is only
ever emitted through :mod:`warnings`.
"""

from __future__ import annotations


class RsnetError(Exception):
    """Base class for all errors raised by :mod:`rsnet`."""


class InsufficientDataError(RsnetError):
    """Too few good frames to interpolate or fit a model."""


class SingularDesignError(RsnetError):
    """The nuisance design matrix restricted to good frames is rank deficient."""


class EmptyROIError(RsnetError):
    """A region of interest has fewer member voxels than required.

    Attributes
    ----------
    roi_id : int
        Identifier of the offending region.
    n_voxels : int
        Number of voxels that were found.
    """

    def __init__(self, roi_id: int, n_voxels: int) -> None:
        super().__init__(f"ROI {roi_id} has {n_voxels} voxel(s)")
        self.roi_id = roi_id
        self.n_voxels = n_voxels


class OutOfBoundsMappingError(RsnetError):
    """An atlas point maps outside the functional voxel grid."""

    def __init__(self, roi_id: int, voxel) -> None:
        super().__init__(f"ROI {roi_id} maps to {tuple(voxel)}, outside the volume")
        self.roi_id = roi_id
        self.voxel = voxel


class DisconnectedGraphWarning(UserWarning):
    """Some node pairs are disconnected and were excluded from path metrics."""


__all__ = [
    'RsnetError',
    'InsufficientDataError',
    'SingularDesignError',
    'EmptyROIError',
    'OutOfBoundsMappingError',
    'DisconnectedGraphWarning',
]
