import numpy as np
import pandas as pd
import pytest

from rsnet.errors import EmptyROIError, OutOfBoundsMappingError
from rsnet.preprocessing.config import RoiConfig
from rsnet.preprocessing.roi import (
    ROI,
    AtlasPoint,
    ROIAggregator,
    SystemLabel,
    affine_coordinate_map,
    atlas_points_from_dataframe,
    load_atlas_points,
    map_point,
    rasterize_roi,
    roi_mean_timecourse,
    system_timecourses,
)
from rsnet.timeseries import FrameQuality, TimeSeriesMatrix


def identity(point):
    return np.asarray(point, dtype=float)


def _cube_matrix(n_frames=10, shape=(6, 6, 6), mask=None):
    rng = np.random.default_rng(0)
    mask = np.ones(shape, dtype=bool) if mask is None else mask
    volume = rng.normal(size=shape + (n_frames,))
    return TimeSeriesMatrix.from_volume(volume, mask)


def _quality(n_frames, bad=()):
    good = np.ones(n_frames, dtype=bool)
    good[list(bad)] = False
    return FrameQuality(good=good, displacement=np.zeros(n_frames), threshold=0.2)


def test_sphere_members_within_radius():
    matrix = _cube_matrix()
    roi = rasterize_roi(AtlasPoint(1, (2.0, 2.0, 2.0)), identity, matrix, radius=1.0)
    assert roi.n_voxels == 7
    assert not roi.missing


def test_voxel_size_scales_radius():
    matrix = _cube_matrix()
    roi = rasterize_roi(AtlasPoint(1, (2.0, 2.0, 2.0)), identity, matrix, voxel_size=(2, 2, 2), radius=1.0)
    assert roi.n_voxels == 1


def test_out_of_bounds_point():
    with pytest.raises(OutOfBoundsMappingError):
        map_point(AtlasPoint(5, (50.0, 0.0, 0.0)), identity, (6, 6, 6))
    roi = rasterize_roi(AtlasPoint(5, (50.0, 0.0, 0.0)), identity, _cube_matrix())
    assert roi.missing
    assert roi.n_voxels == 0


def test_empty_roi_raises():
    matrix = _cube_matrix()
    roi = ROI(id=3, voxels=[0])
    with pytest.raises(EmptyROIError):
        roi_mean_timecourse(matrix, roi, _quality(10), min_voxels=2)


def test_point_outside_mask_gives_missing_zero_column():
    mask = np.zeros((6, 6, 6), dtype=bool)
    mask[:3] = True
    matrix = _cube_matrix(mask=mask)
    points = [
        AtlasPoint(1, (1.0, 2.0, 2.0), SystemLabel.VISUAL),
        AtlasPoint(2, (5.0, 5.0, 5.0), SystemLabel.VISUAL),
    ]
    quality = _quality(10, bad=[4])
    aggregator = ROIAggregator(RoiConfig(radius=1.0, min_voxels=2), identity)
    result = aggregator.run(matrix, points, quality)
    assert result.missing.tolist() == [False, True]
    assert np.all(result.values[:, 1] == 0.0)
    assert np.isnan(result.values[4, 0])
    assert np.all(np.isfinite(np.delete(result.values[:, 0], 4)))
    assert result.labels == ['1', '2']


def test_roi_mean_matches_member_average():
    matrix = _cube_matrix()
    roi = rasterize_roi(AtlasPoint(1, (3.0, 3.0, 3.0)), identity, matrix, radius=1.0)
    quality = _quality(10, bad=[0])
    out = roi_mean_timecourse(matrix, roi, quality)
    expected = matrix.data[:, roi.voxels].mean(axis=1)
    assert np.isnan(out[0])
    assert np.allclose(out[1:], expected[1:])


def test_system_timecourses_skip_missing():
    values = np.array([[1.0, 3.0, 0.0, 10.0], [2.0, 4.0, 0.0, 20.0]])
    rois = [
        ROI(1, [0], SystemLabel.VISUAL),
        ROI(2, [1], SystemLabel.VISUAL),
        ROI(3, [], SystemLabel.VISUAL, missing=True),
        ROI(4, [2], SystemLabel.DEFAULT_MODE),
    ]
    mean, std = system_timecourses(values, rois)
    assert list(mean.columns) == ['Default mode', 'Visual']
    assert np.allclose(mean['Visual'], [2.0, 3.0])
    assert np.allclose(std['Visual'], [np.sqrt(2.0), np.sqrt(2.0)])
    assert std['Default mode'].isna().all()


def test_unlabelled_atlas_has_no_system_signals():
    values = np.arange(6, dtype=float).reshape(3, 2)
    rois = [ROI(1, [0]), ROI(2, [1])]
    mean, std = system_timecourses(values, rois)
    assert mean.shape == (3, 0)
    assert std.shape == (3, 0)


def test_aggregator_without_system_column(tmp_path):
    path = tmp_path / 'atlas.csv'
    path.write_text('x,y,z\n2,2,2\n4,4,4\n')
    points = load_atlas_points(str(path))
    aggregator = ROIAggregator(RoiConfig(radius=1.0), identity)
    result = aggregator.run(_cube_matrix(), points, _quality(10))
    assert list(result.system_mean.columns) == []
    assert result.values.shape == (10, 2)


def test_system_label_parsing():
    assert SystemLabel.from_name('Default mode') is SystemLabel.DEFAULT_MODE
    assert SystemLabel.from_name('default_mode') is SystemLabel.DEFAULT_MODE
    assert SystemLabel.from_name('Memory retrieval?') is SystemLabel.MEMORY_RETRIEVAL
    assert SystemLabel.from_name('nonsense') is SystemLabel.UNCERTAIN
    assert SystemLabel.from_name(None) is SystemLabel.UNCERTAIN


def test_atlas_table_columns():
    df = pd.DataFrame({
        'ROI': [7, 8],
        'X': [1.0, -2.0],
        'Y': [0.0, 3.5],
        'Z': [4.0, 5.0],
        'SystemName': ['Visual', 'Salience'],
        'Color': ['Blue', None],
    })
    points = atlas_points_from_dataframe(df)
    assert [p.id for p in points] == [7, 8]
    assert points[1].position == (-2.0, 3.5, 5.0)
    assert points[0].system is SystemLabel.VISUAL
    assert points[0].color == 'Blue'
    assert points[1].color is None


def test_atlas_table_requires_coordinates():
    with pytest.raises(ValueError):
        atlas_points_from_dataframe(pd.DataFrame({'x': [1.0], 'y': [2.0]}))


def test_load_atlas_points_tsv(tmp_path):
    path = tmp_path / 'atlas.tsv'
    path.write_text('x\ty\tz\tnetwork\n0\t0\t0\tVisual\n10\t-5\t2\tAuditory\n')
    points = load_atlas_points(str(path))
    assert [p.id for p in points] == [1, 2]
    assert points[1].system is SystemLabel.AUDITORY


def test_affine_coordinate_map_inverts_affine():
    affine = np.diag([2.0, 2.0, 2.0, 1.0])
    affine[:3, 3] = [-10.0, -10.0, -10.0]
    mapping = affine_coordinate_map(affine)
    assert np.allclose(mapping(np.array([0.0, 0.0, 0.0])), [5.0, 5.0, 5.0])
