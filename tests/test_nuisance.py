import numpy as np
import pytest

from rsnet.errors import SingularDesignError
from rsnet.preprocessing.config import NuisanceConfig
from rsnet.preprocessing.nuisance import (
    MOTION_NAMES,
    DetrendRegressor,
    NuisanceMatrix,
    build_nuisance_matrix,
    compcor_components,
    linear_detrend,
    regress_nuisance,
)
from rsnet.timeseries import FrameQuality, TimeSeriesMatrix


def _matrix(data):
    n_vox = data.shape[1]
    indices = np.array([[i, 0, 0] for i in range(n_vox)])
    return TimeSeriesMatrix(data=data, voxel_indices=indices, grid_shape=(n_vox, 1, 1))


def _quality(n_frames, bad=()):
    good = np.ones(n_frames, dtype=bool)
    good[list(bad)] = False
    return FrameQuality(good=good, displacement=np.zeros(n_frames), threshold=0.2)


def test_residuals_orthogonal_to_regressors():
    rng = np.random.default_rng(1)
    T, V = 60, 5
    regressors = rng.normal(size=(T, 3))
    data = regressors @ rng.normal(size=(3, V)) + rng.normal(size=(T, V)) + 10.0
    quality = _quality(T, bad=[0, 20, 21])
    nuisance = NuisanceMatrix(values=regressors, names=('a', 'b', 'c'))
    cleaned = regress_nuisance(_matrix(data), nuisance, quality)
    good = quality.good
    resid = cleaned.data[good]
    assert np.allclose(regressors[good].T @ resid, 0.0, atol=1e-8)
    assert np.allclose(resid.sum(axis=0), 0.0, atol=1e-8)
    assert np.all(np.isnan(cleaned.data[~good]))


def test_regression_leaves_input_untouched():
    rng = np.random.default_rng(2)
    data = rng.normal(size=(30, 2))
    matrix = _matrix(data)
    nuisance = NuisanceMatrix(values=rng.normal(size=(30, 1)), names=('x',))
    regress_nuisance(matrix, nuisance, _quality(30, bad=[5]))
    assert np.array_equal(matrix.data, data)


def test_collinear_design_is_singular():
    rng = np.random.default_rng(4)
    x = rng.normal(size=40)
    nuisance = NuisanceMatrix(values=np.column_stack([x, 2 * x + 1]), names=('x', 'y'))
    with pytest.raises(SingularDesignError):
        regress_nuisance(_matrix(rng.normal(size=(40, 3))), nuisance, _quality(40))


def test_too_few_good_frames_is_singular():
    rng = np.random.default_rng(5)
    nuisance = NuisanceMatrix(values=rng.normal(size=(10, 6)), names=tuple('abcdef'))
    quality = _quality(10, bad=[0, 1, 2, 3])
    with pytest.raises(SingularDesignError):
        regress_nuisance(_matrix(rng.normal(size=(10, 2))), nuisance, quality)


def test_linear_detrend_fits_good_frames():
    t = np.arange(20, dtype=float)
    data = np.column_stack([3.0 * t + 2.0, -t])
    data[7] = 1000.0
    out = linear_detrend(_matrix(data), _quality(20, bad=[7]))
    good = np.ones(20, dtype=bool)
    good[7] = False
    assert np.allclose(out.data[good], 0.0, atol=1e-9)
    assert np.all(np.isnan(out.data[7]))


def test_nuisance_channel_order():
    rng = np.random.default_rng(6)
    T, V = 50, 40
    data = rng.normal(size=(T, V))
    labels = np.zeros(V, dtype=int)
    labels[:10] = 1
    labels[10:20] = 3
    motion = rng.normal(scale=0.1, size=(T, 6))
    quality = _quality(T, bad=[3, 4])
    config = NuisanceConfig(n_compcor=2)
    matrix = linear_detrend(_matrix(data), quality)
    nuisance = build_nuisance_matrix(matrix, quality, motion, labels, config)
    expected = (
        list(MOTION_NAMES)
        + [f'{n}_power2' for n in MOTION_NAMES]
        + [f'{n}_derivative1' for n in MOTION_NAMES]
        + [f'{n}_power2_derivative1' for n in MOTION_NAMES]
        + ['csf', 'wm', 'csf_derivative1', 'wm_derivative1', 'compcor_00', 'compcor_01']
    )
    assert list(nuisance.names) == expected
    assert nuisance.values.shape == (T, len(expected))
    assert np.all(np.isfinite(nuisance.values))
    assert np.allclose(nuisance.column('trans_x'), motion[:, 0])
    assert nuisance.column('rot_z_derivative1')[0] == 0.0


def test_absent_tissue_class_is_skipped():
    rng = np.random.default_rng(7)
    T, V = 30, 6
    labels = np.array([1, 1, 1, 0, 0, 0])
    config = NuisanceConfig(motion_derivatives=False, n_compcor=0)
    nuisance = build_nuisance_matrix(
        _matrix(rng.normal(size=(T, V))), _quality(T), None, labels, config
    )
    assert nuisance.names == ('csf', 'csf_derivative1')


def test_compcor_nan_at_bad_frames():
    rng = np.random.default_rng(8)
    data = rng.normal(size=(40, 30))
    quality = _quality(40, bad=[10, 11])
    comps = compcor_components(data, quality, n_components=3)
    assert comps.shape == (40, 3)
    assert np.all(np.isnan(comps[[10, 11]]))
    assert np.all(np.isfinite(comps[quality.good]))


def test_detrend_regressor_removes_trend_without_nuisance():
    t = np.arange(25, dtype=float)
    data = np.column_stack([t, 2 * t + 5])
    config = NuisanceConfig(n_compcor=0)
    result = DetrendRegressor(config).run(_matrix(data), _quality(25, bad=[12]))
    assert result.nuisance.n_channels == 0
    good = result.cleaned.data[~np.isnan(result.cleaned.data[:, 0])]
    assert np.allclose(good, 0.0, atol=1e-9)
