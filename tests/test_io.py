import json

import numpy as np
import pandas as pd
import pytest

from rsnet.io import load_inputs, load_motion_table, load_node_metrics, save_result
from rsnet.pipeline import RestingStatePipeline
from rsnet.preprocessing.config import PipelineConfig, RoiConfig
from rsnet.preprocessing.nuisance import MOTION_NAMES


def identity_map(point):
    return np.asarray(point, dtype=float)


def test_save_result_writes_tables(synthetic_inputs, tmp_path):
    config = PipelineConfig(roi=RoiConfig(radius=1.5))
    result = RestingStatePipeline(config, identity_map).run(synthetic_inputs)
    paths = save_result(result, tmp_path / 'out')

    for name in ('roi_timeseries', 'connectivity', 'adjacency', 'node_metrics', 'global_metrics'):
        assert paths[name].exists()
    assert np.allclose(np.load(tmp_path / 'out' / 'connectivity.npy'), result.connectivity.matrix)

    nodes = load_node_metrics(tmp_path / 'out')
    assert len(nodes) == 6
    assert np.isnan(nodes['degree'].iloc[5])

    with open(paths['global_metrics'], encoding='utf-8') as f:
        payload = json.load(f)
    assert payload['missing_rois'] == ['6']
    assert payload['qc_metrics']['n_bad_frames'] == 4.0
    assert 'global_efficiency' in payload['global_metrics']

    quality = pd.read_csv(paths['frame_quality'], index_col='frame')
    assert quality['good'].sum() == result.quality.n_good


def test_load_motion_table_tsv(tmp_path):
    path = tmp_path / 'confounds.tsv'
    rng = np.random.default_rng(0)
    df = pd.DataFrame(rng.normal(size=(5, 6)), columns=list(MOTION_NAMES))
    df['framewise_displacement'] = [np.nan, 0.1, 0.3, 0.05, 0.0]
    df.to_csv(path, sep='\t', index=False, na_rep='n/a')
    motion, displacement = load_motion_table(path)
    assert motion.shape == (5, 6)
    assert np.allclose(motion, df[list(MOTION_NAMES)].to_numpy())
    assert np.allclose(displacement, [0.0, 0.1, 0.3, 0.05, 0.0])


def test_load_motion_table_without_motion_columns(tmp_path):
    path = tmp_path / 'fd.csv'
    pd.DataFrame({'framewise_displacement': [0.0, 0.2]}).to_csv(path, index=False)
    motion, displacement = load_motion_table(path)
    assert motion is None
    assert np.allclose(displacement, [0.0, 0.2])


def test_single_column_tsv_motion_table(tmp_path):
    path = tmp_path / 'fd.tsv'
    path.write_text('framewise_displacement\nn/a\n0.25\n0.1\n')
    motion, displacement = load_motion_table(path)
    assert motion is None
    assert np.allclose(displacement, [0.0, 0.25, 0.1])


def test_load_inputs_from_nifti(tmp_path):
    nib = pytest.importorskip('nibabel')
    rng = np.random.default_rng(1)
    func = nib.Nifti1Image(rng.normal(size=(4, 4, 4, 10)), np.eye(4))
    func.header.set_zooms((1.0, 1.0, 1.0, 2.5))
    nib.save(func, tmp_path / 'func.nii.gz')
    mask = np.zeros((4, 4, 4), dtype=np.uint8)
    mask[1:3, 1:3, 1:3] = 1
    nib.save(nib.Nifti1Image(mask, np.eye(4)), tmp_path / 'mask.nii.gz')
    nib.save(nib.Nifti1Image(np.full((4, 4, 4), 3, dtype=np.int16), np.eye(4)), tmp_path / 'seg.nii.gz')
    pd.DataFrame(np.zeros((10, 6)), columns=list(MOTION_NAMES)).to_csv(tmp_path / 'motion.csv', index=False)
    pd.DataFrame({'x': [1.0], 'y': [1.0], 'z': [1.0]}).to_csv(tmp_path / 'atlas.csv', index=False)

    inputs, affine = load_inputs(
        tmp_path / 'func.nii.gz',
        tmp_path / 'mask.nii.gz',
        tmp_path / 'motion.csv',
        tmp_path / 'atlas.csv',
        tmp_path / 'seg.nii.gz',
    )
    assert inputs.matrix.n_voxels == 8
    assert inputs.matrix.n_frames == 10
    assert inputs.tr == pytest.approx(2.5)
    assert inputs.displacement is None
    assert inputs.motion_params.shape == (10, 6)
    assert inputs.tissue_labels.shape == (4, 4, 4)
    assert len(inputs.atlas) == 1
    assert np.allclose(affine, np.eye(4))
