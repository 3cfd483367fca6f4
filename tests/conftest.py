import numpy as np
import pytest

from rsnet.pipeline import PipelineInputs
from rsnet.preprocessing.roi import AtlasPoint, SystemLabel
from rsnet.timeseries import TimeSeriesMatrix

N_FRAMES = 120
GRID = (8, 8, 8)


def identity_map(point):
    return np.asarray(point, dtype=float)


@pytest.fixture
def synthetic_inputs():
    """Random run on an 8x8x8 grid with two motion spikes and one atlas point off the grid."""
    rng = np.random.default_rng(42)
    volume = 100.0 + rng.normal(size=GRID + (N_FRAMES,))
    mask = np.ones(GRID, dtype=bool)
    tissue = np.full(GRID, 2, dtype=int)
    tissue[0] = 1
    tissue[-1] = 3
    displacement = np.full(N_FRAMES, 0.05)
    displacement[0] = 0.0
    displacement[[30, 80]] = 0.6
    atlas = [
        AtlasPoint(1, (2.0, 2.0, 2.0), SystemLabel.VISUAL),
        AtlasPoint(2, (2.0, 5.0, 2.0), SystemLabel.VISUAL),
        AtlasPoint(3, (5.0, 2.0, 5.0), SystemLabel.DEFAULT_MODE),
        AtlasPoint(4, (5.0, 5.0, 5.0), SystemLabel.DEFAULT_MODE),
        AtlasPoint(5, (2.0, 2.0, 5.0), SystemLabel.SALIENCE),
        AtlasPoint(6, (50.0, 50.0, 50.0), SystemLabel.SALIENCE),
    ]
    return PipelineInputs(
        matrix=TimeSeriesMatrix.from_volume(volume, mask),
        atlas=atlas,
        displacement=displacement,
        motion_params=rng.normal(scale=0.05, size=(N_FRAMES, 6)),
        tissue_labels=tissue,
        voxel_size=(1.0, 1.0, 1.0),
        tr=2.0,
    )
