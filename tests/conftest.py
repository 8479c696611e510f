import os

# keep test runs from writing JSON log files
os.environ.setdefault("GRIDSCAN_LOG_FILE", "0")

import numpy as np
import pytest

from gridscan.grid import GridPointCloud
from utils.helpers import pack_rgb


def make_flat_grid(width, height, spacing=1.0, z=0.0, rgb=(200, 200, 200)):
    """All-visible grid with x = col * spacing, y = row * spacing."""
    cloud = GridPointCloud(width, height)
    rows, cols = np.mgrid[0:height, 0:width]
    cloud.positions[:, 0] = cols.ravel() * spacing
    cloud.positions[:, 1] = rows.ravel() * spacing
    cloud.positions[:, 2] = z
    cloud.colors[:] = pack_rgb(np.array([rgb]))[0]
    cloud.visible[:] = True
    return cloud


@pytest.fixture
def flat_grid():
    return make_flat_grid
