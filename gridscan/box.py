# gridscan/box.py
"""Cubic capture volume used to select the points that form a scan."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

import numpy as np

from utils.helpers import fmt_array
from utils.logger import Logger

from .grid import GridPointCloud

LOG = Logger.get_logger("box")

# Face detection lives outside the core: it gets the cloud and returns the
# 3D face position or None.
FaceDetector = Callable[[GridPointCloud], Optional[np.ndarray]]


@dataclass
class ScanBox:
    center: np.ndarray = field(default_factory=lambda: np.zeros(3))
    size: float = 400.0

    def __post_init__(self) -> None:
        self.center = np.asarray(self.center, dtype=float).reshape(3).copy()
        self.size = float(self.size)

    def is_inside(self, points: np.ndarray) -> np.ndarray:
        """Strict per-axis test |p - center| < size / 2, vectorized over (N, 3)."""
        P = np.asarray(points, dtype=float).reshape(-1, 3)
        return np.all(np.abs(P - self.center) < 0.5 * self.size, axis=1)

    def corners(self) -> Tuple[np.ndarray, np.ndarray]:
        half = 0.5 * self.size
        return self.center - half, self.center + half

    def select(self, cloud: GridPointCloud) -> GridPointCloud:
        """New cloud with the visible points inside the box, centered on the box."""
        return GridPointCloud.from_selection(cloud, self.is_inside, center=self.center)

    def center_in_face(self, cloud: GridPointCloud, detect_face: FaceDetector) -> bool:
        """Move the box onto a detected face, pushed back by 0.2 * size in z."""
        face = detect_face(cloud)
        if face is None:
            LOG.info("center in face: no face detected, box unchanged")
            return False
        self.center = np.asarray(face, dtype=float).reshape(3) + np.array([0.0, 0.0, 0.2 * self.size])
        LOG.info(f"center in face: box moved to {fmt_array(self.center)}")
        return True
