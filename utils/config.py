from __future__ import annotations

from pathlib import Path

# ============================== PROJECT DEFAULTS =============================

# Where scans live (code can override this)
DATA_ROOT: Path = Path("data/scans")

# Input scan and outputs written next to it
SCAN_FILE: str = "scan.points"
PROCESSED_SUFFIX: str = "_processed.points"
OUTPUT_DIR_NAME: str = "out"

# Serialized point format: a masked cell is written as six copies of this value
INVISIBLE_SENTINEL: int = -99

# Sensor units are millimetres; two points further apart than this are not
# joined by an edge (stored squared, see CloudCfg).
MAX_SEPARATION: float = 120.0

# Back side offset along the inverse normal and the multiplier for interior points
BACK_OFFSET: float = 0.01
BACK_INTERIOR_FACTOR: float = 10.0

# Opaque alpha channel of packed ARGB colors
ALPHA_OPAQUE: int = 0xFF000000
