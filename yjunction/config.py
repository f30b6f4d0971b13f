"""Y-junction importer configuration."""

import os
from pathlib import Path

# Paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DATABASE_FILE = Path(os.environ.get("YJUNCTION_DB", DATA_DIR / "y_junctions.db"))

# Road classification allow-list (OSM highway=*)
HIGHWAY_TYPES = frozenset({
    "primary",
    "secondary",
    "tertiary",
    "residential",
    "unclassified",
    "living_street",
    "pedestrian",
})

# A Y-junction is a node touched by exactly this many allowed ways
JUNCTION_DEGREE = 3

# Angle-type buckets, keyed on the smallest angle (degrees)
VERY_SHARP_MAX_DEG = 30.0   # angle_1 < 30 -> very sharp
SHARP_MAX_DEG = 45.0        # 30 <= angle_1 < 45 -> sharp, otherwise normal

# Junctions with angle_1 at or above this are dropped before persistence.
# None disables the cutoff (angle_1 can never exceed 120 anyway).
ANGLE_1_CUTOFF_DEG = None

# Persistence
BATCH_SIZE = 1000

# GSI JPGIS DEM tiles
GSI_NODATA = -9999.0
GSI_TILE_GLOB = "*.xml"

# Progress reporting
WAY_PROGRESS_INTERVAL = 500_000
NODE_PROGRESS_INTERVAL = 5_000_000
LOG_FIRST_JUNCTIONS = 10

# Logging
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
