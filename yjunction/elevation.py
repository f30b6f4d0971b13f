"""Terrain elevation lookups backed by GSI JPGIS DEM XML tiles.

Each tile file holds one rectangular grid (a 5 m or 10 m mesh) with its
geographic envelope. Files are indexed by envelope on first use, parsed only
when a query lands inside them, and kept in memory for the rest of the run.

Usage:
    provider = ElevationProvider(Path("data/gsi"))
    provider.elevation_for(35.3606, 138.7274)  # -> 3775.9 or None
"""

import logging
import math
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

import numpy as np

from . import config

logger = logging.getLogger('yjunction.elevation')

# (min_lat, min_lon, max_lat, max_lon)
Envelope = Tuple[float, float, float, float]

_EDGE_EPS = 1e-9

# FG-GML-5338-46-97-DEM5A-20161001.xml / FG-GML-5338-46-DEM10B-20161001.xml
_MESH_NAME_RE = re.compile(r"FG-GML-(\d{4})-(\d{2})(?:-(\d{2}))?-DEM", re.IGNORECASE)


class TileParseError(Exception):
    """A DEM tile file is unreadable or structurally invalid."""


@dataclass
class GsiTile:
    """One parsed DEM grid. Row 0 is the northern edge; no-data cells are NaN."""
    lower_corner: Tuple[float, float]  # (lat, lon) south-west
    upper_corner: Tuple[float, float]  # (lat, lon) north-east
    elevations: np.ndarray             # shape (height, width)

    @property
    def width(self) -> int:
        return self.elevations.shape[1]

    @property
    def height(self) -> int:
        return self.elevations.shape[0]

    def contains(self, lat: float, lon: float) -> bool:
        return (
            self.lower_corner[0] - _EDGE_EPS <= lat <= self.upper_corner[0] + _EDGE_EPS
            and self.lower_corner[1] - _EDGE_EPS <= lon <= self.upper_corner[1] + _EDGE_EPS
        )

    def elevation_at(self, lat: float, lon: float) -> Optional[float]:
        """Elevation of the grid cell containing the point, or None."""
        if not self.contains(lat, lon):
            return None

        lat_frac = (lat - self.lower_corner[0]) / (self.upper_corner[0] - self.lower_corner[0])
        lon_frac = (lon - self.lower_corner[1]) / (self.upper_corner[1] - self.lower_corner[1])

        # Grid order is +x-y: west to east, north to south
        col = min(max(int(lon_frac * self.width), 0), self.width - 1)
        row = min(max(int((1.0 - lat_frac) * self.height), 0), self.height - 1)

        value = self.elevations[row, col]
        if np.isnan(value):
            return None
        return float(value)


def _corner(element: Optional[ET.Element], name: str, path: Path) -> Tuple[float, float]:
    if element is None or not element.text:
        raise TileParseError(f"{path.name}: no {name} found")
    parts = element.text.split()
    if len(parts) != 2:
        raise TileParseError(f"{path.name}: invalid {name} {element.text!r}")
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        raise TileParseError(f"{path.name}: invalid {name} {element.text!r}") from None


def _int_pair(element: Optional[ET.Element], name: str, path: Path) -> Tuple[int, int]:
    if element is None or not element.text:
        raise TileParseError(f"{path.name}: no {name} found")
    parts = element.text.split()
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise TileParseError(f"{path.name}: invalid {name} {element.text!r}")
    return int(parts[0]), int(parts[1])


def parse_gsi_tile(path: Path, nodata: float = config.GSI_NODATA) -> GsiTile:
    """
    Parse a GSI JPGIS (GML) DEM file.

    Cells before ``gml:startPoint`` or past the end of ``gml:tupleList`` are
    missing from the file and become NaN, as do cells holding ``nodata``.

    Raises:
        TileParseError: if the file cannot be read or lacks required elements.
    """
    path = Path(path)
    try:
        root = ET.parse(path).getroot()
    except (ET.ParseError, OSError) as e:
        raise TileParseError(f"{path.name}: {e}") from e

    lower = _corner(root.find(".//{*}Envelope/{*}lowerCorner"), "lowerCorner", path)
    upper = _corner(root.find(".//{*}Envelope/{*}upperCorner"), "upperCorner", path)
    if upper[0] <= lower[0] or upper[1] <= lower[1]:
        raise TileParseError(f"{path.name}: empty envelope {lower} {upper}")

    high_x, high_y = _int_pair(root.find(".//{*}GridEnvelope/{*}high"), "high", path)
    width, height = high_x + 1, high_y + 1

    start_element = root.find(".//{*}startPoint")
    start_x, start_y = (
        _int_pair(start_element, "startPoint", path) if start_element is not None else (0, 0)
    )
    start = start_y * width + start_x

    tuple_list = root.find(".//{*}tupleList")
    if tuple_list is None:
        raise TileParseError(f"{path.name}: no tupleList found")

    values = []
    for line in (tuple_list.text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        parts = line.split(',')
        if len(parts) != 2:
            raise TileParseError(f"{path.name}: invalid tuple {line!r}")
        try:
            values.append(float(parts[1]))
        except ValueError:
            raise TileParseError(f"{path.name}: invalid elevation {line!r}") from None

    if start + len(values) > width * height:
        raise TileParseError(
            f"{path.name}: {len(values)} values from offset {start} "
            f"overflow a {width}x{height} grid"
        )

    grid = np.full(width * height, np.nan)
    data = np.array(values, dtype=float)
    data[data <= nodata] = np.nan
    grid[start:start + len(data)] = data

    return GsiTile(
        lower_corner=lower,
        upper_corner=upper,
        elevations=grid.reshape(height, width),
    )


def envelope_from_filename(name: str) -> Optional[Envelope]:
    """Envelope encoded in a GSI file name's mesh code, if present.

    First mesh: 40' x 1 degree, second mesh: 8x8 split, third mesh: 10x10.
    """
    match = _MESH_NAME_RE.search(name)
    if not match:
        return None
    first, second, third = match.groups()

    lat = int(first[:2]) / 1.5
    lon = int(first[2:]) + 100.0
    lat_size, lon_size = 1 / 12, 1 / 8
    lat += int(second[0]) * lat_size
    lon += int(second[1]) * lon_size

    if third is not None:
        lat_size, lon_size = lat_size / 10, lon_size / 10
        lat += int(third[0]) * lat_size
        lon += int(third[1]) * lon_size

    return (lat, lon, lat + lat_size, lon + lon_size)


def envelope_from_header(path: Path) -> Optional[Envelope]:
    """Read just far enough into the XML to find its envelope."""
    lower = upper = None
    try:
        for _, element in ET.iterparse(str(path), events=("end",)):
            tag = element.tag.rsplit('}', 1)[-1]
            if tag == "lowerCorner":
                lower = _corner(element, "lowerCorner", path)
            elif tag == "upperCorner":
                upper = _corner(element, "upperCorner", path)
            if lower is not None and upper is not None:
                return (lower[0], lower[1], upper[0], upper[1])
    except (ET.ParseError, OSError, TileParseError) as e:
        logger.warning("Could not read envelope of %s: %s", path, e)
    return None


class TileCache:
    """Parsed tiles keyed by file path, kept for the lifetime of the cache.

    A file that fails to parse is remembered as unavailable and never retried.
    """

    def __init__(self, loader: Callable[[Path], GsiTile] = parse_gsi_tile):
        self._loader = loader
        self._tiles: Dict[Path, Optional[GsiTile]] = {}
        self.failed: Set[Path] = set()
        self.parse_count = 0

    def get(self, path: Path) -> Optional[GsiTile]:
        if path in self._tiles:
            return self._tiles[path]

        self.parse_count += 1
        try:
            tile = self._loader(path)
            logger.debug("Loaded tile %s (%dx%d)", path.name, tile.width, tile.height)
        except TileParseError as e:
            logger.warning("Failed to parse tile %s: %s", path, e)
            self.failed.add(path)
            tile = None
        self._tiles[path] = tile
        return tile

    def __contains__(self, path: Path) -> bool:
        return path in self._tiles

    def __len__(self) -> int:
        return len(self._tiles)


class ElevationProvider:
    """
    Resolve (lat, lon) to terrain elevation from a directory of DEM tiles.

    Missing directory, uncovered points and no-data cells all yield None;
    nothing here raises for a coverage gap.
    """

    # Index cells match the first-mesh grid: 40' of latitude by 1 degree
    INDEX_LAT_CELLS_PER_DEG = 1.5

    def __init__(self, data_dir: Optional[Path], cache: Optional[TileCache] = None):
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.cache = cache if cache is not None else TileCache()
        self._index: Optional[Dict[Tuple[int, int], List[Tuple[Path, Envelope]]]] = None
        self._indexed_files = 0
        self._enabled = False

        if self.data_dir is None:
            logger.info("No elevation directory configured, elevation disabled")
        elif not self.data_dir.is_dir():
            logger.warning("Elevation directory %s not found, elevation disabled", self.data_dir)
        else:
            self._enabled = True
            logger.info("Initialized ElevationProvider with data directory: %s", self.data_dir)

    @property
    def enabled(self) -> bool:
        """Whether the directory existed when the provider was created."""
        return self._enabled

    def _index_key(self, lat: float, lon: float) -> Tuple[int, int]:
        return (math.floor(lat * self.INDEX_LAT_CELLS_PER_DEG), math.floor(lon))

    def _build_index(self) -> None:
        """Index every tile file by envelope (one-time directory scan)."""
        self._index = {}
        files = sorted(self.data_dir.rglob(config.GSI_TILE_GLOB))
        for path in files:
            envelope = envelope_from_filename(path.name) or envelope_from_header(path)
            if envelope is None:
                continue
            min_lat, min_lon, max_lat, max_lon = envelope
            lat_lo = math.floor((min_lat - _EDGE_EPS) * self.INDEX_LAT_CELLS_PER_DEG)
            lat_hi = math.floor((max_lat + _EDGE_EPS) * self.INDEX_LAT_CELLS_PER_DEG)
            for lat_key in range(lat_lo, lat_hi + 1):
                for lon_key in range(math.floor(min_lon - _EDGE_EPS), math.floor(max_lon + _EDGE_EPS) + 1):
                    self._index.setdefault((lat_key, lon_key), []).append((path, envelope))
            self._indexed_files += 1
        logger.info("Indexed %d of %d tile files", self._indexed_files, len(files))

    def _candidate_tiles(self, lat: float, lon: float) -> List[Path]:
        if self._index is None:
            self._build_index()
        return [
            path
            for path, (min_lat, min_lon, max_lat, max_lon) in self._index.get(self._index_key(lat, lon), ())
            if min_lat - _EDGE_EPS <= lat <= max_lat + _EDGE_EPS
            and min_lon - _EDGE_EPS <= lon <= max_lon + _EDGE_EPS
        ]

    def elevation_for(self, lat: float, lon: float) -> Optional[float]:
        """Elevation in meters, or None when no tile has data for the point."""
        if not self.enabled:
            return None

        for path in self._candidate_tiles(lat, lon):
            tile = self.cache.get(path)
            if tile is None:
                continue
            elevation = tile.elevation_at(lat, lon)
            if elevation is not None:
                return elevation
        return None

    def cache_stats(self) -> Dict[str, int]:
        return {
            "indexed": self._indexed_files,
            "cached": len(self.cache),
            "parses": self.cache.parse_count,
            "failed": len(self.cache.failed),
        }
