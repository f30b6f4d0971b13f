"""Stream road ways and nodes out of an OSM extract.

The extract is read in two passes so the full road graph is never built:

1. Ways: every way with an allowed highway tag is recorded, and each of its
   nodes gets the way added to its incident-way list.
2. Nodes: coordinates are kept only for nodes touched by exactly three
   allowed ways and for the node one step along each of those ways.

osmium decodes plain and dense node blocks into the same ``node()``
callback, so nothing downstream knows which encoding a block used.

Usage:
    result = scan(Path("japan-latest.osm.pbf"), BBox.parse("139.5,35.5,140.0,35.9"))
    candidates = JunctionDetector().detect(result)
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

import osmium

from . import config
from .models import RoadNode, RoadWay

logger = logging.getLogger('yjunction.scanner')


class ScanError(Exception):
    """The map extract is missing or could not be decoded."""


@dataclass(frozen=True)
class BBox:
    """Geographic filter rectangle in degrees."""
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def parse(cls, text: str) -> "BBox":
        """Parse ``min_lon,min_lat,max_lon,max_lat``."""
        parts = text.split(',')
        if len(parts) != 4:
            raise ValueError(
                "Bbox must have 4 values: min_lon,min_lat,max_lon,max_lat"
            )
        try:
            min_lon, min_lat, max_lon, max_lat = (float(p) for p in parts)
        except ValueError:
            raise ValueError(f"Bbox values must be numbers: {text!r}") from None
        if min_lon > max_lon or min_lat > max_lat:
            raise ValueError(f"Bbox minimum exceeds maximum: {text!r}")
        return cls(min_lon, min_lat, max_lon, max_lat)

    def contains(self, lat: float, lon: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lon <= lon <= self.max_lon


class NodeConnectionCounter:
    """Tracks which allowed ways touch each node.

    Way ids are kept per node in the order the ways were first seen, so the
    neighbor order of a junction is stable across runs of the same extract.
    """

    def __init__(self, highway_types: Iterable[str] = config.HIGHWAY_TYPES):
        self.highway_types = frozenset(highway_types)
        self._node_to_ways: Dict[int, List[int]] = {}
        self._ways: Dict[int, RoadWay] = {}

    def is_valid_highway_type(self, highway_type: str) -> bool:
        return highway_type in self.highway_types

    def add_way(self, way: RoadWay) -> None:
        """Record a way and count it once against each node it contains."""
        self._ways[way.id] = way
        for node_id in way.nodes:
            way_ids = self._node_to_ways.setdefault(node_id, [])
            # Closed ways list their first node twice
            if way.id not in way_ids:
                way_ids.append(way.id)

    def connection_count(self, node_id: int) -> int:
        return len(self._node_to_ways.get(node_id, ()))

    def node_count(self) -> int:
        return len(self._node_to_ways)

    def way_count(self) -> int:
        return len(self._ways)

    def find_candidates(self) -> List[int]:
        """Node ids with exactly three incident ways, ascending."""
        return sorted(
            node_id
            for node_id, way_ids in self._node_to_ways.items()
            if len(way_ids) == config.JUNCTION_DEGREE
        )

    def count_over_degree(self) -> int:
        """Nodes excluded because more than three allowed ways meet there."""
        return sum(
            1 for way_ids in self._node_to_ways.values()
            if len(way_ids) > config.JUNCTION_DEGREE
        )

    def neighbors_of(self, node_id: int) -> List[Tuple[int, RoadWay]]:
        """
        One (neighbor_id, way) pair per incident way.

        The neighbor is the next node along the way in its stored direction,
        or the previous node when the junction ends the way. Single-node ways
        contribute nothing.
        """
        result = []
        for way_id in self._node_to_ways.get(node_id, ()):
            way = self._ways[way_id]
            idx = way.nodes.index(node_id)
            if idx + 1 < len(way.nodes):
                result.append((way.nodes[idx + 1], way))
            elif idx > 0:
                result.append((way.nodes[idx - 1], way))
        return result


@dataclass
class ScanResult:
    """Adjacency summary produced by the two scan passes."""
    counter: NodeConnectionCounter
    nodes: Dict[int, RoadNode]
    candidate_ids: List[int]
    bbox: BBox
    ways_seen: int = 0
    candidates_total: int = 0
    candidates_outside_bbox: int = 0
    over_degree: int = 0

    @property
    def road_ways(self) -> int:
        return self.counter.way_count()


class _WayPass(osmium.SimpleHandler):
    """First pass: record allowed ways and count node connections."""

    def __init__(self, counter: NodeConnectionCounter):
        super().__init__()
        self.counter = counter
        self.way_count = 0
        self.road_count = 0

    def way(self, w):
        self.way_count += 1
        if self.way_count % config.WAY_PROGRESS_INTERVAL == 0:
            logger.info(
                "Scanned %s ways, found %s roads...",
                f"{self.way_count:,}", f"{self.road_count:,}",
            )

        highway = w.tags.get("highway", "")
        if not self.counter.is_valid_highway_type(highway):
            return

        self.counter.add_way(RoadWay(
            id=w.id,
            nodes=[n.ref for n in w.nodes],
            highway_type=highway,
            bridge=w.tags.get("bridge", "no") not in ("no", ""),
            tunnel=w.tags.get("tunnel", "no") not in ("no", ""),
        ))
        self.road_count += 1


class _NodePass(osmium.SimpleHandler):
    """Second pass: resolve coordinates for the needed nodes only."""

    def __init__(self, needed_nodes: Set[int]):
        super().__init__()
        self.needed_nodes = needed_nodes
        self.nodes: Dict[int, RoadNode] = {}
        self._node_count = 0

    def node(self, n):
        self._node_count += 1
        if self._node_count % config.NODE_PROGRESS_INTERVAL == 0:
            logger.info(
                "Scanned %s nodes, found %s needed...",
                f"{self._node_count:,}", f"{len(self.nodes):,}",
            )

        if n.id not in self.needed_nodes:
            return
        location = n.location
        if not location.valid():
            return
        self.nodes[n.id] = RoadNode(id=n.id, lat=location.lat, lon=location.lon)


def _apply(handler: osmium.SimpleHandler, path: Path, stage: str) -> None:
    try:
        handler.apply_file(str(path))
    except (RuntimeError, OSError) as e:
        raise ScanError(f"{stage}: failed to read {path}: {e}") from e


def scan(
    path: Path,
    bbox: BBox,
    highway_types: Optional[Iterable[str]] = None,
) -> ScanResult:
    """Run both passes over ``path`` and summarise junction candidates in ``bbox``.

    Raises:
        ScanError: if the file is missing or cannot be decoded.
    """
    path = Path(path)
    if not path.is_file():
        raise ScanError(f"Map extract not found: {path}")

    counter = NodeConnectionCounter(
        config.HIGHWAY_TYPES if highway_types is None else highway_types
    )

    logger.info("Pass 1: collecting road ways from %s", path)
    way_pass = _WayPass(counter)
    _apply(way_pass, path, "Pass 1")
    logger.info(
        "Pass 1 complete: %s ways, %s roads, %s road nodes",
        f"{way_pass.way_count:,}", f"{way_pass.road_count:,}",
        f"{counter.node_count():,}",
    )

    candidates = counter.find_candidates()
    over_degree = counter.count_over_degree()
    logger.info(
        "Found %s junction candidates (%s nodes excluded with more than %d roads)",
        f"{len(candidates):,}", f"{over_degree:,}", config.JUNCTION_DEGREE,
    )

    needed: Set[int] = set(candidates)
    for node_id in candidates:
        needed.update(neighbor_id for neighbor_id, _ in counter.neighbors_of(node_id))

    nodes: Dict[int, RoadNode] = {}
    if needed:
        logger.info("Pass 2: resolving %s node coordinates", f"{len(needed):,}")
        node_pass = _NodePass(needed)
        _apply(node_pass, path, "Pass 2")
        nodes = node_pass.nodes
        logger.info("Pass 2 complete: resolved %s nodes", f"{len(nodes):,}")
    else:
        logger.warning("No junction candidates found, skipping pass 2")

    in_bbox = [
        node_id for node_id in candidates
        if node_id in nodes and bbox.contains(nodes[node_id].lat, nodes[node_id].lon)
    ]
    logger.info("%s candidates inside bbox", f"{len(in_bbox):,}")

    return ScanResult(
        counter=counter,
        nodes=nodes,
        candidate_ids=in_bbox,
        bbox=bbox,
        ways_seen=way_pass.way_count,
        candidates_total=len(candidates),
        candidates_outside_bbox=len(candidates) - len(in_bbox),
        over_degree=over_degree,
    )
