"""Data model for road nodes, ways and computed Y-junctions."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .geometry import mean_bearing


@dataclass(frozen=True)
class RoadNode:
    """OSM node with coordinates."""
    id: int
    lat: float
    lon: float


@dataclass
class RoadWay:
    """OSM way carrying an allowed highway classification."""
    id: int
    nodes: List[int]  # Node IDs in stored order
    highway_type: str = ""
    bridge: bool = False
    tunnel: bool = False


class AngleType(Enum):
    """Classification of a junction by its smallest angle."""
    VERY_SHARP = "very_sharp"
    SHARP = "sharp"
    NORMAL = "normal"


@dataclass
class JunctionCandidate:
    """A node where exactly three allowed ways meet.

    ``neighbors[i]`` is the node one step along ``ways[i]``; the order is the
    order in which the ways were discovered while scanning.
    """
    node_id: int
    lat: float
    lon: float
    neighbors: Tuple[RoadNode, RoadNode, RoadNode]
    ways: Tuple[RoadWay, RoadWay, RoadWay]

    def __post_init__(self):
        if len(self.neighbors) != 3 or len(self.ways) != 3:
            raise ValueError(
                f"Junction {self.node_id} needs 3 neighbors and 3 ways, "
                f"got {len(self.neighbors)} and {len(self.ways)}"
            )
        self.neighbors = tuple(self.neighbors)
        self.ways = tuple(self.ways)


@dataclass
class ElevationSample:
    """Terrain elevation (meters) at a junction and its three neighbors.

    Any value may be None when no tile covers the point. Derived values are
    None whenever one of their inputs is.
    """
    junction: Optional[float]
    neighbors: Tuple[Optional[float], Optional[float], Optional[float]]

    @property
    def diffs(self) -> Tuple[Optional[float], Optional[float], Optional[float]]:
        """Absolute junction-to-neighbor differences, per direction."""
        return tuple(
            abs(self.junction - n) if self.junction is not None and n is not None else None
            for n in self.neighbors
        )

    @property
    def min_diff(self) -> Optional[float]:
        diffs = self.diffs
        if any(d is None for d in diffs):
            return None
        return min(diffs)

    @property
    def max_diff(self) -> Optional[float]:
        diffs = self.diffs
        if any(d is None for d in diffs):
            return None
        return max(diffs)

    @property
    def min_angle_diff(self) -> Optional[float]:
        """Difference between the two neighbors bounding the smallest angle."""
        first, second = self.neighbors[0], self.neighbors[1]
        if first is None or second is None:
            return None
        return abs(first - second)

    @property
    def is_complete(self) -> bool:
        return self.junction is not None and all(n is not None for n in self.neighbors)


@dataclass
class ComputedJunction:
    """
    A Y-junction with its geometry resolved.

    ``angles`` are ascending. ``bearings``, ``neighbors`` and ``ways`` share
    one order, chosen so that angle_1 lies between bearings[0] and
    bearings[1], angle_2 between bearings[1] and bearings[2], and angle_3
    between bearings[2] and bearings[0].
    """
    node_id: int
    lat: float
    lon: float
    angles: Tuple[float, float, float]
    bearings: Tuple[float, float, float]
    neighbors: Tuple[RoadNode, RoadNode, RoadNode]
    ways: Tuple[RoadWay, RoadWay, RoadWay]
    angle_type: AngleType
    elevation: Optional[ElevationSample] = None

    @property
    def angle_1(self) -> float:
        return self.angles[0]

    @property
    def angle_2(self) -> float:
        return self.angles[1]

    @property
    def angle_3(self) -> float:
        return self.angles[2]

    @property
    def min_angle_heading(self) -> float:
        """Bearing pointing into the sharpest fork of the junction."""
        return mean_bearing(self.bearings[0], self.bearings[1])

    def streetview_url(self) -> str:
        heading = round(self.min_angle_heading)
        return (
            f"https://www.google.com/maps/@{self.lat},{self.lon},"
            f"3a,75y,{heading}h,90t"
        )
