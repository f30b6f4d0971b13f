"""Angles and bearings of the three roads meeting at a Y-junction."""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from . import config
from .geometry import bearing, clockwise_gap, haversine_distance, sector_gaps
from .models import AngleType, ComputedJunction, JunctionCandidate

logger = logging.getLogger('yjunction.calculator')


@dataclass
class CalculationStats:
    computed: int = 0
    degenerate: int = 0
    over_cutoff: int = 0


def classify_angle(
    angle_1: float,
    very_sharp_max: float = config.VERY_SHARP_MAX_DEG,
    sharp_max: float = config.SHARP_MAX_DEG,
) -> AngleType:
    """Bucket a junction by its smallest angle."""
    if angle_1 < very_sharp_max:
        return AngleType.VERY_SHARP
    if angle_1 < sharp_max:
        return AngleType.SHARP
    return AngleType.NORMAL


def linked_order(bearings: Tuple[float, float, float]) -> Tuple[int, int, int]:
    """
    Index order of ``bearings`` that lines up with ascending sector angles.

    Returns (i, j, k) such that the sector between bearings i and j is the
    smallest, between j and k the middle one, and between k and i the largest.
    """
    # Walk the bearings clockwise; sector n lies between cw[n] and cw[n + 1]
    cw = sorted(range(3), key=lambda idx: bearings[idx])
    gaps = [
        clockwise_gap(bearings[cw[n]], bearings[cw[(n + 1) % 3]]) for n in range(3)
    ]
    gaps[2] = 360.0 - gaps[0] - gaps[1]

    smallest = min(range(3), key=lambda n: (gaps[n], n))
    first, second = cw[smallest], cw[(smallest + 1) % 3]
    third = cw[(smallest + 2) % 3]

    # The middle angle must sit between the second and third bearing,
    # otherwise walk the smallest sector the other way round
    gap_second_third = gaps[(smallest + 1) % 3]
    gap_third_first = gaps[(smallest + 2) % 3]
    if gap_second_third > gap_third_first:
        first, second = second, first
    return first, second, third


def compute_junction(
    candidate: JunctionCandidate,
    very_sharp_max: float = config.VERY_SHARP_MAX_DEG,
    sharp_max: float = config.SHARP_MAX_DEG,
) -> ComputedJunction:
    """
    Resolve bearings, sorted angles and angle type for one candidate.

    Raises:
        ValueError: if a neighbor coincides with the junction, leaving its
            bearing undefined.
    """
    for neighbor in candidate.neighbors:
        if haversine_distance(candidate.lat, candidate.lon, neighbor.lat, neighbor.lon) == 0:
            raise ValueError(
                f"Junction {candidate.node_id}: neighbor {neighbor.id} "
                "shares its coordinates"
            )

    raw = tuple(
        bearing(candidate.lat, candidate.lon, n.lat, n.lon) for n in candidate.neighbors
    )
    order = linked_order(raw)
    bearings = tuple(raw[i] for i in order)
    angles = tuple(sorted(sector_gaps(raw)))

    return ComputedJunction(
        node_id=candidate.node_id,
        lat=candidate.lat,
        lon=candidate.lon,
        angles=angles,
        bearings=bearings,
        neighbors=tuple(candidate.neighbors[i] for i in order),
        ways=tuple(candidate.ways[i] for i in order),
        angle_type=classify_angle(angles[0], very_sharp_max, sharp_max),
    )


def passes_angle_cutoff(junction: ComputedJunction, cutoff: Optional[float]) -> bool:
    """False when angle_1 is at or above ``cutoff`` (a plain T-intersection)."""
    return cutoff is None or junction.angle_1 < cutoff


def compute_junctions(
    candidates: Iterable[JunctionCandidate],
    cutoff: Optional[float] = config.ANGLE_1_CUTOFF_DEG,
    stats: Optional[CalculationStats] = None,
) -> List[ComputedJunction]:
    """Compute every candidate, skipping degenerate ones and those over the cutoff."""
    if stats is None:
        stats = CalculationStats()

    results = []
    for candidate in candidates:
        try:
            junction = compute_junction(candidate)
        except ValueError as e:
            stats.degenerate += 1
            logger.debug("Skipping junction: %s", e)
            continue

        if not passes_angle_cutoff(junction, cutoff):
            stats.over_cutoff += 1
            continue

        stats.computed += 1
        if stats.computed <= config.LOG_FIRST_JUNCTIONS:
            logger.info(
                "Node %d: angles [%.1f, %.1f, %.1f] type=%s",
                junction.node_id, *junction.angles, junction.angle_type.value,
            )
        results.append(junction)

    logger.info(
        "Angle calculation complete: %d kept, %d degenerate, %d over cutoff",
        stats.computed, stats.degenerate, stats.over_cutoff,
    )
    return results
