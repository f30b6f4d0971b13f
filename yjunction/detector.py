"""Turn the scanner's adjacency summary into Y-junction candidates."""

import logging
from dataclasses import dataclass
from typing import List

from . import config
from .models import JunctionCandidate
from .scanner import ScanResult

logger = logging.getLogger('yjunction.detector')


@dataclass
class DetectionStats:
    """Why candidates were kept or dropped."""
    examined: int = 0
    emitted: int = 0
    wrong_degree: int = 0
    unresolved_neighbors: int = 0


class JunctionDetector:
    """
    Applies the degree rule to scanned nodes.

    Only nodes with exactly three incident allowed ways survive, and only if
    one neighbor per way could be located. Dropping a node is normal
    filtering, never an error.
    """

    def __init__(self):
        self.stats = DetectionStats()

    def detect(self, scan: ScanResult) -> List[JunctionCandidate]:
        candidates = []
        for node_id in scan.candidate_ids:
            self.stats.examined += 1

            if scan.counter.connection_count(node_id) != config.JUNCTION_DEGREE:
                self.stats.wrong_degree += 1
                continue

            pairs = scan.counter.neighbors_of(node_id)
            neighbors = [scan.nodes.get(neighbor_id) for neighbor_id, _ in pairs]
            if len(pairs) != config.JUNCTION_DEGREE or any(n is None for n in neighbors):
                self.stats.unresolved_neighbors += 1
                logger.debug("Node %d: neighbors not resolvable, dropped", node_id)
                continue

            node = scan.nodes[node_id]
            candidates.append(JunctionCandidate(
                node_id=node_id,
                lat=node.lat,
                lon=node.lon,
                neighbors=tuple(neighbors),
                ways=tuple(way for _, way in pairs),
            ))
            self.stats.emitted += 1

        logger.info(
            "Detected %d junctions (%d wrong degree, %d unresolved neighbors)",
            self.stats.emitted, self.stats.wrong_degree, self.stats.unresolved_neighbors,
        )
        return candidates


def detect_junctions(scan: ScanResult) -> List[JunctionCandidate]:
    return JunctionDetector().detect(scan)
