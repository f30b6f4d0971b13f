"""Attach terrain elevations to computed junctions."""

import logging
from dataclasses import dataclass
from typing import List

from .elevation import ElevationProvider
from .models import ComputedJunction, ElevationSample

logger = logging.getLogger('yjunction.enricher')


@dataclass
class EnrichmentStats:
    attempted: int = 0
    resolved: int = 0   # junction elevation found
    complete: int = 0   # junction and all three neighbors found
    skipped: bool = False

    @property
    def coverage(self) -> float:
        return self.resolved / self.attempted if self.attempted else 0.0


class ElevationEnricher:
    """Looks up the junction and its three neighbors for every junction.

    Neighbor lookups follow the junction's bearing order, so
    ``neighbors[0]`` and ``neighbors[1]`` bound the smallest angle.
    """

    def __init__(self, provider: ElevationProvider):
        self.provider = provider
        self.stats = EnrichmentStats()

    def enrich(self, junctions: List[ComputedJunction]) -> List[ComputedJunction]:
        if not self.provider.enabled:
            self.stats.skipped = True
            logger.info("Elevation provider disabled, skipping enrichment")
            return junctions

        for i, junction in enumerate(junctions, start=1):
            sample = ElevationSample(
                junction=self.provider.elevation_for(junction.lat, junction.lon),
                neighbors=tuple(
                    self.provider.elevation_for(n.lat, n.lon) for n in junction.neighbors
                ),
            )
            junction.elevation = sample

            self.stats.attempted += 1
            if sample.junction is not None:
                self.stats.resolved += 1
            if sample.is_complete:
                self.stats.complete += 1

            if i % 10000 == 0:
                logger.info("Enriched %d/%d junctions", i, len(junctions))

        logger.info(
            "Elevation resolved for %d/%d junctions (%d complete), tiles: %s",
            self.stats.resolved, self.stats.attempted, self.stats.complete,
            self.provider.cache_stats(),
        )
        return junctions
