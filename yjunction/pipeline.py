"""
Import run orchestration.

One run walks a fixed sequence of stages:

    NOT_STARTED -> SCANNING -> DETECTING -> COMPUTING -> ENRICHING
                -> PERSISTING -> DONE

A run can only fail while scanning (unreadable extract) or persisting
(rejected write). Every other stage absorbs per-junction problems by
filtering or leaving values absent, and reports them in ImportStats.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from . import config
from .calculator import CalculationStats, compute_junctions
from .detector import JunctionDetector
from .elevation import ElevationProvider
from .enricher import ElevationEnricher
from .scanner import BBox, ScanError, scan
from .store import JunctionStore, PersistError

logger = logging.getLogger('yjunction.pipeline')


class ImportStage(Enum):
    NOT_STARTED = "not_started"
    SCANNING = "scanning"
    DETECTING = "detecting"
    COMPUTING = "computing"
    ENRICHING = "enriching"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


_STAGE_ORDER = [
    ImportStage.NOT_STARTED,
    ImportStage.SCANNING,
    ImportStage.DETECTING,
    ImportStage.COMPUTING,
    ImportStage.ENRICHING,
    ImportStage.PERSISTING,
    ImportStage.DONE,
]

# Stages allowed to end the run in FAILED
_FAILABLE = (ImportStage.SCANNING, ImportStage.PERSISTING)


class InvalidTransition(Exception):
    """A stage change that the run's state machine does not allow."""


class ImportRun:
    """Current stage of one import run."""

    def __init__(self):
        self.stage = ImportStage.NOT_STARTED
        self.failed_stage: Optional[ImportStage] = None
        self.error: Optional[Exception] = None

    def advance(self, stage: ImportStage) -> None:
        """Move to ``stage``, which must directly follow the current one."""
        if self.stage not in _STAGE_ORDER or self.stage is ImportStage.DONE:
            raise InvalidTransition(f"Run is finished ({self.stage.value})")
        expected = _STAGE_ORDER[_STAGE_ORDER.index(self.stage) + 1]
        if stage is not expected:
            raise InvalidTransition(
                f"Cannot go from {self.stage.value} to {stage.value}, "
                f"next stage is {expected.value}"
            )
        logger.debug("Stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def fail(self, error: Exception) -> None:
        if self.stage not in _FAILABLE:
            raise InvalidTransition(f"Run cannot fail while {self.stage.value}")
        self.failed_stage = self.stage
        self.error = error
        self.stage = ImportStage.FAILED

    @property
    def finished(self) -> bool:
        return self.stage in (ImportStage.DONE, ImportStage.FAILED)


@dataclass
class ImportOptions:
    """Everything one run needs, usually built from the command line."""
    input_path: Path
    bbox: BBox
    database: Path = config.DATABASE_FILE
    elevation_dir: Optional[Path] = None
    batch_size: int = config.BATCH_SIZE
    angle_cutoff: Optional[float] = config.ANGLE_1_CUTOFF_DEG
    highway_types: frozenset = config.HIGHWAY_TYPES


@dataclass
class ImportStats:
    """Counters gathered across all stages of a run."""
    ways_seen: int = 0
    road_ways: int = 0
    candidates_total: int = 0
    candidates_outside_bbox: int = 0
    over_degree: int = 0

    detected: int = 0
    dropped_unresolved: int = 0

    computed: int = 0
    degenerate: int = 0
    over_cutoff: int = 0

    elevation_skipped: bool = False
    elevation_attempted: int = 0
    elevation_resolved: int = 0
    elevation_complete: int = 0

    rows_inserted: int = 0
    duration_s: float = 0.0
    stages: List[str] = field(default_factory=list)

    def summary(self) -> List[str]:
        """Human-readable end-of-run report, one line per stage."""
        if self.elevation_skipped:
            elevation = "skipped (no elevation directory)"
        else:
            pct = (
                100.0 * self.elevation_resolved / self.elevation_attempted
                if self.elevation_attempted else 0.0
            )
            elevation = (
                f"{self.elevation_resolved}/{self.elevation_attempted} resolved "
                f"({pct:.1f}%), {self.elevation_complete} complete"
            )
        return [
            f"Ways scanned: {self.ways_seen:,} ({self.road_ways:,} roads)",
            f"Candidates: {self.candidates_total:,} "
            f"({self.candidates_outside_bbox:,} outside bbox, "
            f"{self.over_degree:,} nodes with more than three roads)",
            f"Detected: {self.detected:,} "
            f"(dropped {self.dropped_unresolved} unresolved neighbors)",
            f"Computed: {self.computed:,} "
            f"(dropped {self.degenerate} degenerate, {self.over_cutoff} over cutoff)",
            f"Elevation: {elevation}",
            f"Inserted: {self.rows_inserted:,} rows",
            f"Duration: {self.duration_s:.1f}s",
        ]


def run_import(options: ImportOptions, run: Optional[ImportRun] = None) -> ImportStats:
    """
    Scan, detect, compute, enrich and persist junctions for one extract.

    Args:
        options: Run configuration
        run: Optional state tracker, so callers can see where a run stopped

    Returns:
        ImportStats for the completed run

    Raises:
        ScanError: if the extract cannot be read (run marked failed)
        PersistError: if a batch cannot be written (run marked failed)
    """
    if run is None:
        run = ImportRun()
    stats = ImportStats()
    start = time.monotonic()

    def enter(stage: ImportStage) -> None:
        run.advance(stage)
        stats.stages.append(stage.value)

    enter(ImportStage.SCANNING)
    try:
        scan_result = scan(options.input_path, options.bbox, options.highway_types)
    except ScanError as e:
        run.fail(e)
        raise
    stats.ways_seen = scan_result.ways_seen
    stats.road_ways = scan_result.road_ways
    stats.candidates_total = scan_result.candidates_total
    stats.candidates_outside_bbox = scan_result.candidates_outside_bbox
    stats.over_degree = scan_result.over_degree

    enter(ImportStage.DETECTING)
    detector = JunctionDetector()
    candidates = detector.detect(scan_result)
    stats.detected = detector.stats.emitted
    stats.dropped_unresolved = detector.stats.unresolved_neighbors

    enter(ImportStage.COMPUTING)
    calc_stats = CalculationStats()
    junctions = compute_junctions(candidates, options.angle_cutoff, calc_stats)
    stats.computed = calc_stats.computed
    stats.degenerate = calc_stats.degenerate
    stats.over_cutoff = calc_stats.over_cutoff

    enter(ImportStage.ENRICHING)
    enricher = ElevationEnricher(ElevationProvider(options.elevation_dir))
    enricher.enrich(junctions)
    stats.elevation_skipped = enricher.stats.skipped
    stats.elevation_attempted = enricher.stats.attempted
    stats.elevation_resolved = enricher.stats.resolved
    stats.elevation_complete = enricher.stats.complete

    enter(ImportStage.PERSISTING)
    try:
        with JunctionStore(options.database) as store:
            stats.rows_inserted = store.insert_junctions(junctions, options.batch_size)
    except PersistError as e:
        run.fail(e)
        raise

    enter(ImportStage.DONE)
    stats.duration_s = time.monotonic() - start
    logger.info("Import complete in %.1fs", stats.duration_s)
    return stats
