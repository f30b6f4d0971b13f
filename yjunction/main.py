#!/usr/bin/env python3
"""
Command line entry point for the Y-junction importer.

Example:
    yjunction-import --input japan-latest.osm.pbf \\
        --bbox 139.5,35.5,140.0,35.9 --elevation-dir data/gsi
"""

import argparse
import logging
import sys
from pathlib import Path

from . import config
from .pipeline import ImportOptions, ImportRun, run_import
from .scanner import BBox, ScanError
from .store import PersistError

logger = logging.getLogger('yjunction.main')


def _bbox_arg(text: str) -> BBox:
    try:
        return BBox.parse(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def _positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Import Y-junctions (nodes where three roads meet) from an OSM extract"
    )
    parser.add_argument(
        "--input",
        type=Path,
        required=True,
        help="OSM extract (.osm.pbf, .osm or .osm.bz2)",
    )
    parser.add_argument(
        "--bbox",
        type=_bbox_arg,
        required=True,
        help="Bounding box as min_lon,min_lat,max_lon,max_lat",
    )
    parser.add_argument(
        "--elevation-dir",
        type=Path,
        help="Directory of GSI DEM XML tiles (omit to skip elevation)",
    )
    parser.add_argument(
        "--database",
        type=Path,
        default=config.DATABASE_FILE,
        help=f"SQLite database to write (default: {config.DATABASE_FILE}, or $YJUNCTION_DB)",
    )
    parser.add_argument(
        "--batch-size",
        type=_positive_int,
        default=config.BATCH_SIZE,
        help=f"Rows per insert transaction (default: {config.BATCH_SIZE})",
    )
    parser.add_argument(
        "--angle-cutoff",
        type=float,
        default=config.ANGLE_1_CUTOFF_DEG,
        help="Drop junctions whose smallest angle is at or above this (degrees)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=config.LOG_FORMAT,
    )

    options = ImportOptions(
        input_path=args.input,
        bbox=args.bbox,
        database=args.database,
        elevation_dir=args.elevation_dir,
        batch_size=args.batch_size,
        angle_cutoff=args.angle_cutoff,
    )

    run = ImportRun()
    try:
        stats = run_import(options, run)
    except (ScanError, PersistError) as e:
        stage = run.failed_stage.value if run.failed_stage else run.stage.value
        logger.error("Import failed while %s: %s", stage, e)
        return 1

    for line in stats.summary():
        logger.info(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
