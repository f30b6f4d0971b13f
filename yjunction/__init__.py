"""
Y-junction importer.

Finds road nodes where exactly three roads meet in an OpenStreetMap extract,
measures the angles between them, optionally samples terrain elevation from
GSI DEM tiles, and writes the results to SQLite.
"""

from yjunction.models import AngleType, ComputedJunction, ElevationSample, JunctionCandidate
from yjunction.pipeline import ImportOptions, ImportStats, run_import

__all__ = [
    'AngleType',
    'ComputedJunction',
    'ElevationSample',
    'JunctionCandidate',
    'ImportOptions',
    'ImportStats',
    'run_import',
]
