"""SQLite store for computed Y-junctions.

Rows are written in batches, each batch in its own transaction: a failing
batch is rolled back completely while batches committed before it remain.
An R-tree index over junction locations backs bounding-box queries.

Usage:
    with JunctionStore("y_junctions.db") as store:
        store.insert_junctions(junctions)
        rows = store.query_bbox(BBox(139.5, 35.5, 140.0, 35.9))
"""

import logging
import sqlite3
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from . import config
from .models import ComputedJunction
from .scanner import BBox

logger = logging.getLogger('yjunction.store')


# Schema version - increment when schema changes
SCHEMA_VERSION = 1

COLUMNS = (
    "osm_node_id", "lat", "lon",
    "angle_1", "angle_2", "angle_3",
    "bearing_1", "bearing_2", "bearing_3",
    "angle_type",
    "elevation",
    "neighbor_elevation_1", "neighbor_elevation_2", "neighbor_elevation_3",
    "elevation_diff_1", "elevation_diff_2", "elevation_diff_3",
    "min_elevation_diff", "max_elevation_diff", "min_angle_elevation_diff",
    "way_1_bridge", "way_1_tunnel",
    "way_2_bridge", "way_2_tunnel",
    "way_3_bridge", "way_3_tunnel",
)


class PersistError(Exception):
    """A batch could not be written and was rolled back."""


def junction_row(junction: ComputedJunction) -> Tuple[Any, ...]:
    """Flatten a junction into column order; absent elevations become NULL."""
    sample = junction.elevation
    if sample is None:
        elevations = (None,) * 10
    else:
        elevations = (
            sample.junction,
            *sample.neighbors,
            *sample.diffs,
            sample.min_diff,
            sample.max_diff,
            sample.min_angle_diff,
        )

    way_flags = []
    for way in junction.ways:
        way_flags.extend((int(way.bridge), int(way.tunnel)))

    return (
        junction.node_id, junction.lat, junction.lon,
        *junction.angles,
        *junction.bearings,
        junction.angle_type.value,
        *elevations,
        *way_flags,
    )


class JunctionStore:
    """SQLite-backed junction table with R-tree spatial indexing."""

    def __init__(self, db_path: Path):
        """Open or create the junction database."""
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        try:
            self._ensure_schema()
        except (sqlite3.Error, OSError) as e:
            self.close()
            raise PersistError(f"Cannot open junction database {self.db_path}: {e}") from e

    def __enter__(self) -> "JunctionStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (lazy init)."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._conn.execute("PRAGMA temp_store=MEMORY")
        return self._conn

    def _ensure_schema(self) -> None:
        """Create database schema if needed."""
        conn = self._get_conn()

        try:
            row = conn.execute(
                "SELECT value FROM metadata WHERE key='schema_version'"
            ).fetchone()
            if row and int(row[0]) == SCHEMA_VERSION:
                return
        except (sqlite3.OperationalError, ValueError, TypeError):
            pass  # Table doesn't exist yet or invalid value

        conn.executescript("""
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            CREATE TABLE IF NOT EXISTS y_junctions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                osm_node_id INTEGER UNIQUE NOT NULL,
                lat REAL NOT NULL,
                lon REAL NOT NULL,

                -- Ascending angles, degrees
                angle_1 REAL NOT NULL CHECK (angle_1 BETWEEN 0 AND 360),
                angle_2 REAL NOT NULL CHECK (angle_2 BETWEEN 0 AND 360),
                angle_3 REAL NOT NULL CHECK (angle_3 BETWEEN 0 AND 360),

                -- bearing_1/2 bound angle_1, bearing_2/3 angle_2, bearing_3/1 angle_3
                bearing_1 REAL NOT NULL CHECK (bearing_1 >= 0 AND bearing_1 < 360),
                bearing_2 REAL NOT NULL CHECK (bearing_2 >= 0 AND bearing_2 < 360),
                bearing_3 REAL NOT NULL CHECK (bearing_3 >= 0 AND bearing_3 < 360),

                angle_type TEXT NOT NULL,

                -- Elevations in meters, NULL where no DEM tile covers the point
                elevation REAL,
                neighbor_elevation_1 REAL,
                neighbor_elevation_2 REAL,
                neighbor_elevation_3 REAL,
                elevation_diff_1 REAL CHECK (elevation_diff_1 >= 0),
                elevation_diff_2 REAL CHECK (elevation_diff_2 >= 0),
                elevation_diff_3 REAL CHECK (elevation_diff_3 >= 0),
                min_elevation_diff REAL CHECK (min_elevation_diff >= 0),
                max_elevation_diff REAL CHECK (max_elevation_diff >= 0),
                min_angle_elevation_diff REAL CHECK (min_angle_elevation_diff >= 0),

                way_1_bridge INTEGER DEFAULT 0,
                way_1_tunnel INTEGER DEFAULT 0,
                way_2_bridge INTEGER DEFAULT 0,
                way_2_tunnel INTEGER DEFAULT 0,
                way_3_bridge INTEGER DEFAULT 0,
                way_3_tunnel INTEGER DEFAULT 0,

                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE VIRTUAL TABLE IF NOT EXISTS junction_rtree USING rtree(
                id,
                min_lat, max_lat,
                min_lon, max_lon
            );

            CREATE INDEX IF NOT EXISTS idx_y_junctions_angle_1 ON y_junctions(angle_1);
            CREATE INDEX IF NOT EXISTS idx_y_junctions_min_elevation_diff
                ON y_junctions(min_elevation_diff) WHERE min_elevation_diff IS NOT NULL;
        """)

        conn.execute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES ('schema_version', ?)",
            (str(SCHEMA_VERSION),)
        )
        conn.commit()

    def insert_junctions(
        self,
        junctions: Sequence[ComputedJunction],
        batch_size: int = config.BATCH_SIZE,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> int:
        """
        Insert junctions in node-id order, one transaction per batch.

        Junctions whose node id is already stored are skipped.

        Args:
            junctions: Junctions to write
            batch_size: Rows per transaction
            progress: Optional callback(done, total) after each batch

        Returns:
            Number of new rows written

        Raises:
            PersistError: if a batch fails; that batch is rolled back and
                earlier batches stay committed.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        total = len(junctions)
        if total == 0:
            logger.info("No junctions to insert")
            return 0

        rows = [junction_row(j) for j in sorted(junctions, key=lambda j: j.node_id)]
        try:
            conn = self._get_conn()
        except (sqlite3.Error, OSError) as e:
            raise PersistError(f"Cannot open junction database {self.db_path}: {e}") from e
        logger.info("Inserting %d junctions in batches of %d", total, batch_size)

        written = 0
        done = 0
        for start in range(0, total, batch_size):
            batch = rows[start:start + batch_size]
            try:
                with conn:
                    written += self._insert_batch(conn, batch)
            except sqlite3.Error as e:
                raise PersistError(
                    f"Batch {start // batch_size + 1} (rows {start + 1}-{start + len(batch)}) "
                    f"rolled back: {e}"
                ) from e
            done += len(batch)
            logger.info("Inserted %d/%d junctions", done, total)
            if progress is not None:
                progress(done, total)

        logger.info("Successfully wrote %d new junctions (%d skipped as duplicates)", written, total - written)
        return written

    def _insert_batch(self, conn: sqlite3.Connection, batch: List[Tuple[Any, ...]]) -> int:
        """Insert rows and their R-tree entries inside the caller's transaction."""
        last_id = conn.execute("SELECT COALESCE(MAX(id), 0) FROM y_junctions").fetchone()[0]
        before = self._count(conn)

        placeholders = ", ".join("?" * len(COLUMNS))
        conn.executemany(
            f"INSERT INTO y_junctions ({', '.join(COLUMNS)}) VALUES ({placeholders}) "
            "ON CONFLICT (osm_node_id) DO NOTHING",
            batch,
        )
        conn.execute("""
            INSERT INTO junction_rtree (id, min_lat, max_lat, min_lon, max_lon)
            SELECT id, lat, lat, lon, lon FROM y_junctions WHERE id > ?
        """, (last_id,))
        return self._count(conn) - before

    @staticmethod
    def _count(conn: sqlite3.Connection) -> int:
        return conn.execute("SELECT COUNT(*) FROM y_junctions").fetchone()[0]

    def count(self) -> int:
        return self._count(self._get_conn())

    def fetch_all(self) -> List[Dict[str, Any]]:
        """All stored junctions as dicts, in node-id order."""
        rows = self._get_conn().execute(
            "SELECT * FROM y_junctions ORDER BY osm_node_id"
        ).fetchall()
        return [dict(row) for row in rows]

    def query_bbox(self, bbox: BBox) -> List[Dict[str, Any]]:
        """Junctions inside a bounding box, using the R-tree index."""
        rows = self._get_conn().execute("""
            SELECT j.*
            FROM y_junctions j
            INNER JOIN junction_rtree r ON j.id = r.id
            WHERE r.min_lat >= ? AND r.max_lat <= ?
              AND r.min_lon >= ? AND r.max_lon <= ?
            ORDER BY j.osm_node_id
        """, (bbox.min_lat, bbox.max_lat, bbox.min_lon, bbox.max_lon)).fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
