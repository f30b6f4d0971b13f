"""
Shared pytest fixtures for Y-junction importer tests.
"""

import math
import os
import sys
from pathlib import Path

import osmium
import osmium.osm.mutable
import pytest

# Add project root to path for imports
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from yjunction.geometry import EARTH_RADIUS_M  # noqa: E402
from yjunction.models import JunctionCandidate, RoadNode, RoadWay  # noqa: E402


JUNCTION_LAT, JUNCTION_LON = 35.6812, 139.7671  # Tokyo Station


def point_along_bearing(lat, lon, bearing_deg, distance_m):
    """Calculate point at given distance and bearing from start point."""
    R = EARTH_RADIUS_M

    lat_rad = math.radians(lat)
    lon_rad = math.radians(lon)
    bearing_rad = math.radians(bearing_deg)

    lat2 = math.asin(
        math.sin(lat_rad) * math.cos(distance_m / R)
        + math.cos(lat_rad) * math.sin(distance_m / R) * math.cos(bearing_rad)
    )

    lon2 = lon_rad + math.atan2(
        math.sin(bearing_rad) * math.sin(distance_m / R) * math.cos(lat_rad),
        math.cos(distance_m / R) - math.sin(lat_rad) * math.sin(lat2),
    )

    return math.degrees(lat2), math.degrees(lon2)


def write_osm(path, nodes, ways):
    """
    Write a minimal OSM XML extract.

    Args:
        nodes: {node_id: (lat, lon)}
        ways: [(way_id, [node_ids], {tag: value})]
    """
    lines = ['<?xml version="1.0" encoding="UTF-8"?>', '<osm version="0.6" generator="yjunction-tests">']
    for node_id in sorted(nodes):
        lat, lon = nodes[node_id]
        lines.append(f'  <node id="{node_id}" version="1" lat="{lat:.7f}" lon="{lon:.7f}"/>')
    for way_id, refs, tags in sorted(ways, key=lambda w: w[0]):
        lines.append(f'  <way id="{way_id}" version="1">')
        lines.extend(f'    <nd ref="{ref}"/>' for ref in refs)
        lines.extend(f'    <tag k="{k}" v="{v}"/>' for k, v in tags.items())
        lines.append('  </way>')
    lines.append('</osm>')
    Path(path).write_text("\n".join(lines) + "\n", encoding="utf-8")
    return Path(path)


def write_pbf(path, nodes, ways):
    """Write the same extract as write_osm in PBF format (dense node blocks)."""
    path = Path(path)
    writer = osmium.SimpleWriter(str(path))
    try:
        for node_id in sorted(nodes):
            lat, lon = nodes[node_id]
            writer.add_node(osmium.osm.mutable.Node(
                id=node_id, version=1, location=osmium.osm.Location(lon, lat),
            ))
        for way_id, refs, tags in sorted(ways, key=lambda w: w[0]):
            writer.add_way(osmium.osm.mutable.Way(id=way_id, version=1, nodes=refs, tags=tags))
    finally:
        writer.close()
    return path


def write_gsi_tile(path, lower, upper, rows, start=(0, 0), count=None):
    """
    Write a GSI JPGIS DEM tile.

    Args:
        lower, upper: (lat, lon) corners of the envelope
        rows: elevation grid, northern row first
        start: gml:startPoint (x, y); cells before it are omitted
        count: number of values to write from the start point (default: all)
    """
    height, width = len(rows), len(rows[0])
    flat = [value for row in rows for value in row]
    offset = start[1] * width + start[0]
    values = flat[offset:] if count is None else flat[offset:offset + count]
    tuples = "\n".join(f"地表面,{value:.2f}" for value in values)

    xml = f"""<?xml version="1.0" encoding="UTF-8"?>
<Dataset xmlns="http://fgd.gsi.go.jp/spec/2008/FGD_GMLSchema" xmlns:gml="http://www.opengis.net/gml/3.2">
  <DEM gml:id="DEM001">
    <coverage gml:id="DEM001-3">
      <gml:boundedBy>
        <gml:Envelope srsName="fguuid:jgd2011.bl">
          <gml:lowerCorner>{lower[0]} {lower[1]}</gml:lowerCorner>
          <gml:upperCorner>{upper[0]} {upper[1]}</gml:upperCorner>
        </gml:Envelope>
      </gml:boundedBy>
      <gml:gridDomain>
        <gml:Grid dimension="2" gml:id="DEM001-4">
          <gml:limits>
            <gml:GridEnvelope>
              <gml:low>0 0</gml:low>
              <gml:high>{width - 1} {height - 1}</gml:high>
            </gml:GridEnvelope>
          </gml:limits>
          <gml:axisLabels>x y</gml:axisLabels>
        </gml:Grid>
      </gml:gridDomain>
      <gml:rangeSet>
        <gml:DataBlock>
          <gml:rangeParameters><QuantityList uom="DEM構成点"/></gml:rangeParameters>
          <gml:tupleList>
{tuples}
</gml:tupleList>
        </gml:DataBlock>
      </gml:rangeSet>
      <gml:coverageFunction>
        <gml:GridFunction>
          <gml:sequenceRule order="+x-y">Linear</gml:sequenceRule>
          <gml:startPoint>{start[0]} {start[1]}</gml:startPoint>
        </gml:GridFunction>
      </gml:coverageFunction>
    </coverage>
  </DEM>
</Dataset>
"""
    Path(path).write_text(xml, encoding="utf-8")
    return Path(path)


def make_candidate(bearings, node_id=1, lat=JUNCTION_LAT, lon=JUNCTION_LON, distance_m=50.0):
    """Junction candidate whose neighbors lie along the given bearings."""
    neighbors = []
    ways = []
    for i, b in enumerate(bearings):
        if distance_m == 0:
            n_lat, n_lon = lat, lon
        else:
            n_lat, n_lon = point_along_bearing(lat, lon, b, distance_m)
        neighbor_id = node_id * 10 + i + 1
        neighbors.append(RoadNode(id=neighbor_id, lat=n_lat, lon=n_lon))
        ways.append(RoadWay(id=node_id * 100 + i, nodes=[node_id, neighbor_id], highway_type="residential"))
    return JunctionCandidate(
        node_id=node_id,
        lat=lat,
        lon=lon,
        neighbors=tuple(neighbors),
        ways=tuple(ways),
    )


def _offset(lat, lon, bearing_deg, distance_m=40.0):
    return point_along_bearing(lat, lon, bearing_deg, distance_m)


def _y_extract_data():
    """Nodes and ways shared by the XML and PBF extract fixtures."""
    lat, lon = JUNCTION_LAT, JUNCTION_LON
    nodes = {
        1: (lat, lon),
        2: _offset(lat, lon, 10),
        3: _offset(lat, lon, 130),
        4: _offset(lat, lon, 250),
        5: _offset(*_offset(lat, lon, 250), 250),
    }
    ways = [
        (100, [1, 2], {"highway": "primary"}),
        (101, [3, 1], {"highway": "residential", "bridge": "yes"}),
        (102, [1, 4, 5], {"highway": "tertiary", "tunnel": "yes"}),
        (103, [2, 3], {"highway": "service"}),
    ]

    lat20, lon20 = lat + 0.002, lon
    nodes[20] = (lat20, lon20)
    for i, b in enumerate((0, 90, 180, 270)):
        nodes[21 + i] = _offset(lat20, lon20, b)
        ways.append((200 + i, [20, 21 + i], {"highway": "secondary"}))

    lat30, lon30 = lat - 0.002, lon
    nodes[30] = (lat30, lon30)
    for i, (b, highway) in enumerate(((0, "primary"), (120, "primary"), (240, "motorway"))):
        nodes[31 + i] = _offset(lat30, lon30, b)
        ways.append((300 + i, [30, 31 + i], {"highway": highway}))

    lat40, lon40 = lat + 1.0, lon
    nodes[40] = (lat40, lon40)
    for i, b in enumerate((0, 100, 200)):
        nodes[41 + i] = _offset(lat40, lon40, b)
        ways.append((400 + i, [40, 41 + i], {"highway": "unclassified"}))

    return nodes, ways


@pytest.fixture
def y_extract(tmp_path):
    """
    Small OSM extract exercising the detection rules.

    Node 1: three primary/residential ways (kept, one way ends at the junction)
    Node 20: four allowed ways (excluded)
    Node 30: two allowed ways plus a motorway (excluded)
    Node 40: three allowed ways but far outside the test bbox (excluded)
    """
    nodes, ways = _y_extract_data()
    return write_osm(tmp_path / "extract.osm", nodes, ways)


@pytest.fixture
def y_extract_pbf(tmp_path):
    """The y_extract data written as PBF with dense nodes."""
    nodes, ways = _y_extract_data()
    return write_pbf(tmp_path / "extract.osm.pbf", nodes, ways)


@pytest.fixture
def test_bbox():
    from yjunction.scanner import BBox
    return BBox(
        min_lon=JUNCTION_LON - 0.01,
        min_lat=JUNCTION_LAT - 0.01,
        max_lon=JUNCTION_LON + 0.01,
        max_lat=JUNCTION_LAT + 0.01,
    )


@pytest.fixture
def junction_tile_dir(tmp_path):
    """Directory with one DEM tile covering the y_extract junction area.

    Elevation rises 1 m per row going south and 10 m per column going east.
    """
    tile_dir = tmp_path / "gsi"
    tile_dir.mkdir()
    rows = [[100.0 + 10 * c + r for c in range(20)] for r in range(20)]
    write_gsi_tile(
        tile_dir / "tile_tokyo.xml",
        lower=(JUNCTION_LAT - 0.005, JUNCTION_LON - 0.005),
        upper=(JUNCTION_LAT + 0.005, JUNCTION_LON + 0.005),
        rows=rows,
    )
    return tile_dir
