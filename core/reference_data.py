"""
Reference polygon loading for the Water-Quality Site Map Builder.

Loads the three static polygon datasets (assessment units, beneficial uses,
site-specific standards). Default file locations come from the
``polygon_layers`` section of the configuration; callers can pass their own
frames (e.g. a subset of assessment units) instead. Everything is resolved once
when a map build starts and treated as read-only afterwards.

Functions:
    load_reference_polygons: Read one reference dataset from file
    validate_polygon_schema: Check a polygon frame against its configured schema
    require_geographic_crs: Reject caller frames that are not in EPSG:4326
    resolve_reference_polygons: Caller-supplied frames or configured defaults
"""

from pathlib import Path
from typing import Dict, Mapping, Optional, Union

import geopandas as gpd

from config.config_loader import POLYGON_KINDS, load_config, resolve_project_path
from core.exceptions import CRSMismatchError, SchemaError
from utils.logger import get_logger

logger = get_logger(__name__)

GEOGRAPHIC_CRS = 'EPSG:4326'


def validate_polygon_schema(
    polygons: gpd.GeoDataFrame,
    kind: str,
    layer_config: Mapping
) -> gpd.GeoDataFrame:
    """
    Check a polygon frame against its configured schema.

    Args:
        polygons: Polygon frame
        kind: Reference polygon kind
        layer_config: The kind's entry of ``polygon_layers``

    Returns:
        The same frame

    Raises:
        SchemaError: If a join field is missing or geometries are not polygons
    """
    missing = [f for f in layer_config.get('join_fields', []) if f not in polygons.columns]
    if missing:
        raise SchemaError(
            f"{kind}: required field(s) absent from polygon data: {', '.join(missing)}",
            provider=kind,
            field=missing[0]
        )

    geom_types = set(polygons.geometry.geom_type.dropna().unique())
    unexpected = geom_types - {'Polygon', 'MultiPolygon'}
    if unexpected:
        raise SchemaError(
            f"{kind}: expected Polygon/MultiPolygon geometries, found {', '.join(sorted(unexpected))}",
            provider=kind,
            field=polygons.geometry.name
        )

    invalid = int((~polygons.geometry.is_valid).sum())
    if invalid:
        logger.warning(f"  ⚠ {kind}: {invalid} invalid polygon(s); containment results may be unreliable")

    return polygons


def require_geographic_crs(polygons: gpd.GeoDataFrame, kind: str) -> gpd.GeoDataFrame:
    """
    Check that a caller-supplied polygon frame is in EPSG:4326.

    A frame without CRS metadata is taken to be EPSG:4326. Frames handed in
    by the caller are never reprojected.

    Raises:
        CRSMismatchError: If the frame declares any other CRS
    """
    if polygons.crs is None:
        logger.debug(f"  - {kind}: no CRS, assuming {GEOGRAPHIC_CRS}")
        return polygons.set_crs(GEOGRAPHIC_CRS)

    if polygons.crs != GEOGRAPHIC_CRS:
        raise CRSMismatchError(GEOGRAPHIC_CRS, polygons.crs)

    return polygons


def load_reference_polygons(
    kind: str,
    path: Optional[Union[str, Path]] = None,
    config: Optional[Dict] = None
) -> gpd.GeoDataFrame:
    """
    Read one reference polygon dataset.

    Frames without a CRS are assumed to be EPSG:4326; frames in another CRS
    are reprojected to EPSG:4326 here, so the join engine only ever sees
    geographic coordinates.

    Parameters:
    -----------
    kind : str
        One of 'assessment_units', 'beneficial_uses', 'site_specific_standards'
    path : Optional[Union[str, Path]]
        File to read (any format GeoPandas reads); defaults to the configured path
    config : Optional[Dict]
        Configuration dictionary (loaded if not provided)

    Returns:
    --------
    gpd.GeoDataFrame
        Polygon frame in EPSG:4326

    Raises:
    -------
    KeyError
        If ``kind`` is not a known reference kind
    FileNotFoundError
        If the file doesn't exist
    SchemaError
        If required fields are missing
    """
    if kind not in POLYGON_KINDS:
        raise KeyError(f"Unknown reference polygon kind: {kind}")

    if config is None:
        config = load_config()
    layer_config = config['polygon_layers'][kind]

    path = resolve_project_path(path or layer_config['path'])
    if not path.exists():
        raise FileNotFoundError(f"Reference polygon file not found: {path}")

    logger.debug(f"Reading {kind} polygons from: {path}")
    polygons = gpd.read_file(path)

    if polygons.crs is None:
        logger.debug(f"  - {kind}: no CRS, assuming {GEOGRAPHIC_CRS}")
        polygons = polygons.set_crs(GEOGRAPHIC_CRS)
    elif polygons.crs != GEOGRAPHIC_CRS:
        logger.info(f"  - Reprojecting {kind} from {polygons.crs} to {GEOGRAPHIC_CRS}...")
        polygons = polygons.to_crs(GEOGRAPHIC_CRS)

    validate_polygon_schema(polygons, kind, layer_config)
    logger.debug(f"  - {kind}: {len(polygons)} polygon(s)")

    return polygons


def resolve_reference_polygons(
    supplied: Optional[Mapping[str, Optional[gpd.GeoDataFrame]]] = None,
    config: Optional[Dict] = None
) -> Dict[str, gpd.GeoDataFrame]:
    """
    Resolve the three reference polygon layers for one map build.

    Caller-supplied frames win; kinds left out (or None) fall back to the
    configured default dataset.

    Args:
        supplied: kind -> polygon frame or None
        config: Configuration dictionary (loaded if not provided)

    Returns:
        kind -> polygon frame for all three kinds

    Raises:
        CRSMismatchError: If a supplied frame is not in EPSG:4326
        SchemaError: If a supplied frame lacks its join fields
    """
    if config is None:
        config = load_config()
    supplied = supplied or {}

    resolved = {}
    for kind in POLYGON_KINDS:
        frame = supplied.get(kind)
        if frame is None:
            resolved[kind] = load_reference_polygons(kind, config=config)
        else:
            frame = require_geographic_crs(frame, kind)
            resolved[kind] = validate_polygon_schema(frame, kind, config['polygon_layers'][kind])

    return resolved
