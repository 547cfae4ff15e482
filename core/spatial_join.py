"""
Spatial join module for the Water-Quality Site Map Builder.

Associates point records with polygon features by geographic containment.
The join is left-outer and one-to-at-most-one per polygon layer: every input
point appears exactly once in the output, in input order, carrying the
identifying attributes of the polygon that contains it or nulls when no
polygon does.

Containment uses the ``intersects`` predicate, so a point lying exactly on a
polygon boundary is attributed to that polygon. When a point falls inside
several polygons of one layer (overlapping boundaries), the polygon with the
smallest geodesic area wins; equal areas fall back to polygon layer order.

Functions:
    join: Containment join of points against one polygon layer
    join_layers: Apply several polygon layers in sequence
    geodesic_area: Area of a lon/lat geometry in square meters
"""

from typing import Mapping, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
from pyproj import Geod
from shapely.geometry.base import BaseGeometry

from core.exceptions import CRSMismatchError, SchemaError
from utils.logger import get_logger, log_join_stats

logger = get_logger(__name__)

WGS84_GEOD = Geod(ellps='WGS84')


def geodesic_area(geom: BaseGeometry) -> float:
    """
    Area of a geometry in EPSG:4326, in square meters on the WGS84 ellipsoid.

    Parameters:
    -----------
    geom : BaseGeometry
        Polygon or MultiPolygon in longitude/latitude

    Returns:
    --------
    float
        Absolute geodesic area (0.0 for empty or missing geometries)
    """
    if geom is None or geom.is_empty:
        return 0.0

    area, _ = WGS84_GEOD.geometry_area_perimeter(geom)
    return abs(area)


def _check_crs(points: gpd.GeoDataFrame, polygons: gpd.GeoDataFrame) -> None:
    if points.crs != polygons.crs:
        raise CRSMismatchError(points.crs, polygons.crs)


def join(
    points: gpd.GeoDataFrame,
    polygons: gpd.GeoDataFrame,
    fields: Optional[Sequence[str]] = None,
    layer_name: str = 'polygons'
) -> gpd.GeoDataFrame:
    """
    Join point records against a polygon layer on containment.

    Parameters:
    -----------
    points : gpd.GeoDataFrame
        Point records (any columns plus point geometry)
    polygons : gpd.GeoDataFrame
        Polygon layer; must carry the same CRS metadata as ``points``
    fields : Optional[Sequence[str]]
        Polygon attributes to attach (defaults to every non-geometry column)
    layer_name : str
        Name used in log messages

    Returns:
    --------
    gpd.GeoDataFrame
        New frame with the same rows, index and order as ``points`` plus one
        column per field; unmatched points hold None

    Raises:
    -------
    CRSMismatchError
        If the CRS metadata of the two inputs differ (checked before any test)
    SchemaError
        If a requested field is missing from ``polygons`` or already present
        on ``points``

    Example:
        >>> joined = join(sites, au_poly, fields=['ASSESS_ID', 'AU_NAME'])
        >>> len(joined) == len(sites)
        True
    """
    _check_crs(points, polygons)

    geometry_column = polygons.geometry.name
    if fields is None:
        fields = [c for c in polygons.columns if c != geometry_column]
    fields = list(fields)

    absent = [f for f in fields if f not in polygons.columns]
    if absent:
        raise SchemaError(
            f"{layer_name}: join field(s) not found in polygon layer: {', '.join(absent)}",
            provider=layer_name,
            field=absent[0]
        )

    collisions = [f for f in fields if f in points.columns]
    if collisions:
        raise SchemaError(
            f"{layer_name}: join field(s) already present on points: {', '.join(collisions)}",
            provider=layer_name,
            field=collisions[0]
        )

    n_points = len(points)
    positions = np.full(n_points, -1, dtype=np.int64)

    if n_points > 0 and len(polygons) > 0:
        left = gpd.GeoDataFrame(
            {'_point': np.arange(n_points)},
            geometry=points.geometry.to_numpy(),
            crs=points.crs
        )
        right = gpd.GeoDataFrame(
            {'_polygon': np.arange(len(polygons))},
            geometry=polygons.geometry.to_numpy(),
            crs=polygons.crs
        )

        hits = gpd.sjoin(left, right, how='inner', predicate='intersects')

        if len(hits) > 0:
            candidates = hits[['_point', '_polygon']].reset_index(drop=True)

            # Only points with more than one containing polygon need areas
            duplicated = candidates['_point'].duplicated(keep=False)
            if duplicated.any():
                overlap_polygons = candidates.loc[duplicated, '_polygon'].unique()
                areas = {
                    int(p): geodesic_area(right.geometry.iloc[int(p)])
                    for p in overlap_polygons
                }
                candidates['_area'] = candidates['_polygon'].map(areas).fillna(0.0)
                logger.debug(
                    f"{layer_name}: {candidates.loc[duplicated, '_point'].nunique()} point(s) "
                    f"fall in overlapping polygons, keeping the smallest"
                )
            else:
                candidates['_area'] = 0.0

            chosen = (
                candidates
                .sort_values(['_point', '_area', '_polygon'], kind='mergesort')
                .drop_duplicates('_point', keep='first')
            )
            positions[chosen['_point'].to_numpy()] = chosen['_polygon'].to_numpy()

    matched = positions >= 0
    result = points.copy()

    for field in fields:
        column = np.full(n_points, None, dtype=object)
        values = polygons[field].to_numpy(dtype=object)
        column[matched] = values[positions[matched]]
        result[field] = column

    log_join_stats(logger, layer_name, int(matched.sum()), n_points)
    return result


def join_layers(
    points: gpd.GeoDataFrame,
    layers: Mapping[str, Tuple[gpd.GeoDataFrame, Optional[Sequence[str]]]]
) -> gpd.GeoDataFrame:
    """
    Join points against several polygon layers, one after another.

    Args:
        points: Point records
        layers: Mapping of layer name -> (polygon frame, fields to attach)

    Returns:
        New frame with the attributes of every layer attached
    """
    result = points
    for layer_name, (polygons, fields) in layers.items():
        result = join(result, polygons, fields=fields, layer_name=layer_name)
    return result


def matched_count(joined: gpd.GeoDataFrame, id_field: str) -> int:
    """Number of joined rows carrying a non-null ``id_field``."""
    return int(joined[id_field].notna().sum())
