"""
Site map workflow for the Water-Quality Site Map Builder.

Ties the pipeline together: normalize WQP sites and ECHO facilities, resolve
the reference polygon layers, build the map layers and compose the map. Also
provides the assessment unit assignment used to annotate site tables.

Functions:
    build_map: Build the interactive site map
    assign_assessment_units: Append assessment unit attributes to site records
"""

from typing import Dict, Iterable, Mapping, Optional, Union

import geopandas as gpd
import pandas as pd

from config.config_loader import load_config, load_map_settings
from core.echo_query import facilities_to_frame
from core.exceptions import SchemaError
from core.layer_builder import (
    build_centroid_layer,
    build_label_layer,
    build_point_layer,
    build_reference_layers
)
from core.map_composer import MapArtifact, base_layers_from_config, compose
from core.normalizer import (
    GEOGRAPHIC_CRS,
    combine_point_records,
    coordinate_values,
    field_maps_from_config,
    normalize_facilities,
    normalize_sites
)
from core.reference_data import (
    load_reference_polygons,
    require_geographic_crs,
    resolve_reference_polygons,
    validate_polygon_schema
)
from core.spatial_join import join, matched_count
from utils.logger import get_logger, log_section

logger = get_logger(__name__)

FacilityInput = Union[pd.DataFrame, Iterable[Mapping]]


def _facility_table(fac: FacilityInput) -> pd.DataFrame:
    # Accept raw ECHO GeoJSON features as well as an already flattened table
    if isinstance(fac, pd.DataFrame):
        return fac
    fac = list(fac)
    if fac and all(isinstance(f, Mapping) and f.get('type') == 'Feature' for f in fac):
        return facilities_to_frame(fac)
    return pd.DataFrame(fac)


def build_map(
    fac: Optional[FacilityInput] = None,
    sites: Optional[pd.DataFrame] = None,
    au_poly: Optional[gpd.GeoDataFrame] = None,
    bu_poly: Optional[gpd.GeoDataFrame] = None,
    ss_poly: Optional[gpd.GeoDataFrame] = None,
    config: Optional[Dict] = None
) -> MapArtifact:
    """
    Build an interactive map of sites and/or facilities over the reference polygons.

    Any input may be omitted. Missing polygon layers fall back to the default
    datasets from the configuration; with neither sites nor facilities the
    map holds the base layers, the three (hidden) polygon overlays and the
    assessment unit search.

    Parameters:
    -----------
    fac : Optional[DataFrame or list of GeoJSON features]
        ECHO facilities, as returned by ``read_echo_facilities`` or flattened
        by ``facilities_to_frame``
    sites : Optional[pd.DataFrame]
        WQP monitoring locations, as returned by ``read_wqp_sites``
    au_poly, bu_poly, ss_poly : Optional[gpd.GeoDataFrame]
        Assessment unit, beneficial use and site-specific standard polygons
    config : Optional[Dict]
        Configuration dictionary (loaded if not provided)

    Returns:
    --------
    MapArtifact
        Composed map with its layer state, legend and search index

    Raises:
    -------
    SchemaError
        If an input lacks a mapped field or has invalid coordinates
    CRSMismatchError
        If a supplied polygon frame is not in EPSG:4326

    Example:
        >>> sites = read_wqp_sites(siteid=['UTAHDWQ_WQX-4900440', 'UTAHDWQ_WQX-4900470'])
        >>> artifact = build_map(sites=sites)
        >>> save_map(artifact, 'mantua')
    """
    if config is None:
        config = load_config()
    settings = load_map_settings(config)
    field_maps = field_maps_from_config(config)

    log_section(logger, "Building Site Map")

    polygons = resolve_reference_polygons(
        {
            'assessment_units': au_poly,
            'beneficial_uses': bu_poly,
            'site_specific_standards': ss_poly
        },
        config=config
    )
    for kind, frame in polygons.items():
        logger.info(f"  - {config['polygon_layers'][kind]['group']}: {len(frame)} polygon(s)")

    record_sets = []
    if sites is not None:
        record_sets.append(normalize_sites(sites, field_maps['wqp_sites']))
    if fac is not None:
        record_sets.append(normalize_facilities(_facility_table(fac), field_maps['echo_facilities']))
    points = combine_point_records(*record_sets)

    layers = []
    if len(points) == 0:
        logger.info("Building map w/o sites or facilities...")
    else:
        logger.info(f"  - {len(points)} site(s) and facilit(ies) to map")
        layers.append(build_point_layer(
            points,
            style={'radius': settings['point_radius'], 'opacity': settings['point_opacity']}
        ))

    layers.append(build_centroid_layer(polygons['assessment_units']))

    if len(points) > 0:
        layers.append(build_label_layer(points, style={'text_size': settings['label_text_size']}))

    layers.extend(build_reference_layers(polygons, config['polygon_layers'], settings))

    return compose(layers, base_layers_from_config(config), settings)


def assign_assessment_units(
    data: pd.DataFrame,
    lat: str = 'LatitudeMeasure',
    long: str = 'LongitudeMeasure',
    au_poly: Optional[gpd.GeoDataFrame] = None,
    config: Optional[Dict] = None
) -> pd.DataFrame:
    """
    Append assessment unit attributes to site records.

    Each row keeps its position; sites outside every assessment unit get
    null AU_NAME, ASSESS_ID, AU_DESCRIP and AU_Type.

    Args:
        data: Site records with latitude/longitude columns (WQP names by default)
        lat: Latitude column name
        long: Longitude column name
        au_poly: Assessment unit polygons (configured default if not provided)
        config: Configuration dictionary (loaded if not provided)

    Returns:
        A copy of ``data`` with the assessment unit columns appended, no geometry

    Raises:
        SchemaError: If a coordinate column is missing or holds invalid values
        CRSMismatchError: If ``au_poly`` is not in EPSG:4326
    """
    if config is None:
        config = load_config()
    layer_config = config['polygon_layers']['assessment_units']

    if au_poly is None:
        au_poly = load_reference_polygons('assessment_units', config=config)
    else:
        au_poly = require_geographic_crs(au_poly, 'assessment_units')
        validate_polygon_schema(au_poly, 'assessment_units', layer_config)

    missing = [c for c in (lat, long) if c not in data.columns]
    if missing:
        raise SchemaError(
            f"sites: coordinate column(s) absent from input: {', '.join(missing)}",
            provider='sites',
            field=missing[0]
        )

    latitude = coordinate_values(data, lat, -90.0, 90.0, 'sites')
    longitude = coordinate_values(data, long, -180.0, 180.0, 'sites')

    points = gpd.GeoDataFrame(
        data.copy(),
        geometry=gpd.points_from_xy(longitude, latitude),
        crs=GEOGRAPHIC_CRS
    )
    joined = join(points, au_poly, fields=layer_config['join_fields'], layer_name='assessment_units')

    logger.info(
        f"  ✓ Assessment units assigned to {matched_count(joined, layer_config['id_field'])} "
        f"of {len(joined)} site(s)"
    )

    return pd.DataFrame(joined.drop(columns=joined.geometry.name))
