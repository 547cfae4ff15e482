"""
Record normalization module for the Water-Quality Site Map Builder.

Converts provider-specific site and facility tables into the common Point
Record schema. Field names are taken from an explicit per-provider mapping
table (see ``providers`` in config/map_config.json); nothing is inferred from
column names at runtime.

Point Record schema (EPSG:4326):
    locationID, locationName, locationType, latitude, longitude, geometry

Functions:
    normalize_records: Normalize one raw record set using a field map
    normalize_sites: Normalize Water Quality Portal site records
    normalize_facilities: Normalize flattened ECHO facility records
    combine_point_records: Concatenate normalized record sets
    empty_point_records: Empty frame with the Point Record schema
    coordinate_values: Validated numeric coordinate column
"""

from typing import Dict, Iterable, List, Mapping, Optional, Union

import geopandas as gpd
import pandas as pd

from config.config_loader import PROVIDER_FIELD_KEYS
from core.exceptions import SchemaError
from utils.logger import get_logger

logger = get_logger(__name__)

GEOGRAPHIC_CRS = 'EPSG:4326'

POINT_COLUMNS = ['locationID', 'locationName', 'locationType', 'latitude', 'longitude']

# Built-in field maps, identical to the ``providers`` section of the default config
WQP_SITE_FIELDS = {
    'identifier_field': 'MonitoringLocationIdentifier',
    'name_field': 'MonitoringLocationName',
    'type_field': 'MonitoringLocationTypeName',
    'lat_field': 'LatitudeMeasure',
    'long_field': 'LongitudeMeasure'
}

ECHO_FACILITY_FIELDS = {
    'identifier_field': 'SourceID',
    'name_field': 'CWPName',
    'type_field': 'CWPFacilityTypeIndicator',
    'lat_field': 'dec_lat',
    'long_field': 'dec_long'
}

RawRecords = Union[pd.DataFrame, Iterable[Mapping]]


def empty_point_records() -> gpd.GeoDataFrame:
    """Return an empty GeoDataFrame with the Point Record columns."""
    return gpd.GeoDataFrame(
        {col: pd.Series(dtype='object' if col.startswith('location') else 'float64')
         for col in POINT_COLUMNS},
        geometry=gpd.GeoSeries([], crs=GEOGRAPHIC_CRS),
        crs=GEOGRAPHIC_CRS
    )


def _as_text(series: pd.Series) -> pd.Series:
    # Identifiers such as 4900440 may arrive as numbers; keep missing values as None
    return series.astype(object).where(series.notna(), None).map(
        lambda v: v if v is None else str(v)
    )


def coordinate_values(
    frame: pd.DataFrame,
    column: str,
    lower: float,
    upper: float,
    provider: str
) -> pd.Series:
    """Numeric coordinates of ``column``; any missing or out-of-range value raises SchemaError."""
    values = pd.to_numeric(frame[column], errors='coerce')

    bad = values.isna() | (values < lower) | (values > upper)
    if bad.any():
        first = frame.index[bad.to_numpy()][0]
        raise SchemaError(
            f"{provider}: {int(bad.sum())} record(s) have a missing or invalid '{column}' "
            f"(first at row {first}: {frame.at[first, column]!r}); "
            f"expected a number in [{lower}, {upper}]",
            provider=provider,
            field=column
        )

    return values.astype('float64')


def normalize_records(
    raw: RawRecords,
    field_map: Mapping[str, str],
    provider: str = 'records'
) -> gpd.GeoDataFrame:
    """
    Normalize a provider record set into Point Records.

    Every field in ``field_map`` must be present in the input; a missing field
    fails the whole record set, no partial normalization is attempted. The
    input is never modified.

    Parameters:
    -----------
    raw : pd.DataFrame or iterable of mappings
        Provider records (one row per site or facility)
    field_map : Mapping[str, str]
        Enumerated table with keys identifier_field, name_field, type_field,
        lat_field, long_field naming the provider's columns
    provider : str
        Provider tag used in log and error messages

    Returns:
    --------
    gpd.GeoDataFrame
        Point Records in EPSG:4326, index reset to 0..n-1

    Raises:
    -------
    SchemaError
        If the field map is incomplete, a mapped column is absent, or a
        coordinate is missing, non-numeric or out of range

    Example:
        >>> points = normalize_records(wqp_df, WQP_SITE_FIELDS, provider='wqp_sites')
        >>> list(points.columns)
        ['locationID', 'locationName', 'locationType', 'latitude', 'longitude', 'geometry']
    """
    missing_keys = [k for k in PROVIDER_FIELD_KEYS if not field_map.get(k)]
    if missing_keys:
        raise SchemaError(
            f"{provider}: field map missing {', '.join(missing_keys)}",
            provider=provider,
            field=missing_keys[0]
        )

    frame = raw if isinstance(raw, pd.DataFrame) else pd.DataFrame(list(raw))

    if frame.empty and len(frame.columns) == 0:
        logger.debug(f"{provider}: no records to normalize")
        return empty_point_records()

    missing_columns = [field_map[k] for k in PROVIDER_FIELD_KEYS if field_map[k] not in frame.columns]
    if missing_columns:
        raise SchemaError(
            f"{provider}: required field(s) absent from input: {', '.join(missing_columns)}",
            provider=provider,
            field=missing_columns[0]
        )

    latitude = coordinate_values(frame, field_map['lat_field'], -90.0, 90.0, provider)
    longitude = coordinate_values(frame, field_map['long_field'], -180.0, 180.0, provider)

    records = pd.DataFrame({
        'locationID': _as_text(frame[field_map['identifier_field']]).to_numpy(),
        'locationName': _as_text(frame[field_map['name_field']]).to_numpy(),
        'locationType': _as_text(frame[field_map['type_field']]).to_numpy(),
        'latitude': latitude.to_numpy(),
        'longitude': longitude.to_numpy()
    })

    points = gpd.GeoDataFrame(
        records,
        geometry=gpd.points_from_xy(records['longitude'], records['latitude']),
        crs=GEOGRAPHIC_CRS
    )

    logger.debug(f"{provider}: normalized {len(points)} record(s)")
    return points


def normalize_sites(raw: RawRecords, field_map: Optional[Mapping[str, str]] = None) -> gpd.GeoDataFrame:
    """Normalize Water Quality Portal site records (MonitoringLocation* columns)."""
    return normalize_records(raw, field_map or WQP_SITE_FIELDS, provider='wqp_sites')


def normalize_facilities(raw: RawRecords, field_map: Optional[Mapping[str, str]] = None) -> gpd.GeoDataFrame:
    """Normalize ECHO facility records flattened by ``echo_query.facilities_to_frame``."""
    return normalize_records(raw, field_map or ECHO_FACILITY_FIELDS, provider='echo_facilities')


def combine_point_records(*record_sets: Optional[gpd.GeoDataFrame]) -> gpd.GeoDataFrame:
    """
    Concatenate normalized record sets in argument order.

    ``None`` and empty sets are skipped. Returns an empty Point Record frame
    when nothing remains.
    """
    frames: List[gpd.GeoDataFrame] = [r for r in record_sets if r is not None and len(r) > 0]

    if not frames:
        return empty_point_records()

    combined = pd.concat(frames, ignore_index=True)
    return gpd.GeoDataFrame(combined, geometry='geometry', crs=GEOGRAPHIC_CRS)


def field_maps_from_config(config: Dict) -> Dict[str, Dict[str, str]]:
    """Return the provider field maps declared in the configuration."""
    return {name: dict(field_map) for name, field_map in config['providers'].items()}
