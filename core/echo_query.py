"""
EPA ECHO Clean Water Act facility query module.

Facility retrieval is a two-step exchange with the ECHO CWA REST services:
``get_facility_info`` runs the search and returns a query ID, then
``get_geojson`` returns the matching facilities as GeoJSON points for that
query ID. Search parameters are passed through unchanged (e.g. ``p_st``,
``p_huc``, ``p_c1lon``...), see the ECHO service documentation.

No retries are made; transport and HTTP failures raise NetworkError,
undecodable bodies raise ParseError.

Functions:
    read_echo_facilities: Query ECHO and return facility GeoJSON features
    facilities_to_frame: Flatten facility features into a DataFrame
"""

from typing import Dict, List, Optional

import pandas as pd
import requests

from config.config_loader import load_config
from core.exceptions import NetworkError, ParseError
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 60


def _get_json(url: str, params: Dict, timeout: float) -> Dict:
    try:
        response = requests.get(url, params=params, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.Timeout as e:
        raise NetworkError(f"ECHO request timed out after {timeout}s: {url}") from e
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"ECHO request failed: {e}") from e

    try:
        return response.json()
    except ValueError as e:
        raise ParseError(f"ECHO response from {url} is not valid JSON") from e


def read_echo_facilities(
    timeout: Optional[float] = None,
    config: Optional[Dict] = None,
    **params
) -> List[Dict]:
    """
    Query ECHO for Clean Water Act facilities.

    Parameters:
    -----------
    timeout : Optional[float]
        Request timeout in seconds (default: services.timeout from config)
    config : Optional[Dict]
        Configuration dictionary (loaded if not provided)
    **params
        ECHO facility search parameters, sent as-is

    Returns:
    --------
    List[Dict]
        GeoJSON Feature dicts, one per facility (may be empty)

    Raises:
    -------
    NetworkError
        If either request fails
    ParseError
        If a response isn't JSON, carries no QueryID, or has no feature list

    Example:
        >>> features = read_echo_facilities(p_st='UT', p_huc='16020101')
        >>> frame = facilities_to_frame(features)
    """
    if config is None:
        config = load_config()
    services = config['services']
    if timeout is None:
        timeout = services.get('timeout', DEFAULT_TIMEOUT)

    logger.info(f"Querying ECHO facilities ({len(params)} search parameter(s))...")

    info = _get_json(services['echo_facility_url'], {**params, 'output': 'JSON'}, timeout)

    try:
        query_id = info['Results']['QueryID']
    except (KeyError, TypeError) as e:
        message = None
        if isinstance(info, dict) and isinstance(info.get('Results'), dict):
            message = info['Results'].get('Message')
        raise ParseError(f"ECHO facility search returned no QueryID{': ' + message if message else ''}") from e

    logger.debug(f"  - ECHO query ID: {query_id}")

    collection = _get_json(
        services['echo_geojson_url'],
        {'output': 'GEOJSON', 'qid': query_id},
        timeout
    )

    features = collection.get('features') if isinstance(collection, dict) else None
    if features is None:
        raise ParseError(f"ECHO GeoJSON response for query {query_id} has no 'features'")

    logger.info(f"  ✓ ECHO returned {len(features)} facilit(ies)")
    return features


def facilities_to_frame(features: List[Dict]) -> pd.DataFrame:
    """
    Flatten ECHO GeoJSON features into one row per facility.

    Columns are the feature properties plus ``dec_long`` and ``dec_lat`` taken
    from the point coordinates. Features without point geometry get NaN
    coordinates, which the normalizer rejects.
    """
    rows = []
    for feature in features:
        row = dict(feature.get('properties') or {})
        geometry = feature.get('geometry') or {}
        coordinates = geometry.get('coordinates') if geometry.get('type') == 'Point' else None

        if coordinates and len(coordinates) >= 2:
            row['dec_long'], row['dec_lat'] = coordinates[0], coordinates[1]
        else:
            row['dec_long'], row['dec_lat'] = float('nan'), float('nan')
        rows.append(row)

    return pd.DataFrame(rows)
