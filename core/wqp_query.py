"""
Water Quality Portal monitoring location query module.

Requests station (monitoring location) records from the WQP Station search
endpoint as CSV and returns them as a DataFrame with the WQX column names
(MonitoringLocationIdentifier, LatitudeMeasure, ...).

Functions:
    read_wqp_sites: Query WQP stations and return a DataFrame
"""

from io import StringIO
from typing import Dict, Optional

import pandas as pd
import requests

from config.config_loader import load_config
from core.exceptions import NetworkError, ParseError
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 60


def read_wqp_sites(
    timeout: Optional[float] = None,
    config: Optional[Dict] = None,
    **params
) -> pd.DataFrame:
    """
    Query Water Quality Portal monitoring locations.

    Args:
        timeout: Request timeout in seconds (default: services.timeout from config)
        config: Configuration dictionary (loaded if not provided)
        **params: WQP search parameters (siteid, statecode, huc, ...), sent as-is

    Returns:
        One row per monitoring location; empty if nothing matches

    Raises:
        NetworkError: If the request fails or returns an HTTP error
        ParseError: If the body isn't CSV
    """
    if config is None:
        config = load_config()
    services = config['services']
    if timeout is None:
        timeout = services.get('timeout', DEFAULT_TIMEOUT)

    query = {**params, 'mimeType': 'csv', 'zip': 'no'}
    url = services['wqp_station_url']

    logger.info(f"Querying WQP monitoring locations ({len(params)} search parameter(s))...")

    try:
        response = requests.get(url, params=query, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.Timeout as e:
        raise NetworkError(f"WQP request timed out after {timeout}s: {url}") from e
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"WQP request failed: {e}") from e

    if not response.text.strip():
        logger.info("  ✓ WQP returned 0 site(s)")
        return pd.DataFrame()

    try:
        sites = pd.read_csv(StringIO(response.text), dtype={'MonitoringLocationIdentifier': str})
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ParseError(f"WQP response from {url} is not valid CSV") from e

    logger.info(f"  ✓ WQP returned {len(sites)} site(s)")
    return sites
