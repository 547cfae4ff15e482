"""Shared fixtures: small reference polygons near Mantua, UT and provider records."""

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from config.config_loader import load_config
from core.normalizer import normalize_sites


@pytest.fixture(scope="session")
def config():
    return load_config()


@pytest.fixture
def au_poly():
    return gpd.GeoDataFrame(
        {
            "AU_NAME": ["Mantua Reservoir", "Box Elder Creek"],
            "ASSESS_ID": ["UT-AU-001", "UT-AU-002"],
            "AU_DESCRIP": ["Mantua Reservoir", "Box Elder Creek upper"],
            "AU_Type": ["Reservoir/Lake", "River/Stream"],
        },
        geometry=[box(-112.0, 41.0, -111.9, 41.1), box(-111.8, 41.0, -111.7, 41.1)],
        crs="EPSG:4326",
    )


@pytest.fixture
def bu_poly():
    # Covers all of UT-AU-001
    return gpd.GeoDataFrame(
        {"R317Descrp": ["Mantua Reservoir and tributaries"], "bu_class": ["1C,2B,3A,4"]},
        geometry=[box(-112.05, 40.95, -111.85, 41.15)],
        crs="EPSG:4326",
    )


@pytest.fixture
def ss_poly():
    return gpd.GeoDataFrame(
        {"SiteSpecif": ["TDS 1,200 mg/L"]},
        geometry=[box(-111.75, 41.02, -111.72, 41.05)],
        crs="EPSG:4326",
    )


@pytest.fixture
def wqp_raw():
    """Two sites inside UT-AU-001 and one outside every assessment unit."""
    return pd.DataFrame(
        {
            "MonitoringLocationIdentifier": [
                "UTAHDWQ_WQX-4900440",
                "UTAHDWQ_WQX-4900470",
                "UTAHDWQ_WQX-4900999",
            ],
            "MonitoringLocationName": [
                "MANTUA RES AB DAM 01",
                "MAPLE CK AB MANTUA RES",
                "FAR AWAY SPRING",
            ],
            "MonitoringLocationTypeName": [
                "Lake, Reservoir, Impoundment",
                "River/Stream",
                "River/Stream",
            ],
            "LatitudeMeasure": [41.05, 41.08, 41.5],
            "LongitudeMeasure": [-111.95, -111.92, -111.5],
            "OrganizationIdentifier": ["UTAHDWQ_WQX"] * 3,
        }
    )


@pytest.fixture
def sites(wqp_raw):
    return normalize_sites(wqp_raw)


@pytest.fixture
def echo_features():
    return [
        {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [-111.93, 41.06]},
            "properties": {
                "SourceID": "UT0024392",
                "CWPName": "BRIGHAM CITY WWTP",
                "CWPFacilityTypeIndicator": "POTW",
            },
        },
        {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [-111.75, 41.04]},
            "properties": {
                "SourceID": "UT0025852",
                "CWPName": "BOX ELDER DAIRY",
                "CWPFacilityTypeIndicator": "NON-POTW",
            },
        },
    ]
