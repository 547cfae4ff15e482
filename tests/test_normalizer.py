"""Tests for provider record normalization."""

import pandas as pd
import pytest
from geopandas.testing import assert_geodataframe_equal

from core.exceptions import SchemaError
from core.normalizer import (
    ECHO_FACILITY_FIELDS,
    POINT_COLUMNS,
    WQP_SITE_FIELDS,
    combine_point_records,
    empty_point_records,
    field_maps_from_config,
    normalize_facilities,
    normalize_records,
    normalize_sites,
)
from core.echo_query import facilities_to_frame


class TestNormalizeRecords:
    def test_wqp_columns_mapped(self, wqp_raw):
        points = normalize_sites(wqp_raw)

        assert list(points.columns) == POINT_COLUMNS + ["geometry"]
        assert points.crs == "EPSG:4326"
        assert points["locationID"].tolist()[0] == "UTAHDWQ_WQX-4900440"
        assert points["locationType"].tolist()[1] == "River/Stream"

    def test_geometry_is_lon_lat(self, wqp_raw):
        points = normalize_sites(wqp_raw)

        first = points.geometry.iloc[0]
        assert first.x == pytest.approx(-111.95)
        assert first.y == pytest.approx(41.05)

    def test_deterministic(self, wqp_raw):
        assert_geodataframe_equal(normalize_sites(wqp_raw), normalize_sites(wqp_raw))

    def test_input_not_modified(self, wqp_raw):
        before = wqp_raw.copy()
        normalize_sites(wqp_raw)
        pd.testing.assert_frame_equal(wqp_raw, before)

    def test_accepts_list_of_mappings(self, wqp_raw):
        points = normalize_records(wqp_raw.to_dict("records"), WQP_SITE_FIELDS)
        assert len(points) == 3

    def test_numeric_identifier_becomes_text(self):
        raw = [{"id": 4900440, "name": "A", "type": "Stream", "lat": 41.0, "lon": -111.9}]
        field_map = {
            "identifier_field": "id",
            "name_field": "name",
            "type_field": "type",
            "lat_field": "lat",
            "long_field": "lon",
        }
        points = normalize_records(raw, field_map)
        assert points["locationID"].iloc[0] == "4900440"

    def test_missing_text_value_is_none(self, wqp_raw):
        wqp_raw.loc[2, "MonitoringLocationTypeName"] = None
        points = normalize_sites(wqp_raw)
        assert points["locationType"].iloc[2] is None

    def test_missing_column_raises(self, wqp_raw):
        with pytest.raises(SchemaError) as excinfo:
            normalize_sites(wqp_raw.drop(columns=["MonitoringLocationName"]))

        assert excinfo.value.field == "MonitoringLocationName"
        assert excinfo.value.provider == "wqp_sites"

    def test_incomplete_field_map_raises(self, wqp_raw):
        field_map = dict(WQP_SITE_FIELDS)
        del field_map["type_field"]

        with pytest.raises(SchemaError):
            normalize_records(wqp_raw, field_map)

    def test_missing_coordinate_raises(self, wqp_raw):
        wqp_raw.loc[1, "LatitudeMeasure"] = None
        with pytest.raises(SchemaError) as excinfo:
            normalize_sites(wqp_raw)
        assert excinfo.value.field == "LatitudeMeasure"

    def test_out_of_range_coordinate_raises(self, wqp_raw):
        wqp_raw.loc[0, "LongitudeMeasure"] = -250.0
        with pytest.raises(SchemaError):
            normalize_sites(wqp_raw)

    def test_schema_error_is_value_error(self, wqp_raw):
        with pytest.raises(ValueError):
            normalize_sites(wqp_raw.drop(columns=["LatitudeMeasure"]))

    def test_empty_input(self):
        points = normalize_records([], WQP_SITE_FIELDS)
        assert len(points) == 0
        assert list(points.columns) == POINT_COLUMNS + ["geometry"]

    def test_empty_frame_with_columns(self, wqp_raw):
        points = normalize_sites(wqp_raw.iloc[0:0])
        assert len(points) == 0


class TestFacilities:
    def test_echo_features(self, echo_features):
        points = normalize_facilities(facilities_to_frame(echo_features))

        assert points["locationID"].tolist() == ["UT0024392", "UT0025852"]
        assert points["locationType"].tolist() == ["POTW", "NON-POTW"]
        assert points["longitude"].tolist() == [-111.93, -111.75]

    def test_field_maps_from_config_match_builtins(self, config):
        maps = field_maps_from_config(config)
        assert maps["wqp_sites"] == WQP_SITE_FIELDS
        assert maps["echo_facilities"] == ECHO_FACILITY_FIELDS


class TestCombine:
    def test_order_preserved(self, wqp_raw, echo_features):
        sites = normalize_sites(wqp_raw)
        facilities = normalize_facilities(facilities_to_frame(echo_features))

        combined = combine_point_records(sites, facilities)

        assert len(combined) == 5
        assert combined["locationID"].tolist()[:3] == sites["locationID"].tolist()
        assert combined.index.tolist() == list(range(5))

    def test_none_and_empty_skipped(self, wqp_raw):
        sites = normalize_sites(wqp_raw)
        combined = combine_point_records(None, empty_point_records(), sites)
        assert len(combined) == 3

    def test_nothing_to_combine(self):
        combined = combine_point_records()
        assert len(combined) == 0
        assert combined.crs == "EPSG:4326"
