"""Tests for the end-to-end workflow: build_map, assessment units, output and CLI."""

import json
import logging
from unittest.mock import patch

import geopandas as gpd
import pytest

from core.exceptions import CRSMismatchError, NetworkError, SchemaError
from core.output_generator import build_metadata, save_map
from core.site_map import assign_assessment_units, build_map
import site_map_builder

POLYGON_GROUPS = ("Assessment units", "Beneficial uses", "Site-specific standards")


@pytest.fixture
def polygons(au_poly, bu_poly, ss_poly):
    return {"au_poly": au_poly, "bu_poly": bu_poly, "ss_poly": ss_poly}


class TestBuildMap:
    def test_sites_only(self, wqp_raw, polygons, config):
        artifact = build_map(sites=wqp_raw, config=config, **polygons)

        assert artifact.overlays == ("Sites", "Labels") + POLYGON_GROUPS
        assert artifact.visible_by_default == ("Topo", "Sites", "Labels")
        assert len(artifact.layers["Sites"].features) == 3

    def test_sites_and_facility_features(self, wqp_raw, echo_features, polygons, config):
        artifact = build_map(fac=echo_features, sites=wqp_raw, config=config, **polygons)

        ids = artifact.layers["Sites"].features["locationID"].tolist()
        assert ids[:3] == wqp_raw["MonitoringLocationIdentifier"].tolist()
        assert ids[3:] == ["UT0024392", "UT0025852"]
        assert {label for label, _ in artifact.legend} == {
            "Lake, Reservoir, Impoundment", "River/Stream", "POTW", "NON-POTW"
        }

    def test_empty(self, polygons, config, caplog):
        caplog.set_level(logging.INFO, logger="wqmap")

        artifact = build_map(config=config, **polygons)

        assert artifact.visible_by_default == ("Topo",)
        assert artifact.hidden_by_default == POLYGON_GROUPS
        assert "Building map w/o sites or facilities..." in caplog.text
        assert any(e.key == "UT-AU-001" for e in artifact.search_index)

    def test_default_reference_data(self, config):
        artifact = build_map(config=config)
        assert artifact.overlays == POLYGON_GROUPS
        assert len(artifact.layers["Assessment units"].features) > 0

    def test_bad_sites(self, wqp_raw, polygons, config):
        with pytest.raises(SchemaError):
            build_map(sites=wqp_raw.drop(columns=["LongitudeMeasure"]), config=config, **polygons)

    def test_projected_reference_polygons(self, wqp_raw, polygons, config):
        polygons["au_poly"] = polygons["au_poly"].to_crs("EPSG:26912")

        with pytest.raises(CRSMismatchError):
            build_map(sites=wqp_raw, config=config, **polygons)


class TestAssignAssessmentUnits:
    def test_ut_au_001(self, wqp_raw, au_poly, config):
        result = assign_assessment_units(wqp_raw, au_poly=au_poly, config=config)

        assert not isinstance(result, gpd.GeoDataFrame)
        assert "geometry" not in result.columns
        assert result["ASSESS_ID"].tolist() == ["UT-AU-001", "UT-AU-001", None]
        assert result["MonitoringLocationIdentifier"].tolist() == wqp_raw["MonitoringLocationIdentifier"].tolist()
        assert list(result.columns)[-4:] == ["AU_NAME", "ASSESS_ID", "AU_DESCRIP", "AU_Type"]

    def test_custom_columns(self, wqp_raw, au_poly, config):
        data = wqp_raw.rename(columns={"LatitudeMeasure": "lat", "LongitudeMeasure": "lon"})
        result = assign_assessment_units(data, lat="lat", long="lon", au_poly=au_poly, config=config)
        assert result["ASSESS_ID"].notna().sum() == 2

    def test_missing_coordinate_column(self, wqp_raw, au_poly, config):
        with pytest.raises(SchemaError):
            assign_assessment_units(wqp_raw, lat="lat", au_poly=au_poly, config=config)

    def test_projected_polygons(self, wqp_raw, au_poly, config):
        with pytest.raises(CRSMismatchError):
            assign_assessment_units(wqp_raw, au_poly=au_poly.to_crs("EPSG:26912"), config=config)


class TestSaveMap:
    def test_files_written(self, tmp_path, wqp_raw, polygons, au_poly, config):
        artifact = build_map(sites=wqp_raw, config=config, **polygons)
        joined = assign_assessment_units(wqp_raw, au_poly=au_poly, config=config)

        output_path = save_map(artifact, "mantua", joined=joined, output_dir=tmp_path)

        assert output_path == tmp_path / "mantua"
        assert (output_path / "index.html").exists()
        assert (output_path / "joined_sites.csv").exists()

        metadata = json.loads((output_path / "metadata.json").read_text(encoding="utf-8"))
        assert metadata["overlays"] == ["Sites", "Labels"] + list(POLYGON_GROUPS)
        assert metadata["layers"]["Sites"]["feature_count"] == 3
        assert metadata["visible_by_default"] == ["Topo", "Sites", "Labels"]

    def test_metadata_categories(self, wqp_raw, polygons, config):
        artifact = build_map(sites=wqp_raw, config=config, **polygons)
        metadata = build_metadata(artifact)

        assert [c["label"] for c in metadata["categories"]] == ["Lake, Reservoir, Impoundment", "River/Stream"]
        assert metadata["search_entries"] == len(artifact.search_index)

    def test_metadata_reference_kinds(self, wqp_raw, polygons, config):
        layers = build_metadata(build_map(sites=wqp_raw, config=config, **polygons))["layers"]

        assert layers["Assessment units"]["kind"] == "assessment_units"
        assert layers["Beneficial uses"]["kind"] == "beneficial_uses"
        assert layers["Site-specific standards"]["kind"] == "site_specific_standards"
        assert layers["Sites"]["kind"] is None


class TestMain:
    def test_workflow(self, tmp_path, wqp_raw):
        with patch.object(site_map_builder, "setup_logging", return_value=tmp_path / "run.log"), \
             patch.object(site_map_builder, "read_wqp_sites", return_value=wqp_raw) as mock_sites, \
             patch.object(site_map_builder, "save_map", return_value=tmp_path) as mock_save:
            result = site_map_builder.main(site_ids=["UTAHDWQ_WQX-4900440"])

        assert result == tmp_path
        assert mock_sites.call_args.kwargs["siteid"] == ["UTAHDWQ_WQX-4900440"]
        assert mock_save.call_args.kwargs["joined"] is not None

    def test_failure_returns_none(self, tmp_path):
        with patch.object(site_map_builder, "setup_logging", return_value=tmp_path / "run.log"), \
             patch.object(site_map_builder, "read_echo_facilities", side_effect=NetworkError("offline")):
            assert site_map_builder.main(facility_ids=["UT0024392"]) is None

    def test_parse_args(self):
        args = site_map_builder.parse_args(["--site", "A", "--site", "B", "--output", "x"])
        assert args.site_ids == ["A", "B"]
        assert args.output_name == "x"

    def test_parse_service_params(self):
        args = site_map_builder.parse_args([
            "--wqp", "statecode=US:49", "--wqp", "huc=16020102", "--wqp", "huc=16020101",
            "--echo", "p_st=UT",
        ])

        assert site_map_builder.query_dict(args.wqp_params) == {
            "statecode": "US:49", "huc": ["16020102", "16020101"]
        }
        assert site_map_builder.query_dict(args.echo_params) == {"p_st": "UT"}

    @pytest.mark.parametrize("value", ["statecode", "=UT"])
    def test_malformed_service_param(self, value):
        with pytest.raises(SystemExit):
            site_map_builder.parse_args(["--echo", value])

    def test_cli_passes_service_params(self, tmp_path):
        with patch.object(site_map_builder, "main", return_value=tmp_path) as mock_main:
            code = site_map_builder.cli(["--site", "A", "--wqp", "characteristicName=pH", "--echo", "p_st=UT"])

        assert code == 0
        kwargs = mock_main.call_args.kwargs
        assert kwargs["site_ids"] == ["A"]
        assert kwargs["wqp_params"] == {"characteristicName": "pH"}
        assert kwargs["echo_params"] == {"p_st": "UT"}

    def test_service_params_reach_clients(self, tmp_path, wqp_raw, echo_features):
        with patch.object(site_map_builder, "setup_logging", return_value=tmp_path / "run.log"), \
             patch.object(site_map_builder, "read_wqp_sites", return_value=wqp_raw) as mock_sites, \
             patch.object(site_map_builder, "read_echo_facilities", return_value=echo_features) as mock_fac, \
             patch.object(site_map_builder, "save_map", return_value=tmp_path):
            site_map_builder.cli(["--site", "A", "--wqp", "statecode=US:49", "--echo", "p_st=UT"])

        assert mock_sites.call_args.kwargs["statecode"] == "US:49"
        assert mock_sites.call_args.kwargs["siteid"] == ["A"]
        assert mock_fac.call_args.kwargs["p_st"] == "UT"
