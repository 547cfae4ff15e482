"""Tests for map composition, popups and search."""

import re

import folium
import pytest

from core.layer_builder import (
    build_centroid_layer,
    build_label_layer,
    build_point_layer,
    build_reference_layers,
)
from core.layer_state import apply_toggles
from core.map_composer import (
    base_layers_from_config,
    build_legend,
    build_search_index,
    compose,
    popup_at,
)

POLYGON_GROUPS = ("Assessment units", "Beneficial uses", "Site-specific standards")


@pytest.fixture
def base_layers(config):
    return base_layers_from_config(config)


@pytest.fixture
def reference_layers(config, au_poly, bu_poly, ss_poly):
    return build_reference_layers(
        {
            "assessment_units": au_poly,
            "beneficial_uses": bu_poly,
            "site_specific_standards": ss_poly,
        },
        config["polygon_layers"],
    )


@pytest.fixture
def full_map(sites, au_poly, reference_layers, base_layers):
    layers = [
        build_point_layer(sites),
        build_centroid_layer(au_poly),
        build_label_layer(sites),
    ] + reference_layers
    return compose(layers, base_layers)


class TestBaseLayers:
    def test_from_config(self, base_layers):
        assert [b.name for b in base_layers] == ["Topo", "Satellite"]
        assert "World_Topo_Map" in base_layers[0].tile_url


class TestEmptyCompose:
    def test_only_topo_visible(self, au_poly, reference_layers, base_layers):
        artifact = compose([build_centroid_layer(au_poly)] + reference_layers, base_layers)

        assert artifact.visible_by_default == ("Topo",)
        assert artifact.hidden_by_default == POLYGON_GROUPS
        assert artifact.overlays == POLYGON_GROUPS
        assert artifact.base_layers == ("Topo", "Satellite")

    def test_search_still_covers_assessment_units(self, au_poly, reference_layers, base_layers):
        artifact = compose([build_centroid_layer(au_poly)] + reference_layers, base_layers)

        keys = {entry.key for entry in artifact.search_index}
        assert keys == {"UT-AU-001", "UT-AU-002", "Mantua Reservoir", "Box Elder Creek"}
        assert artifact.legend == []

    def test_no_layers_at_all(self, base_layers):
        artifact = compose([], base_layers)

        assert artifact.visible_by_default == ("Topo",)
        assert artifact.overlays == ()
        assert "<html>" in artifact.render().lower()

    def test_requires_base_layer(self, reference_layers):
        with pytest.raises(ValueError):
            compose(reference_layers, [])


class TestFullCompose:
    def test_default_visibility(self, full_map):
        assert full_map.visible_by_default == ("Topo", "Sites", "Labels")
        assert full_map.hidden_by_default == POLYGON_GROUPS
        assert full_map.overlays == ("Sites", "Labels") + POLYGON_GROUPS

    def test_centroids_not_in_layer_control(self, full_map):
        assert "AU centroids" not in full_map.overlays

    def test_legend_matches_marker_colors(self, full_map):
        sites_layer = full_map.layers["Sites"]
        assert full_map.legend == list(sites_layer.category_colors.items())

    def test_search_index_layers(self, full_map):
        layers = {entry.layer for entry in full_map.search_index}
        assert layers == {"Sites", "AU centroids"}

    def test_search_popups(self, full_map):
        by_key = {(e.field, e.key): e for e in full_map.search_index}

        assert by_key[("ASSESS_ID", "UT-AU-001")].popup_html.startswith("AU name: Mantua Reservoir")
        assert by_key[("AU_NAME", "Mantua Reservoir")].popup_html.startswith("AU ID: UT-AU-001")
        assert by_key[("locationName", "MANTUA RES AB DAM 01")].popup_html.startswith("Location ID: ")

    def test_renders_html(self, full_map):
        html = full_map.render()

        for name in ("Topo", "Satellite", "Sites", "Labels") + POLYGON_GROUPS:
            assert name in html
        assert "site-map-legend" in html
        assert "UTAHDWQ_WQX-4900440" in html

    def test_search_markers_not_clickable(self, full_map):
        search_layer = next(
            child for child in full_map.map._children.values()
            if isinstance(child, folium.GeoJson) and child.layer_name == "Search index"
        )
        options = search_layer.marker.options

        assert options["interactive"] is False
        assert options["stroke"] is False
        assert options["fill"] is False

    def test_search_markers_render_hidden(self, full_map):
        html = full_map.render()

        assert re.search(r'"interactive":\s*false', html)
        assert re.search(r'"stroke":\s*false', html)

    def test_duplicate_layer_names(self, sites, base_layers):
        with pytest.raises(ValueError):
            compose([build_point_layer(sites), build_point_layer(sites)], base_layers)


class TestPopupAt:
    # Inside UT-AU-001 and the beneficial use polygon, away from any site
    LON, LAT = -111.98, 41.02

    def test_hidden_polygons_give_no_popup(self, full_map):
        assert popup_at(full_map, full_map.state, self.LON, self.LAT) is None

    def test_last_enabled_overlay_wins(self, full_map):
        state = apply_toggles(full_map.state, ["Assessment units", "Beneficial uses"])

        hit = popup_at(full_map, state, self.LON, self.LAT)

        assert hit.layer == "Beneficial uses"
        assert hit.popup_html == "Description: Mantua Reservoir and tributaries<br> Uses: 1C,2B,3A,4"

    def test_reverse_order(self, full_map):
        state = apply_toggles(full_map.state, ["Beneficial uses", "Assessment units"])

        hit = popup_at(full_map, state, self.LON, self.LAT)

        assert hit.layer == "Assessment units"
        assert hit.popup_html.startswith("AU name: Mantua Reservoir<br> AU ID: UT-AU-001")

    def test_site_click(self, full_map):
        hit = popup_at(full_map, full_map.state, -111.95, 41.05)

        assert hit.layer == "Sites"
        assert hit.popup_html.startswith("Location ID: UTAHDWQ_WQX-4900440")

    def test_polygon_enabled_after_sites_is_on_top(self, full_map):
        state = apply_toggles(full_map.state, ["Assessment units"])
        assert popup_at(full_map, state, -111.95, 41.05).layer == "Assessment units"


class TestHelpers:
    def test_legend_ignores_polygons(self, reference_layers):
        assert build_legend(reference_layers) == []

    def test_search_index_skips_unsearchable(self, sites):
        assert build_search_index([build_label_layer(sites)]) == []
