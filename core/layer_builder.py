"""
Layer building module for the Water-Quality Site Map Builder.

Turns normalized point records and reference polygon frames into typed,
renderer-independent ``MapLayer`` objects: features plus styling, popup
template, default visibility and search configuration. The map composer
renders these with folium.

Builders are pure: they copy their inputs and always return the same layer for
the same input.

Classes:
    MapLayer: A named, independently toggleable visual group

Functions:
    build_point_layer: Circle markers colored by location type
    build_label_layer: Label-only markers showing location IDs
    build_polygon_layer: Polygon overlay with popups
    build_centroid_layer: Invisible interior points for polygon search
    build_reference_layers: Polygon layers for all three reference kinds
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import geopandas as gpd

from config.config_loader import POLYGON_KINDS
from utils.color_palette import NA_COLOR, category_colors
from utils.logger import get_logger
from utils.popup_formatters import (
    POLYGON_POPUPS,
    au_name_search_popup,
    au_popup,
    site_popup
)

logger = get_logger(__name__)

POINT = 'point'
POLYGON = 'polygon'
LABEL = 'label'
CENTROID = 'centroid'

GEOMETRY_TYPES = (POINT, POLYGON, LABEL, CENTROID)

PopupTemplate = Callable[[Mapping], str]

DEFAULT_POINT_STYLE = {'radius': 10, 'opacity': 0.8, 'weight': 5, 'fill_opacity': 0.2}
DEFAULT_POLYGON_STYLE = {'color': '#3388ff', 'weight': 3, 'fill_opacity': 0.1, 'smooth_factor': 4}
DEFAULT_LABEL_STYLE = {'text_size': '15px', 'spiderfy_on_max_zoom': True}


@dataclass
class MapLayer:
    """
    A named map layer ready for composition.

    ``search_fields`` maps each searchable attribute to the popup template used
    when a search on that attribute resolves to a feature; an empty mapping
    means the layer is not searchable. ``category_colors`` is the single source
    for both marker colors and legend entries.
    """

    name: str
    geometry_type: str
    features: gpd.GeoDataFrame
    style: Dict[str, Any] = field(default_factory=dict)
    popup: Optional[PopupTemplate] = None
    label_field: Optional[str] = None
    show: bool = True
    control: bool = True
    search_fields: Dict[str, PopupTemplate] = field(default_factory=dict)
    category_field: Optional[str] = None
    category_colors: Dict[Any, str] = field(default_factory=dict)
    kind: Optional[str] = None

    def __post_init__(self):
        if self.geometry_type not in GEOMETRY_TYPES:
            raise ValueError(f"Unknown geometry type for layer '{self.name}': {self.geometry_type}")

    @property
    def searchable(self) -> bool:
        return bool(self.search_fields)

    def popup_html(self, record: Mapping) -> Optional[str]:
        return self.popup(record) if self.popup else None

    def color_for(self, record: Mapping) -> str:
        """Marker color of a record; categorical layers look it up by category."""
        if self.category_field:
            return self.category_colors.get(record.get(self.category_field), NA_COLOR)
        return self.style.get('color', NA_COLOR)


def build_point_layer(
    records: gpd.GeoDataFrame,
    style: Optional[Dict[str, Any]] = None,
    name: str = 'Sites',
    category_field: str = 'locationType'
) -> MapLayer:
    """
    Build the circle-marker layer for sites and facilities.

    Parameters:
    -----------
    records : gpd.GeoDataFrame
        Normalized Point Records
    style : Optional[Dict[str, Any]]
        Overrides for radius, opacity, weight, fill_opacity
    name : str
        Layer group name shown in the layer control
    category_field : str
        Column whose distinct values drive marker colors

    Returns:
    --------
    MapLayer
        Visible, searchable by locationID and locationName
    """
    features = records.copy()
    colors = category_colors(features[category_field]) if len(features) else {}

    logger.debug(f"{name}: {len(features)} point(s) in {len(colors)} categor(ies)")

    return MapLayer(
        name=name,
        geometry_type=POINT,
        features=features,
        style={**DEFAULT_POINT_STYLE, **(style or {})},
        popup=site_popup,
        show=True,
        control=True,
        search_fields={'locationID': site_popup, 'locationName': site_popup},
        category_field=category_field,
        category_colors=colors
    )


def build_label_layer(
    records: gpd.GeoDataFrame,
    style: Optional[Dict[str, Any]] = None,
    name: str = 'Labels',
    label_field: str = 'locationID'
) -> MapLayer:
    """Build clustered, always-visible text labels for point records."""
    return MapLayer(
        name=name,
        geometry_type=LABEL,
        features=records.copy(),
        style={**DEFAULT_LABEL_STYLE, **(style or {})},
        label_field=label_field,
        show=True,
        control=True
    )


def build_polygon_layer(
    features: gpd.GeoDataFrame,
    style: Optional[Dict[str, Any]] = None,
    popup: Optional[PopupTemplate] = None,
    name: str = 'Polygons',
    kind: Optional[str] = None
) -> MapLayer:
    """
    Build a polygon overlay.

    Polygon overlays start hidden; the user turns them on from the layer
    control.

    Args:
        features: Polygon frame in EPSG:4326
        style: Overrides for color, weight, fill_opacity, smooth_factor
        popup: Popup template (defaults to the template of ``kind``)
        name: Layer group name
        kind: Reference polygon kind, if any

    Returns:
        Hidden, non-searchable MapLayer
    """
    if popup is None and kind is not None:
        popup = POLYGON_POPUPS.get(kind)

    return MapLayer(
        name=name,
        geometry_type=POLYGON,
        features=features.copy(),
        style={**DEFAULT_POLYGON_STYLE, **(style or {})},
        popup=popup,
        show=False,
        control=True,
        kind=kind
    )


def build_centroid_layer(
    polygons: gpd.GeoDataFrame,
    name: str = 'AU centroids',
    search_fields: Optional[Dict[str, PopupTemplate]] = None,
    popup: PopupTemplate = au_popup
) -> MapLayer:
    """
    Build invisible representative points for polygon search.

    Each polygon is reduced to a point guaranteed to lie inside it, so a search
    hit lands within the polygon even for concave shapes. The layer is not
    listed in the layer control.

    Args:
        polygons: Polygon frame (assessment units by default)
        name: Internal layer name
        search_fields: Searchable attribute -> popup template; defaults to
            ASSESS_ID and AU_NAME
        popup: Popup template for the points themselves

    Returns:
        Searchable MapLayer of interior points
    """
    if search_fields is None:
        search_fields = {'ASSESS_ID': au_popup, 'AU_NAME': au_name_search_popup}

    points = polygons.copy()
    points[polygons.geometry.name] = polygons.geometry.representative_point()

    return MapLayer(
        name=name,
        geometry_type=CENTROID,
        features=points,
        style={'radius': 1, 'opacity': 0.0, 'fill_opacity': 0.0},
        popup=popup,
        show=True,
        control=False,
        search_fields=dict(search_fields)
    )


def build_reference_layers(
    polygons_by_kind: Mapping[str, gpd.GeoDataFrame],
    layer_config: Mapping[str, Mapping],
    settings: Optional[Mapping[str, Any]] = None
) -> List[MapLayer]:
    """
    Build polygon overlays for the reference datasets in layer control order.

    Args:
        polygons_by_kind: kind -> polygon frame
        layer_config: ``polygon_layers`` section of the configuration
        settings: Map settings (weight, fill opacity, smooth factor)

    Returns:
        List of hidden polygon MapLayers, assessment units first
    """
    settings = settings or {}
    layers = []

    for kind in POLYGON_KINDS:
        if kind not in polygons_by_kind:
            continue

        cfg = layer_config[kind]
        style = {
            'color': cfg.get('color', DEFAULT_POLYGON_STYLE['color']),
            'weight': settings.get('polygon_weight', DEFAULT_POLYGON_STYLE['weight']),
            'fill_opacity': settings.get('polygon_fill_opacity', DEFAULT_POLYGON_STYLE['fill_opacity']),
            'smooth_factor': settings.get('polygon_smooth_factor', DEFAULT_POLYGON_STYLE['smooth_factor'])
        }
        layers.append(build_polygon_layer(
            polygons_by_kind[kind], style=style, name=cfg['group'], kind=kind
        ))

    return layers
