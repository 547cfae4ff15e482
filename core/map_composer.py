"""
Map composition module for the Water-Quality Site Map Builder.

Assembles ``MapLayer``s into one interactive Leaflet map with Folium:
mutually exclusive base layers, toggleable overlays, a categorical legend, a
search control over the searchable layers and a measurement tool. Alongside the
folium map the composer returns the control configuration as plain data (the
initial ``LayerState``, legend entries and search index), so map behaviour can
be checked without a browser.

Classes:
    BaseLayerSpec: Tile source for a base layer
    SearchEntry: One searchable key resolving to a feature location and popup
    PopupHit: Overlay and popup text answering a click
    MapArtifact: Composed map plus its control configuration

Functions:
    compose: Compose layers into a MapArtifact
    build_legend: Legend entries from point layer category colors
    build_search_index: Search entries for searchable layers
    popup_at: Resolve which popup a click at a location opens
    base_layers_from_config: BaseLayerSpecs from configuration
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import folium
import pandas as pd
from folium import Element, plugins
from jinja2 import Environment, FileSystemLoader
from shapely.geometry import Point

from config.config_loader import load_map_settings
from core.layer_builder import CENTROID, LABEL, POINT, POLYGON, MapLayer
from core.layer_state import LayerState, initial_state, topmost_overlay
from utils.logger import get_logger, log_section
from utils.popup_formatters import MISSING_VALUE

logger = get_logger(__name__)

# Template directory path
TEMPLATES_DIR = Path(__file__).parent.parent / 'templates'

# Click tolerance for point features, in degrees (about 10 m)
POINT_HIT_TOLERANCE = 1e-4

# Keeps a single site from zooming the map to street level
FIT_MAX_ZOOM = 15


@dataclass(frozen=True)
class BaseLayerSpec:
    name: str
    tile_url: str
    attribution: str
    max_zoom: int = 19


@dataclass(frozen=True)
class SearchEntry:
    key: str
    field: str
    layer: str
    latitude: float
    longitude: float
    popup_html: str


@dataclass(frozen=True)
class PopupHit:
    layer: str
    popup_html: str


@dataclass
class MapArtifact:
    """
    A composed map owned by the caller.

    ``state`` is the initial layer visibility; pass it through the transitions
    in ``core.layer_state`` to model user interaction.
    """

    map: folium.Map
    base_layers: Tuple[str, ...]
    overlays: Tuple[str, ...]
    state: LayerState
    legend: List[Tuple[str, str]] = field(default_factory=list)
    search_index: List[SearchEntry] = field(default_factory=list)
    layers: Dict[str, MapLayer] = field(default_factory=dict)

    @property
    def visible_by_default(self) -> Tuple[str, ...]:
        return self.state.visible_layers

    @property
    def hidden_by_default(self) -> Tuple[str, ...]:
        return self.state.hidden_overlays

    def render(self) -> str:
        """Return the complete HTML document of the map."""
        return self.map.get_root().render()

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        self.map.save(str(path))
        return path


def base_layers_from_config(config: Mapping) -> List[BaseLayerSpec]:
    """Read the ``base_layers`` section of the configuration."""
    return [
        BaseLayerSpec(
            name=spec['name'],
            tile_url=spec['tile_url'],
            attribution=spec.get('attribution', ''),
            max_zoom=spec.get('max_zoom', 19)
        )
        for spec in config['base_layers']
    ]


def build_legend(layers: Sequence[MapLayer]) -> List[Tuple[str, str]]:
    """
    Legend entries (label, color) taken from the point layers' category colors.

    The colors are read from the same mapping the markers were drawn with,
    never recomputed.
    """
    entries = []
    seen = set()

    for layer in layers:
        if layer.geometry_type != POINT:
            continue
        for category, color in layer.category_colors.items():
            label = MISSING_VALUE if category is None else str(category)
            if label in seen:
                continue
            seen.add(label)
            entries.append((label, color))

    return entries


def build_search_index(layers: Sequence[MapLayer]) -> List[SearchEntry]:
    """
    Build search entries for every layer flagged searchable.

    Each feature contributes one entry per searchable field with a value;
    polygon features are indexed at a point inside the polygon.
    """
    index = []

    for layer in layers:
        if not layer.searchable or len(layer.features) == 0:
            continue

        geometries = layer.features.geometry
        if layer.geometry_type == POLYGON:
            geometries = geometries.representative_point()

        for search_field, template in layer.search_fields.items():
            if search_field not in layer.features.columns:
                logger.warning(f"  ⚠ {layer.name}: search field '{search_field}' not present, skipped")
                continue

            for (_, row), geom in zip(layer.features.iterrows(), geometries):
                value = row[search_field]
                if geom is None or geom.is_empty or pd.isna(value):
                    continue
                index.append(SearchEntry(
                    key=str(value),
                    field=search_field,
                    layer=layer.name,
                    latitude=geom.y,
                    longitude=geom.x,
                    popup_html=template(row)
                ))

    return index


def _hits(layer: MapLayer, location: Point, tolerance: float) -> List[int]:
    features = layer.features
    if len(features) == 0:
        return []

    if layer.geometry_type == POLYGON:
        mask = features.geometry.intersects(location)
    else:
        mask = pd.Series([g is not None and g.distance(location) <= tolerance for g in features.geometry])

    return [i for i, hit in enumerate(mask.to_numpy()) if hit]


def popup_at(
    artifact: MapArtifact,
    state: LayerState,
    longitude: float,
    latitude: float,
    tolerance: float = POINT_HIT_TOLERANCE
) -> Optional[PopupHit]:
    """
    Resolve the popup a click at a location opens.

    Only the topmost (most recently enabled) visible overlay that has a
    feature under the click answers. Within that overlay, the feature drawn
    last wins, as in Leaflet.

    Parameters:
    -----------
    artifact : MapArtifact
        Composed map
    state : LayerState
        Current layer visibility (initial state or after transitions)
    longitude, latitude : float
        Click location in EPSG:4326
    tolerance : float
        Maximum distance in degrees for point features

    Returns:
    --------
    Optional[PopupHit]
        Overlay name and popup HTML, or None if nothing with a popup is hit
    """
    location = Point(longitude, latitude)
    hits_by_layer = {}

    for name in state.enable_order:
        layer = artifact.layers.get(name)
        if layer is None or layer.popup is None:
            continue
        hits = _hits(layer, location, tolerance)
        if hits:
            hits_by_layer[name] = hits

    top = topmost_overlay(state, hits_by_layer.keys())
    if top is None:
        return None

    layer = artifact.layers[top]
    record = layer.features.iloc[hits_by_layer[top][-1]]
    return PopupHit(layer=top, popup_html=layer.popup_html(record))


def _render_point_layer(layer: MapLayer) -> folium.FeatureGroup:
    group = folium.FeatureGroup(name=layer.name, show=layer.show, control=layer.control)
    style = layer.style

    for _, row in layer.features.iterrows():
        folium.CircleMarker(
            location=[row.geometry.y, row.geometry.x],
            radius=style.get('radius', 10),
            color=layer.color_for(row),
            weight=style.get('weight', 5),
            opacity=style.get('opacity', 0.8),
            fill=True,
            fill_opacity=style.get('fill_opacity', 0.2),
            popup=folium.Popup(layer.popup_html(row), max_width=400)
        ).add_to(group)

    return group


def _render_label_layer(layer: MapLayer) -> plugins.MarkerCluster:
    cluster = plugins.MarkerCluster(
        name=layer.name,
        show=layer.show,
        control=layer.control,
        options={'spiderfyOnMaxZoom': layer.style.get('spiderfy_on_max_zoom', True)}
    )
    text_size = layer.style.get('text_size', '15px')

    for _, row in layer.features.iterrows():
        value = row.get(layer.label_field)
        label = MISSING_VALUE if value is None else str(value)

        # Label-only marker: empty icon with a permanent tooltip
        folium.Marker(
            location=[row.geometry.y, row.geometry.x],
            icon=folium.DivIcon(html='', icon_size=(0, 0)),
            tooltip=folium.Tooltip(
                label,
                permanent=True,
                style=f'font-size: {text_size};'
            )
        ).add_to(cluster)

    return cluster


def _render_polygon_layer(layer: MapLayer) -> folium.GeoJson:
    style = dict(layer.style)

    # Default parameters capture this layer's style (late-binding closures)
    def style_function(feature, style=style):
        return {
            'color': style.get('color', '#3388ff'),
            'weight': style.get('weight', 3),
            'opacity': style.get('opacity', 1.0),
            'fillColor': style.get('fill_color', style.get('color', '#3388ff')),
            'fillOpacity': style.get('fill_opacity', 0.1)
        }

    geojson_layer = folium.GeoJson(
        layer.features,
        name=layer.name,
        show=layer.show,
        control=layer.control,
        smooth_factor=style.get('smooth_factor', 4),
        style_function=style_function
    )

    if layer.popup is not None and geojson_layer.data['features']:
        # Store popup HTML in feature properties for Folium to use
        for feature in geojson_layer.data['features']:
            feature['properties']['popup_html'] = layer.popup_html(feature['properties'])

        geojson_layer.add_child(
            folium.GeoJsonPopup(fields=['popup_html'], labels=False, style="max-width: 400px;")
        )

    return geojson_layer


def _render_search(m: folium.Map, index: List[SearchEntry], search_zoom: int) -> None:
    features = [
        {
            'type': 'Feature',
            'geometry': {'type': 'Point', 'coordinates': [entry.longitude, entry.latitude]},
            'properties': {
                'search_key': entry.key,
                'layer': entry.layer,
                'popup_html': entry.popup_html
            }
        }
        for entry in index
    ]

    # Non-interactive markers: found entries open their popup, clicks pass through
    search_layer = folium.GeoJson(
        {'type': 'FeatureCollection', 'features': features},
        name='Search index',
        control=False,
        marker=folium.CircleMarker(radius=1, stroke=False, fill=False, interactive=False),
        popup=folium.GeoJsonPopup(fields=['popup_html'], labels=False, style="max-width: 400px;")
    )
    search_layer.add_to(m)

    plugins.Search(
        layer=search_layer,
        search_label='search_key',
        geom_type='Point',
        search_zoom=search_zoom,
        position='topleft',
        placeholder='Search sites and assessment units',
        collapsed=True,
        firstTipSubmit=True,
        autoCollapse=True,
        hideMarkerOnCollapse=True
    ).add_to(m)


def _render_legend(m: folium.Map, entries: List[Tuple[str, str]], position: str) -> None:
    env = Environment(loader=FileSystemLoader(str(TEMPLATES_DIR)))
    legend_template = env.get_template('legend.html')
    legend_html = legend_template.render(entries=entries, position=position, title=None)
    m.get_root().html.add_child(Element(legend_html))


def _fit_map(m: folium.Map, layers: Sequence[MapLayer]) -> bool:
    # Frame the points when there are any, otherwise the polygons
    for kinds in ((POINT, LABEL), (POLYGON, CENTROID)):
        frames = [l.features for l in layers if l.geometry_type in kinds and len(l.features) > 0]
        if not frames:
            continue

        bounds = [f.total_bounds for f in frames]
        min_x = min(b[0] for b in bounds)
        min_y = min(b[1] for b in bounds)
        max_x = max(b[2] for b in bounds)
        max_y = max(b[3] for b in bounds)
        m.fit_bounds([[min_y, min_x], [max_y, max_x]], max_zoom=FIT_MAX_ZOOM)
        return True

    return False


def compose(
    layers: Sequence[MapLayer],
    base_layers: Sequence[BaseLayerSpec],
    options: Optional[Mapping[str, Any]] = None
) -> MapArtifact:
    """
    Compose map layers into an interactive map.

    The first base layer is active; the rest are alternatives in the layer
    control. Layers with ``control=True`` become overlays in the order given,
    visible or hidden according to ``layer.show``. Layers with search fields
    feed one search control; point layer category colors feed the legend.
    An empty layer list is valid and produces a base-layer-only map.

    Parameters:
    -----------
    layers : Sequence[MapLayer]
        Layers in drawing order
    base_layers : Sequence[BaseLayerSpec]
        Base tile layers; the first is active by default
    options : Optional[Mapping[str, Any]]
        Map settings (see config_loader.load_map_settings); defaults are used
        for anything missing

    Returns:
    --------
    MapArtifact
        folium map plus layer state, legend and search index

    Raises:
    -------
    ValueError
        If there is no base layer or two layers share a name

    Example:
        >>> artifact = compose(layers, base_layers_from_config(config), settings)
        >>> artifact.visible_by_default
        ('Topo', 'Sites', 'Labels')
    """
    settings = load_map_settings({'settings': dict(options or {})})

    log_section(logger, "Composing Interactive Map")

    control_layers = [l for l in layers if l.control]
    state = initial_state(
        [b.name for b in base_layers],
        [(l.name, l.show) for l in control_layers]
    )

    m = folium.Map(
        location=settings['default_center'],
        zoom_start=settings['default_zoom'],
        tiles=None
    )

    for i, spec in enumerate(base_layers):
        folium.TileLayer(
            tiles=spec.tile_url,
            attr=spec.attribution,
            name=spec.name,
            max_zoom=spec.max_zoom,
            overlay=False,
            control=True,
            show=(i == 0)
        ).add_to(m)

    for layer in layers:
        if layer.geometry_type == CENTROID:
            # Centroids are reachable through the search index only
            logger.debug(f"  - {layer.name}: {len(layer.features)} search point(s)")
            continue

        logger.info(f"  - Adding {layer.name} ({len(layer.features)} features)...")

        if layer.geometry_type == POINT:
            _render_point_layer(layer).add_to(m)
        elif layer.geometry_type == LABEL:
            _render_label_layer(layer).add_to(m)
        else:
            _render_polygon_layer(layer).add_to(m)

    search_index = build_search_index(layers)
    if search_index:
        logger.info(f"  - Adding search control ({len(search_index)} entries)...")
        _render_search(m, search_index, settings['search_zoom'])

    legend = build_legend(layers)
    if legend:
        logger.info(f"  - Adding legend ({len(legend)} categories)...")
        _render_legend(m, legend, settings['legend_position'])

    plugins.MeasureControl(position=settings['measure_position']).add_to(m)

    # autoZIndex off: the most recently enabled overlay is drawn on top
    folium.LayerControl(
        position=settings['layer_control_position'],
        collapsed=False,
        autoZIndex=False
    ).add_to(m)

    if not _fit_map(m, layers):
        logger.debug("No features to frame, using default center")

    logger.info(f"  ✓ Map composed: {len(base_layers)} base layers, {len(control_layers)} overlays")

    return MapArtifact(
        map=m,
        base_layers=state.base_layers,
        overlays=state.overlays,
        state=state,
        legend=legend,
        search_index=search_index,
        layers={l.name: l for l in layers}
    )
