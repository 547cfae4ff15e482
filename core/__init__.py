"""
Core modules for the Water-Quality Site Map Builder.

This package contains the main functional modules for mapping monitoring sites
and permitted facilities over water-body reference polygons.

Modules:
    normalizer: Map provider records onto the common Point Record schema
    spatial_join: Containment join of points against polygon layers
    reference_data: Load and validate reference polygon datasets
    layer_builder: Build typed map layers from records and polygons
    layer_state: Layer visibility state machine
    map_composer: Compose layers into an interactive Leaflet map
    echo_query: Query EPA ECHO Clean Water Act facilities
    wqp_query: Query Water Quality Portal monitoring locations
    site_map: End-to-end map building workflow
    output_generator: Save output files and metadata
    exceptions: Error types raised by the modules above
"""

__version__ = '1.0.0'
