"""
Configuration loading for the Water-Quality Site Map Builder.

This module handles loading and validation of the map configuration JSON file.
The configuration is the single place where provider field maps, default
reference polygon datasets, base layers and service endpoints are declared.

Constants:
    PROJECT_ROOT: Root directory of the project
    CONFIG_DIR: Configuration files directory
    OUTPUT_DIR: Output files directory
    REQUIRED_KEYS: Top-level keys every configuration must define
    POLYGON_KINDS: The three reference polygon layer kinds, in layer control order

Functions:
    load_config: Load and validate map configuration from JSON
    load_map_settings: Merge map settings with defaults
    resolve_project_path: Resolve a config path relative to PROJECT_ROOT
"""

import json
from pathlib import Path
from typing import Dict, Optional, Union

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / 'config'
OUTPUT_DIR = PROJECT_ROOT / 'outputs'

REQUIRED_KEYS = ('providers', 'polygon_layers', 'base_layers', 'services', 'settings')

# Reference polygon kinds in layer control order
POLYGON_KINDS = ('assessment_units', 'beneficial_uses', 'site_specific_standards')

PROVIDER_FIELD_KEYS = ('identifier_field', 'name_field', 'type_field', 'lat_field', 'long_field')


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict:
    """
    Load map configuration from JSON file.

    Reads ``config/map_config.json`` (or ``config_path``) and validates its
    basic structure.

    Parameters:
    -----------
    config_path : Optional[Union[str, Path]]
        Alternative configuration file

    Returns:
    --------
    Dict
        Configuration dictionary with the keys listed in REQUIRED_KEYS

    Raises:
    -------
    FileNotFoundError
        If configuration file doesn't exist
    json.JSONDecodeError
        If configuration file contains invalid JSON
    KeyError
        If required configuration keys are missing
    """
    config_path = Path(config_path) if config_path else CONFIG_DIR / 'map_config.json'

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    for key in REQUIRED_KEYS:
        if key not in config:
            raise KeyError(f"Configuration missing required '{key}' key")

    for kind in POLYGON_KINDS:
        if kind not in config['polygon_layers']:
            raise KeyError(f"Configuration missing polygon layer '{kind}'")

    for provider, field_map in config['providers'].items():
        missing = [k for k in PROVIDER_FIELD_KEYS if k not in field_map]
        if missing:
            raise KeyError(f"Provider '{provider}' field map missing: {', '.join(missing)}")

    return config


def load_map_settings(config: Dict = None) -> Dict:
    """
    Load map rendering settings from configuration.

    Args:
        config: Configuration dictionary (optional, will load if not provided)

    Returns:
        Dictionary with map settings

    Defaults:
        - default_center: [39.5, -111.5] (Utah)
        - default_zoom: 7
        - search_zoom: 12
        - point_radius: 10
        - point_opacity: 0.8
        - polygon_weight: 3
        - polygon_fill_opacity: 0.1
        - polygon_smooth_factor: 4
        - label_text_size: '15px'
        - layer_control_position: 'topleft'
        - legend_position: 'topright'
        - measure_position: 'bottomleft'

    Note:
        Values present in the 'settings' section override the defaults.
    """
    if config is None:
        config = load_config()

    defaults = {
        'default_center': [39.5, -111.5],
        'default_zoom': 7,
        'search_zoom': 12,
        'point_radius': 10,
        'point_opacity': 0.8,
        'polygon_weight': 3,
        'polygon_fill_opacity': 0.1,
        'polygon_smooth_factor': 4,
        'label_text_size': '15px',
        'layer_control_position': 'topleft',
        'legend_position': 'topright',
        'measure_position': 'bottomleft'
    }

    return {**defaults, **config.get('settings', {})}


def resolve_project_path(path: Union[str, Path]) -> Path:
    """Resolve a configured path; relative paths are taken from PROJECT_ROOT."""
    path = Path(path)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path
