"""
Output generation module for the Water-Quality Site Map Builder.

This module handles saving the composed map to the output directory.
Creates a named (or timestamped) directory with the HTML map, a metadata
summary and, optionally, the site table annotated with assessment units.

Functions:
    build_metadata: Summarize a composed map as a JSON-serializable dict
    save_map: Save map, metadata and joined site table to the output directory
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd

from config.config_loader import OUTPUT_DIR
from core.map_composer import MapArtifact
from utils.logger import get_logger, log_section

logger = get_logger(__name__)


def build_metadata(artifact: MapArtifact) -> Dict:
    """
    Summarize a composed map.

    Returns a dict with the generation time, base layers, overlays (in layer
    control order), default visibility, per-layer feature counts and reference
    kinds, legend categories and the number of search entries.
    """
    layers = {
        name: {
            'geometry_type': layer.geometry_type,
            'kind': layer.kind,
            'feature_count': int(len(layer.features)),
            'show': bool(layer.show),
            'in_layer_control': bool(layer.control),
            'searchable': layer.searchable
        }
        for name, layer in artifact.layers.items()
    }

    return {
        'generated_at': datetime.now().isoformat(),
        'base_layers': list(artifact.base_layers),
        'overlays': list(artifact.overlays),
        'visible_by_default': list(artifact.visible_by_default),
        'hidden_by_default': list(artifact.hidden_by_default),
        'layers': layers,
        'categories': [{'label': label, 'color': color} for label, color in artifact.legend],
        'search_entries': len(artifact.search_index)
    }


def save_map(
    artifact: MapArtifact,
    output_name: Optional[str] = None,
    joined: Optional[pd.DataFrame] = None,
    output_dir: Optional[Union[str, Path]] = None
) -> Path:
    """
    Save a composed map to disk.

    Creates an output directory containing:
    - index.html: Interactive Leaflet map
    - metadata.json: Layer summary (see build_metadata)
    - joined_sites.csv: Sites with assessment units, if ``joined`` is given

    Parameters:
    -----------
    artifact : MapArtifact
        Composed map
    output_name : Optional[str]
        Output directory name (defaults to site_map_YYYYMMDD_HHMMSS)
    joined : Optional[pd.DataFrame]
        Site table from assign_assessment_units
    output_dir : Optional[Union[str, Path]]
        Parent directory (defaults to OUTPUT_DIR)

    Returns:
    --------
    Path
        Path to the output directory

    Example:
        >>> save_map(artifact, 'mantua')
        Path('outputs/mantua')
    """
    log_section(logger, "Generating Output Files")

    if output_name is None:
        output_name = f"site_map_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

    output_path = Path(output_dir or OUTPUT_DIR) / output_name
    output_path.mkdir(parents=True, exist_ok=True)
    logger.info(f"Output directory: {output_path}")

    logger.info("  - Saving interactive map...")
    map_file = artifact.save(output_path / 'index.html')

    logger.info("  - Saving metadata...")
    with open(output_path / 'metadata.json', 'w', encoding='utf-8') as f:
        json.dump(build_metadata(artifact), f, indent=2)

    if joined is not None:
        logger.info(f"  - Saving joined site table ({len(joined)} rows)...")
        joined.to_csv(output_path / 'joined_sites.csv', index=False)

    logger.info("")
    log_section(logger, "✓ Output Generation Complete")
    logger.info(f"To view the map, open: {map_file}")

    return output_path
