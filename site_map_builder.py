#!/usr/bin/env python
"""
Water-Quality Site Map Builder
==============================
Maps Water Quality Portal monitoring locations and EPA ECHO Clean Water Act
facilities over Utah assessment units, beneficial use zones and site-specific
standard zones, as an interactive Leaflet web map.
"""

import argparse
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

# Import logging first
from utils.logger import BANNER_WIDTH, setup_logging, get_logger, log_section

from config.config_loader import load_config
from core.echo_query import read_echo_facilities
from core.output_generator import save_map
from core.site_map import assign_assessment_units, build_map
from core.wqp_query import read_wqp_sites


def main(
    site_ids: Optional[Sequence[str]] = None,
    facility_ids: Optional[Sequence[str]] = None,
    wqp_params: Optional[Dict] = None,
    echo_params: Optional[Dict] = None,
    output_name: Optional[str] = None,
    config_path: Optional[str] = None
) -> Optional[Path]:
    """
    Main execution workflow for the site map builder.

    Workflow Steps:
    1. Setup logging to console and file
    2. Load configuration
    3. Query WQP sites and/or ECHO facilities (skipped when not requested)
    4. Assign assessment units to the sites
    5. Build the interactive map
    6. Save map, metadata and joined site table

    Parameters:
    -----------
    site_ids : Optional[Sequence[str]]
        WQP MonitoringLocationIdentifiers, e.g. 'UTAHDWQ_WQX-4900440'
    facility_ids : Optional[Sequence[str]]
        NPDES permit IDs for ECHO, e.g. 'UT0024392'
    wqp_params, echo_params : Optional[Dict]
        Extra search parameters passed to the services as-is
    output_name : Optional[str]
        Custom name for output directory (defaults to timestamped name)
    config_path : Optional[str]
        Alternative configuration file

    Returns:
    --------
    Optional[Path]
        Path to output directory if successful, None if failed

    Example:
        >>> output_path = main(site_ids=['UTAHDWQ_WQX-4900440', 'UTAHDWQ_WQX-4900470'])
        >>> print(f"Map saved to: {output_path / 'index.html'}")
    """
    workflow_start_time = time.time()

    log_file = setup_logging(run_name=output_name)
    logger = get_logger(__name__)

    log_section(logger, "WATER-QUALITY SITE MAP BUILDER")
    logger.info(f"Log file: {log_file}")
    logger.info("")

    try:
        config = load_config(config_path)
        logger.info(f"Configuration loaded: {len(config['polygon_layers'])} reference polygon layers")
        logger.info("")

        sites = None
        wqp_query = dict(wqp_params or {})
        if site_ids:
            wqp_query['siteid'] = list(site_ids)
        if wqp_query:
            sites = read_wqp_sites(config=config, **wqp_query)

        fac = None
        echo_query = dict(echo_params or {})
        if facility_ids:
            echo_query['p_pid'] = ','.join(facility_ids)
        if echo_query:
            fac = read_echo_facilities(config=config, **echo_query)

        joined = None
        if sites is not None and len(sites) > 0:
            joined = assign_assessment_units(sites, config=config)

        if sites is None and fac is None:
            logger.warning("⚠ No sites or facilities requested; the map will only show reference layers.")

        artifact = build_map(fac=fac, sites=sites, config=config)
        output_path = save_map(artifact, output_name, joined=joined)

        total_execution_time = time.time() - workflow_start_time
        logger.info("")
        logger.info("✓ WORKFLOW COMPLETE")
        logger.info(f"✓ Total execution time: {total_execution_time:.2f} seconds")
        logger.info(f"✓ Output directory: {output_path}")
        logger.info(f"✓ Log file: {log_file}")
        logger.info("")

        return output_path

    except Exception as e:
        elapsed_time = time.time() - workflow_start_time

        logger.error("")
        log_section(logger, "✗ WORKFLOW FAILED", level=logging.ERROR)
        logger.error(f"Error: {str(e)}", exc_info=True)
        logger.error(f"Workflow failed after {elapsed_time:.2f} seconds")
        logger.error("")
        logger.error(f"See log file for details: {log_file}")
        logger.error("=" * BANNER_WIDTH)
        return None


def query_param(text: str) -> Tuple[str, str]:
    """argparse type for ``KEY=VALUE`` service search parameters."""
    key, sep, value = text.partition('=')
    key = key.strip()
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {text!r}")
    return key, value.strip()


def query_dict(pairs: Sequence[Tuple[str, str]]) -> Dict[str, Union[str, List[str]]]:
    """Fold ``(key, value)`` pairs into request parameters; repeated keys become lists."""
    params = {}
    for key, value in pairs:
        if key not in params:
            params[key] = value
        elif isinstance(params[key], list):
            params[key].append(value)
        else:
            params[key] = [params[key], value]
    return params


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Build an interactive map of water-quality sites and facilities"
    )
    parser.add_argument(
        "--site", dest="site_ids", action="append", default=[],
        help="WQP monitoring location identifier (repeatable)"
    )
    parser.add_argument(
        "--facility", dest="facility_ids", action="append", default=[],
        help="ECHO NPDES permit ID (repeatable)"
    )
    parser.add_argument(
        "--wqp", dest="wqp_params", action="append", default=[], type=query_param, metavar="KEY=VALUE",
        help="Extra WQP station search parameter, e.g. statecode=US:49 (repeatable)"
    )
    parser.add_argument(
        "--echo", dest="echo_params", action="append", default=[], type=query_param, metavar="KEY=VALUE",
        help="Extra ECHO facility search parameter, e.g. p_st=UT (repeatable)"
    )
    parser.add_argument("--output", dest="output_name", default=None, help="Output directory name")
    parser.add_argument("--config", dest="config_path", default=None, help="Configuration JSON file")
    return parser.parse_args(argv)


def cli(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    output_dir = main(
        site_ids=args.site_ids,
        facility_ids=args.facility_ids,
        wqp_params=query_dict(args.wqp_params),
        echo_params=query_dict(args.echo_params),
        output_name=args.output_name,
        config_path=args.config_path
    )

    if output_dir:
        print(f"\n✓ Success! Open {output_dir / 'index.html'} in your browser.")
        return 0

    print("\n✗ Failed to generate map. Check log file for details.")
    return 1


if __name__ == "__main__":
    raise SystemExit(cli())
