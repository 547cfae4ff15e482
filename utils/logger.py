"""
Logging configuration for the Water-Quality Site Map Builder.

Everything logs under the ``wqmap`` logger. The console gets INFO-level
progress (one banner per pipeline stage, then indented step lines); the run's
log file also keeps DEBUG detail such as per-layer join statistics, reference
reprojection and service request URLs.

Functions:
    setup_logging: Initialize logging handlers and return log file path
    get_logger: Get a logger instance for a specific module
    log_section: Write a pipeline stage banner
    log_join_stats: Write how many points a polygon layer matched

Example:
    >>> from utils.logger import setup_logging, get_logger, log_section
    >>> log_file = setup_logging(run_name='mantua')
    >>> logger = get_logger(__name__)
    >>> log_section(logger, "Building Site Map")
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional

ROOT_LOGGER_NAME = 'wqmap'
BANNER_WIDTH = 80

# HTTP and GDAL/OGR readers, held at WARNING
QUIET_LOGGERS = ('urllib3', 'pyogrio', 'fiona')


def setup_logging(
    log_dir: Optional[Path] = None,
    console_level: int = logging.INFO,
    run_name: Optional[str] = None
) -> Path:
    """
    Setup logging to console and file for one map build.

    Creates two handlers on the ``wqmap`` logger:
    - Console: ``console_level`` (INFO by default), message text only
    - File: DEBUG level with timestamps and module names

    Parameters:
    -----------
    log_dir : Optional[Path]
        Directory for log files. Defaults to PROJECT_ROOT/logs
    console_level : int
        Level for the console handler
    run_name : Optional[str]
        Output name of the run; becomes part of the log file name

    Returns:
    --------
    Path
        Path to the created log file, ``site_map_[<run_name>_]<timestamp>.log``
    """
    if log_dir is None:
        log_dir = Path(__file__).parent.parent / 'logs'
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    prefix = f'site_map_{run_name}' if run_name else 'site_map'
    log_file = log_dir / f'{prefix}_{timestamp}.log'

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Re-running the workflow in one interpreter must not duplicate output
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter('%(message)s'))

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    logger.addHandler(console)
    logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug(f"Logging initialized: {log_file}")

    return log_file


def get_logger(name: str) -> logging.Logger:
    """Get a child of the ``wqmap`` logger for a module (typically ``__name__``)."""
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')


def log_section(logger: logging.Logger, title: str, level: int = logging.INFO) -> None:
    """Write a banner marking the start of a pipeline stage."""
    logger.log(level, "=" * BANNER_WIDTH)
    logger.log(level, title)
    logger.log(level, "=" * BANNER_WIDTH)


def log_join_stats(logger: logging.Logger, layer_name: str, matched: int, total: int) -> None:
    """
    Write the match count of one polygon layer join at DEBUG level.

    Args:
        logger: Logger to write to
        layer_name: Polygon layer the points were joined against
        matched: Points that fell inside a polygon
        total: Points joined
    """
    share = 100.0 * matched / total if total else 0.0
    logger.debug(
        f"{layer_name}: {matched} of {total} point(s) matched ({share:.1f}%), "
        f"{total - matched} outside every polygon"
    )
