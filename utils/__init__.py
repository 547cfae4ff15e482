"""
Utility modules for the Water-Quality Site Map Builder.

This package contains utility functions and helpers used throughout the application.

Modules:
    logger: Logging configuration and setup
    popup_formatters: Popup templates and value formatting
    color_palette: Categorical colors for point layers
"""

__version__ = '1.0.0'
