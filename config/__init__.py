"""
Configuration package for the Water-Quality Site Map Builder.

This package contains configuration loading and validation.

Modules:
    config_loader: Load and validate map configuration from JSON
"""

__version__ = '1.0.0'
