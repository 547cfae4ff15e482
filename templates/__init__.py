"""
HTML templates for the Water-Quality Site Map Builder.

This package contains Jinja2 templates for map UI elements that folium does
not provide.

Templates:
    legend.html: Categorical legend for site and facility types
"""

__version__ = '1.0.0'
