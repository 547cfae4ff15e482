"""
Exception types for the Water-Quality Site Map Builder.

Classes:
    SiteMapError: Base class for all errors raised by this project
    SchemaError: Required field missing or invalid during normalization
    CRSMismatchError: Join inputs reference different coordinate systems
    NetworkError: A remote service could not be reached or returned an HTTP error
    ParseError: A remote service response could not be decoded
"""


class SiteMapError(Exception):
    """Base class for site map errors."""


class SchemaError(SiteMapError, ValueError):
    """A required field is absent (or unusable) in an input record set."""

    def __init__(self, message: str, provider: str = None, field: str = None):
        super().__init__(message)
        self.provider = provider
        self.field = field


class CRSMismatchError(SiteMapError, ValueError):
    """Point and polygon inputs carry different coordinate reference metadata."""

    def __init__(self, points_crs, polygons_crs):
        super().__init__(
            f"Coordinate reference mismatch: points are {points_crs}, polygons are {polygons_crs}"
        )
        self.points_crs = points_crs
        self.polygons_crs = polygons_crs


class NetworkError(SiteMapError, ConnectionError):
    """Transport or HTTP failure talking to a remote service."""


class ParseError(SiteMapError, ValueError):
    """Remote service returned a body that could not be parsed."""
