"""
Popup formatting utilities for the Water-Quality Site Map Builder.

This module holds the fixed popup templates for each layer kind and the value
formatter they share. The templates produce the exact user-visible text of the
map popups, so field order and labels must not change.

Functions:
    format_popup_value: Format a single value for display in popup HTML
    site_popup: Popup for monitoring site and facility points
    au_popup: Popup for assessment unit polygons (and AU ID search hits)
    au_name_search_popup: Popup for AU name search hits
    bu_popup: Popup for beneficial use polygons
    ss_popup: Popup for site-specific standard polygons
"""

import html
import math
from typing import Any, Mapping

MISSING_VALUE = 'NA'


def format_popup_value(value: Any) -> str:
    """
    Format popup values for display.

    Missing values (None/NaN) are shown as ``NA``. Floats are printed with up
    to 15 significant digits and without a trailing ``.0`` so coordinates read
    the same as the source data. Text is HTML-escaped.

    Parameters:
    -----------
    value : Any
        Value to format

    Returns:
    --------
    str
        Formatted HTML-safe string

    Examples:
        >>> format_popup_value('Mantua Reservoir')
        'Mantua Reservoir'

        >>> format_popup_value(41.0)
        '41'

        >>> format_popup_value(-111.93386)
        '-111.93386'

        >>> format_popup_value(None)
        'NA'
    """
    if value is None:
        return MISSING_VALUE

    if isinstance(value, float):
        if math.isnan(value):
            return MISSING_VALUE
        return f"{value:.15g}"

    return html.escape(str(value), quote=False)


def _field(record: Mapping, name: str) -> str:
    return format_popup_value(record.get(name))


def site_popup(record: Mapping) -> str:
    """Location ID, name, type and coordinates of a site or facility."""
    return (
        "Location ID: " + _field(record, 'locationID') +
        "<br> Name: " + _field(record, 'locationName') +
        "<br> Type: " + _field(record, 'locationType') +
        "<br> Lat: " + _field(record, 'latitude') +
        "<br> Long: " + _field(record, 'longitude')
    )


def au_popup(record: Mapping) -> str:
    return (
        "AU name: " + _field(record, 'AU_NAME') +
        "<br> AU ID: " + _field(record, 'ASSESS_ID') +
        "<br> AU type: " + _field(record, 'AU_Type')
    )


def au_name_search_popup(record: Mapping) -> str:
    return (
        "AU ID: " + _field(record, 'ASSESS_ID') +
        "<br> AU Name: " + _field(record, 'AU_NAME') +
        "<br> AU Type: " + _field(record, 'AU_Type')
    )


def bu_popup(record: Mapping) -> str:
    return (
        "Description: " + _field(record, 'R317Descrp') +
        "<br> Uses: " + _field(record, 'bu_class')
    )


def ss_popup(record: Mapping) -> str:
    return "SS std: " + _field(record, 'SiteSpecif')


# Popup template per reference polygon kind
POLYGON_POPUPS = {
    'assessment_units': au_popup,
    'beneficial_uses': bu_popup,
    'site_specific_standards': ss_popup
}
