"""
Categorical color palette for point layers.

Point types (e.g. "Stream", "Lake, Reservoir, Impoundment", "POTW") are colored
from the ColorBrewer Spectral 11-class ramp, interpolated with a branca
LinearColormap to exactly as many colors as there are distinct categories.
Categories are sorted before colors are assigned, so the same category set
always yields the same assignment regardless of record order.

Functions:
    ramp_colors: Sample n evenly spaced colors from the Spectral ramp
    category_colors: Map each distinct category to its color
"""

from collections import OrderedDict
from typing import Hashable, Iterable, List

from branca.colormap import LinearColormap

SPECTRAL_11 = [
    '#9e0142', '#d53e4f', '#f46d43', '#fdae61', '#fee08b', '#ffffbf',
    '#e6f598', '#abdda4', '#66c2a5', '#3288bd', '#5e4fa2'
]

# Color for records without a category
NA_COLOR = '#808080'


def ramp_colors(n: int, colors: List[str] = None) -> List[str]:
    """
    Sample ``n`` evenly spaced colors along a linear color ramp.

    The first and last samples are the ramp end points; a single sample is the
    first ramp color.

    Args:
        n: Number of colors wanted
        colors: Ramp anchor colors (defaults to Spectral 11)

    Returns:
        List of '#rrggbb' strings
    """
    if n <= 0:
        return []

    ramp = LinearColormap(colors or SPECTRAL_11, vmin=0.0, vmax=1.0)

    if n == 1:
        return [ramp.rgb_hex_str(0.0)]

    return [ramp.rgb_hex_str(i / (n - 1)) for i in range(n)]


def category_colors(categories: Iterable[Hashable]) -> "OrderedDict[Hashable, str]":
    """
    Assign a palette color to each distinct category.

    Args:
        categories: Category values, repeats and any order allowed; None is
            treated as "no category" and receives NA_COLOR

    Returns:
        OrderedDict of category -> color, in sorted category order with the
        missing category (if any) last
    """
    distinct = set(categories)
    has_missing = None in distinct
    distinct.discard(None)

    ordered = sorted(distinct, key=str)
    mapping = OrderedDict(zip(ordered, ramp_colors(len(ordered))))

    if has_missing:
        mapping[None] = NA_COLOR

    return mapping
