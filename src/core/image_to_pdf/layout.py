"""Page geometry for one image under a set of page options."""

from __future__ import annotations

import math

from .errors import LayoutError
from .models import CanonicalImage, Orientation, PageOptions, PageSize, PlacedImage


def page_dimensions(width: float, height: float, options: PageOptions) -> tuple[float, float]:
    """Return the (width, height) of the page in points for an image of *width* × *height* pixels."""
    if options.page_size is PageSize.FIT:
        return width + 2 * options.margin, height + 2 * options.margin

    base = options.page_size.dimensions
    assert base is not None
    short_side, long_side = min(base), max(base)
    orientation = options.orientation
    if orientation is Orientation.AUTO:
        orientation = Orientation.PORTRAIT if height >= width else Orientation.LANDSCAPE
    if orientation is Orientation.LANDSCAPE:
        return long_side, short_side
    return short_side, long_side


def place(
    width: float,
    height: float,
    options: PageOptions,
    *,
    file_name: str | None = None,
) -> PlacedImage:
    if not (math.isfinite(width) and math.isfinite(height)) or width <= 0 or height <= 0:
        raise LayoutError(file_name, f"image size {width}x{height} is not positive")

    page_width, page_height = page_dimensions(width, height, options)
    margin = options.margin
    available_width = max(page_width - 2 * margin, 0.0)
    available_height = max(page_height - 2 * margin, 0.0)

    if options.scale_to_fit:
        scale = min(available_width / width, available_height / height)
        if not options.allow_upscale:
            scale = min(scale, 1.0)
    else:
        scale = 1.0
    if scale <= 0:
        raise LayoutError(
            file_name,
            f"margin {margin:g}pt leaves no room on a {page_width:g}x{page_height:g}pt page",
        )

    placed_width = width * scale
    placed_height = height * scale
    if options.center_image:
        x = (page_width - placed_width) / 2
        y = (page_height - placed_height) / 2
    else:
        # Anchor to the top-left margin; PDF user space grows upwards.
        x = margin
        y = page_height - margin - placed_height

    return PlacedImage(
        page_width=page_width,
        page_height=page_height,
        x=x,
        y=y,
        width=placed_width,
        height=placed_height,
        scale=scale,
    )


def compute_placement(
    image: CanonicalImage,
    options: PageOptions,
    *,
    file_name: str | None = None,
) -> PlacedImage:
    return place(image.width, image.height, options, file_name=file_name or image.source_name)


__all__ = ["compute_placement", "page_dimensions", "place"]
