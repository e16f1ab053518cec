from __future__ import annotations

import pytest
from PIL import Image

from core.image_to_pdf.detection import ImageFormat
from core.image_to_pdf.errors import LayoutError
from core.image_to_pdf.layout import compute_placement, page_dimensions, place
from core.image_to_pdf.models import CanonicalImage, Orientation, PageOptions, PageSize


def test_landscape_image_on_portrait_a4_is_scaled_and_centered() -> None:
    options = PageOptions(page_size=PageSize.A4, orientation=Orientation.PORTRAIT, margin=36)
    placed = place(800, 600, options)

    assert (placed.page_width, placed.page_height) == (595.28, 841.89)
    assert placed.scale == pytest.approx(523.28 / 800)
    assert placed.width == pytest.approx(523.28)
    assert placed.height <= 769.89
    assert placed.x == pytest.approx((595.28 - placed.width) / 2)
    assert placed.y == pytest.approx((841.89 - placed.height) / 2)
    assert placed.contains(36)


def test_auto_orientation_follows_the_image() -> None:
    options = PageOptions(page_size=PageSize.A4)
    assert page_dimensions(800, 600, options) == (841.89, 595.28)
    assert page_dimensions(600, 800, options) == (595.28, 841.89)
    assert page_dimensions(500, 500, options) == (595.28, 841.89)


def test_fit_page_wraps_the_image_with_margins() -> None:
    options = PageOptions(page_size=PageSize.FIT, margin=36)
    placed = place(1200, 800, options)

    assert (placed.page_width, placed.page_height) == (1272, 872)
    assert placed.scale == 1.0
    assert (placed.x, placed.y) == (36, 36)
    assert (placed.width, placed.height) == (1200, 800)


def test_small_images_are_not_enlarged_by_default() -> None:
    placed = place(100, 50, PageOptions(page_size=PageSize.LETTER, orientation=Orientation.PORTRAIT))
    assert placed.scale == 1.0
    assert (placed.width, placed.height) == (100, 50)

    upscaled = place(
        100,
        50,
        PageOptions(page_size=PageSize.LETTER, orientation=Orientation.PORTRAIT, allow_upscale=True),
    )
    assert upscaled.scale == pytest.approx((612 - 72) / 100)
    assert upscaled.contains(36)


def test_top_left_anchor_when_not_centered() -> None:
    options = PageOptions(page_size=PageSize.A4, orientation=Orientation.PORTRAIT, center_image=False)
    placed = place(200, 100, options)

    assert placed.x == 36
    assert placed.y == pytest.approx(841.89 - 36 - 100)


def test_without_scale_to_fit_large_images_overflow() -> None:
    options = PageOptions(page_size=PageSize.A5, orientation=Orientation.PORTRAIT, scale_to_fit=False)
    placed = place(2000, 3000, options)

    assert placed.scale == 1.0
    assert (placed.width, placed.height) == (2000, 3000)
    assert not placed.contains(options.margin)


@pytest.mark.parametrize("page_size", [size for size in PageSize if size is not PageSize.FIT])
@pytest.mark.parametrize("margin", [0, 18, 72])
@pytest.mark.parametrize("size", [(1, 1), (800, 600), (600, 800), (5000, 40), (40, 5000)])
def test_scaled_placement_stays_inside_margins(
    page_size: PageSize, margin: float, size: tuple[int, int]
) -> None:
    placed = place(*size, PageOptions(page_size=page_size, margin=margin))
    assert placed.contains(margin)
    assert placed.scale <= 1.0


def test_margin_consuming_the_page_is_a_layout_error() -> None:
    options = PageOptions(page_size=PageSize.A5, margin=400)
    with pytest.raises(LayoutError) as excinfo:
        place(100, 100, options, file_name="tiny.png")
    assert excinfo.value.code == "LAYOUT_FAILED"
    assert excinfo.value.file_name == "tiny.png"


def test_non_positive_sizes_are_rejected() -> None:
    with pytest.raises(LayoutError):
        place(0, 10, PageOptions())


def test_compute_placement_uses_canonical_size() -> None:
    image = CanonicalImage(
        image=Image.new("RGB", (300, 200)),
        source_name="chart.png",
        format=ImageFormat.PNG,
    )
    options = PageOptions(page_size=PageSize.FIT, margin=0)

    first = compute_placement(image, options)
    assert first == compute_placement(image, options)
    assert (first.page_width, first.page_height) == (300, 200)
