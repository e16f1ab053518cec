"""SVG parsing and rasterization on top of ElementTree and Pillow.

Shapes are flattened into polygons in the document's user space when the
file is parsed; rasterizing applies the viewport mapping and the render
scale and paints each shape onto a transparent RGBA canvas.
"""

from __future__ import annotations

import math
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterable, Optional

from PIL import Image, ImageChops, ImageColor, ImageDraw

from ..detection import ImageFormat
from ..errors import DecodeError
from ..models import CanonicalImage, SourceImage

Color = tuple[int, int, int, int]
Point = tuple[float, float]
Matrix = tuple[float, float, float, float, float, float]
Subpath = tuple[tuple[Point, ...], bool]
Box = tuple[int, int, int, int]

IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)
DEFAULT_WIDTH = 300.0
DEFAULT_HEIGHT = 150.0
MAX_RASTER_PIXELS = 100_000_000
CURVE_SEGMENTS = 16
MAX_NESTING_DEPTH = 256
# Drawing coordinates are clamped to this range before they reach Pillow.
COORDINATE_LIMIT = 1e7

_UNITS = {
    "": 1.0,
    "px": 1.0,
    "pt": 4.0 / 3.0,
    "pc": 16.0,
    "in": 96.0,
    "cm": 96.0 / 2.54,
    "mm": 96.0 / 25.4,
    "em": 16.0,
    "ex": 8.0,
}
_LENGTH_RE = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*([a-z%]*)\s*$")
_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_PATH_TOKEN_RE = re.compile(r"[MmLlHhVvCcSsQqTtAaZz]|[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_TRANSFORM_RE = re.compile(r"(matrix|translate|scale|rotate|skewX|skewY)\s*\(([^)]*)\)")
_RGBA_RE = re.compile(r"^rgba\(\s*([^,]+),\s*([^,]+),\s*([^,]+),\s*([^)]+)\)$")
_PATH_ARITY = {"M": 2, "L": 2, "H": 1, "V": 1, "C": 6, "S": 4, "Q": 4, "T": 2, "A": 7}
_SKIPPED_TAGS = {
    "defs",
    "clipPath",
    "mask",
    "symbol",
    "style",
    "title",
    "desc",
    "metadata",
    "pattern",
    "linearGradient",
    "radialGradient",
    "marker",
    "filter",
    "text",
    "image",
    "foreignObject",
}
_CONTAINER_TAGS = {"g", "a", "switch"}
_INHERITED = (
    "fill",
    "stroke",
    "stroke-width",
    "fill-opacity",
    "stroke-opacity",
    "color",
    "visibility",
)


@dataclass(frozen=True)
class SvgShape:
    subpaths: tuple[Subpath, ...]
    fill: Optional[Color]
    stroke: Optional[Color]
    stroke_width: float


@dataclass
class SvgDocument:
    width: float
    height: float
    viewbox: Optional[tuple[float, float, float, float]]
    preserve_aspect_ratio: str = "xMidYMid meet"
    shapes: list[SvgShape] = field(default_factory=list)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SvgDocument":
        return cls._from_root(ET.fromstring(data))

    @classmethod
    def _from_root(cls, root: ET.Element) -> "SvgDocument":
        if _strip_namespace(root.tag) != "svg":
            raise ValueError("root element is not <svg>")
        viewbox = _parse_viewbox(root.attrib.get("viewBox"))
        width, height = _intrinsic_size(
            _parse_length(root.attrib.get("width")),
            _parse_length(root.attrib.get("height")),
            viewbox,
        )
        document = cls(
            width=width,
            height=height,
            viewbox=viewbox,
            preserve_aspect_ratio=root.attrib.get("preserveAspectRatio", "xMidYMid meet"),
        )
        ids = {elem.attrib["id"]: elem for elem in root.iter() if "id" in elem.attrib}
        style = _resolve_style(_default_style(), root)
        walker = _Walker(document.shapes, ids)
        for child in root:
            walker.walk(child, IDENTITY, style)
        return document

    def viewport_matrix(self) -> Matrix:
        return _viewbox_matrix(self.viewbox, self.width, self.height, self.preserve_aspect_ratio)

    def raster_size(self, scale: float) -> tuple[int, int]:
        width, height = self.width * scale, self.height * scale
        if not (math.isfinite(width) and math.isfinite(height)):
            raise ValueError("SVG viewport size is not a finite number")
        return max(1, round(width)), max(1, round(height))

    def rasterize(self, scale: float = 2.0) -> Image.Image:
        if not math.isfinite(scale) or scale <= 0:
            raise ValueError(f"render scale must be positive, got {scale}")
        width, height = self.raster_size(scale)
        if width * height > MAX_RASTER_PIXELS:
            raise ValueError(f"rasterized size {width}x{height} exceeds the pixel limit")
        canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        base = _multiply((scale, 0.0, 0.0, scale, 0.0, 0.0), self.viewport_matrix())
        unit = math.sqrt(abs(base[0] * base[3] - base[1] * base[2]))
        for shape in self.shapes:
            subpaths = [
                (tuple(_apply(base, point) for point in points), closed)
                for points, closed in shape.subpaths
            ]
            stroke_px = 0
            if shape.stroke is not None:
                stroke_px = _stroke_pixels(shape.stroke_width * unit)
            # Each shape is painted only over its clipped bounding box.
            box = _bounding_box(subpaths, stroke_px, canvas.size)
            if box is None:
                continue
            if shape.fill is not None:
                _paint(canvas, box, _fill_mask(box, subpaths), shape.fill)
            if stroke_px and shape.stroke is not None:
                _paint(canvas, box, _stroke_mask(box, subpaths, stroke_px), shape.stroke)
        return canvas


class SVGDecoder:
    image_format = ImageFormat.SVG

    def decode(self, source: SourceImage, *, svg_scale: float = 2.0) -> list[CanonicalImage]:
        document = SvgDocument.from_bytes(source.data)
        if document.width <= 0 or document.height <= 0:
            raise DecodeError(
                source.name,
                "SVG viewport has zero width or height",
                format=self.image_format.value,
                code="EMPTY_IMAGE",
            )
        return [
            CanonicalImage(
                image=document.rasterize(svg_scale),
                source_name=source.name,
                format=self.image_format,
            )
        ]


class _Walker:
    def __init__(self, shapes: list[SvgShape], ids: dict[str, ET.Element]) -> None:
        self._shapes = shapes
        self._ids = ids
        self._active_uses: set[str] = set()

    def walk(
        self, elem: ET.Element, matrix: Matrix, inherited: dict[str, str], depth: int = 0
    ) -> None:
        if depth > MAX_NESTING_DEPTH:
            raise ValueError(f"SVG elements are nested deeper than {MAX_NESTING_DEPTH} levels")
        tag = _strip_namespace(elem.tag)
        if tag in _SKIPPED_TAGS:
            return
        style = _resolve_style(inherited, elem)
        if style.get("display") == "none":
            return
        matrix = _multiply(matrix, _parse_transform(elem.attrib.get("transform")))

        if tag in _CONTAINER_TAGS:
            for child in elem:
                self.walk(child, matrix, style, depth + 1)
            return
        if tag == "svg":
            self._walk_nested_svg(elem, matrix, style, depth + 1)
            return
        if tag == "use":
            self._walk_use(elem, matrix, style, depth + 1)
            return

        subpaths = _element_subpaths(tag, elem)
        if not subpaths or style.get("visibility") == "hidden":
            return
        opacity = _parse_opacity(style.get("opacity"))
        fill = None if tag == "line" else _paint_color(style, "fill", opacity)
        stroke = _paint_color(style, "stroke", opacity)
        if fill is None and stroke is None:
            return
        transformed = tuple(
            (tuple(_apply(matrix, point) for point in points), closed) for points, closed in subpaths
        )
        scale = math.sqrt(abs(matrix[0] * matrix[3] - matrix[1] * matrix[2]))
        stroke_width = (_parse_length(style.get("stroke-width")) or 0.0) * scale
        self._shapes.append(
            SvgShape(subpaths=transformed, fill=fill, stroke=stroke, stroke_width=stroke_width)
        )

    def _walk_nested_svg(
        self, elem: ET.Element, matrix: Matrix, style: dict[str, str], depth: int
    ) -> None:
        x = _parse_length(elem.attrib.get("x")) or 0.0
        y = _parse_length(elem.attrib.get("y")) or 0.0
        viewbox = _parse_viewbox(elem.attrib.get("viewBox"))
        width, height = _intrinsic_size(
            _parse_length(elem.attrib.get("width")),
            _parse_length(elem.attrib.get("height")),
            viewbox,
        )
        inner = _viewbox_matrix(
            viewbox, width, height, elem.attrib.get("preserveAspectRatio", "xMidYMid meet")
        )
        matrix = _multiply(matrix, _multiply((1.0, 0.0, 0.0, 1.0, x, y), inner))
        for child in elem:
            self.walk(child, matrix, style, depth)

    def _walk_use(self, elem: ET.Element, matrix: Matrix, style: dict[str, str], depth: int) -> None:
        href = elem.attrib.get("href") or elem.attrib.get("{http://www.w3.org/1999/xlink}href")
        if not href or not href.startswith("#"):
            return
        target_id = href[1:]
        target = self._ids.get(target_id)
        if target is None or target_id in self._active_uses:
            return
        x = _parse_length(elem.attrib.get("x")) or 0.0
        y = _parse_length(elem.attrib.get("y")) or 0.0
        matrix = _multiply(matrix, (1.0, 0.0, 0.0, 1.0, x, y))
        self._active_uses.add(target_id)
        try:
            if _strip_namespace(target.tag) == "symbol":
                for child in target:
                    self.walk(child, matrix, style, depth)
            else:
                self.walk(target, matrix, style, depth)
        finally:
            self._active_uses.discard(target_id)


def _strip_namespace(tag: str) -> str:
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _parse_length(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    match = _LENGTH_RE.match(value)
    if not match:
        return None
    unit = match.group(2)
    if unit not in _UNITS:
        return None
    length = float(match.group(1)) * _UNITS[unit]
    return length if math.isfinite(length) else None


def _parse_numbers(value: Optional[str]) -> list[float]:
    if not value:
        return []
    numbers = [float(token) for token in _NUMBER_RE.findall(value)]
    if not all(math.isfinite(number) for number in numbers):
        return []
    return numbers


def _parse_viewbox(value: Optional[str]) -> Optional[tuple[float, float, float, float]]:
    numbers = _parse_numbers(value)
    if len(numbers) != 4 or numbers[2] <= 0 or numbers[3] <= 0:
        return None
    return (numbers[0], numbers[1], numbers[2], numbers[3])


def _intrinsic_size(
    width: Optional[float],
    height: Optional[float],
    viewbox: Optional[tuple[float, float, float, float]],
) -> tuple[float, float]:
    if width is None and height is None:
        if viewbox is not None:
            return viewbox[2], viewbox[3]
        return DEFAULT_WIDTH, DEFAULT_HEIGHT
    if width is None:
        assert height is not None
        return (height * viewbox[2] / viewbox[3] if viewbox else DEFAULT_WIDTH), height
    if height is None:
        return width, (width * viewbox[3] / viewbox[2] if viewbox else DEFAULT_HEIGHT)
    return width, height


def _viewbox_matrix(
    viewbox: Optional[tuple[float, float, float, float]],
    width: float,
    height: float,
    preserve: str,
) -> Matrix:
    if viewbox is None:
        return IDENTITY
    vb_x, vb_y, vb_w, vb_h = viewbox
    scale_x = width / vb_w
    scale_y = height / vb_h
    parts = preserve.split()
    align = parts[0] if parts else "xMidYMid"
    if align == "none":
        return (scale_x, 0.0, 0.0, scale_y, -vb_x * scale_x, -vb_y * scale_y)
    slice_mode = len(parts) > 1 and parts[1] == "slice"
    scale = max(scale_x, scale_y) if slice_mode else min(scale_x, scale_y)
    offset_x = width - vb_w * scale
    offset_y = height - vb_h * scale
    factor_x = 0.0 if "xMin" in align else 1.0 if "xMax" in align else 0.5
    factor_y = 0.0 if "YMin" in align else 1.0 if "YMax" in align else 0.5
    return (
        scale,
        0.0,
        0.0,
        scale,
        offset_x * factor_x - vb_x * scale,
        offset_y * factor_y - vb_y * scale,
    )


def _multiply(m: Matrix, n: Matrix) -> Matrix:
    a1, b1, c1, d1, e1, f1 = m
    a2, b2, c2, d2, e2, f2 = n
    return (
        a1 * a2 + c1 * b2,
        b1 * a2 + d1 * b2,
        a1 * c2 + c1 * d2,
        b1 * c2 + d1 * d2,
        a1 * e2 + c1 * f2 + e1,
        b1 * e2 + d1 * f2 + f1,
    )


def _apply(m: Matrix, point: Point) -> Point:
    x, y = point
    return (m[0] * x + m[2] * y + m[4], m[1] * x + m[3] * y + m[5])


def _parse_transform(value: Optional[str]) -> Matrix:
    matrix = IDENTITY
    if not value:
        return matrix
    for name, raw_args in _TRANSFORM_RE.findall(value):
        args = _parse_numbers(raw_args)
        step = _transform_step(name, args)
        if step is not None:
            matrix = _multiply(matrix, step)
    return matrix


def _transform_step(name: str, args: list[float]) -> Optional[Matrix]:
    if name == "matrix" and len(args) == 6:
        return (args[0], args[1], args[2], args[3], args[4], args[5])
    if name == "translate" and args:
        return (1.0, 0.0, 0.0, 1.0, args[0], args[1] if len(args) > 1 else 0.0)
    if name == "scale" and args:
        return (args[0], 0.0, 0.0, args[1] if len(args) > 1 else args[0], 0.0, 0.0)
    if name == "rotate" and args:
        angle = math.radians(args[0])
        cos, sin = math.cos(angle), math.sin(angle)
        rotation = (cos, sin, -sin, cos, 0.0, 0.0)
        if len(args) == 3:
            cx, cy = args[1], args[2]
            rotation = _multiply(
                _multiply((1.0, 0.0, 0.0, 1.0, cx, cy), rotation), (1.0, 0.0, 0.0, 1.0, -cx, -cy)
            )
        return rotation
    if name == "skewX" and args:
        return (1.0, 0.0, math.tan(math.radians(args[0])), 1.0, 0.0, 0.0)
    if name == "skewY" and args:
        return (1.0, math.tan(math.radians(args[0])), 0.0, 1.0, 0.0, 0.0)
    return None


def _default_style() -> dict[str, str]:
    return {"fill": "black", "stroke": "none", "stroke-width": "1", "color": "black"}


def _resolve_style(inherited: dict[str, str], elem: ET.Element) -> dict[str, str]:
    style = {key: value for key, value in inherited.items() if key in _INHERITED}
    # Opacity is not inherited in SVG, but a group's opacity still dims its children.
    parent_opacity = _parse_opacity(inherited.get("opacity"))
    declared: dict[str, str] = {}
    for key, value in elem.attrib.items():
        declared[key] = value
    for declaration in elem.attrib.get("style", "").split(";"):
        if ":" in declaration:
            key, value = declaration.split(":", 1)
            declared[key.strip()] = value.strip()
    for key, value in declared.items():
        if value == "inherit":
            continue
        if key in _INHERITED or key == "display":
            style[key] = value
    own_opacity = _parse_opacity(declared.get("opacity"))
    combined = parent_opacity * own_opacity
    if combined < 1.0:
        style["opacity"] = str(combined)
    return style


def _parse_opacity(value: Optional[str]) -> float:
    if value is None:
        return 1.0
    value = value.strip()
    try:
        number = float(value[:-1]) / 100.0 if value.endswith("%") else float(value)
    except ValueError:
        return 1.0
    if math.isnan(number):
        return 1.0
    return max(0.0, min(1.0, number))


def _paint_color(style: dict[str, str], prop: str, opacity: float) -> Optional[Color]:
    value = style.get(prop, "none").strip()
    if value == "currentColor":
        value = style.get("color", "black")
    color = _parse_color(value)
    if color is None:
        return None
    alpha = color[3] * opacity * _parse_opacity(style.get(f"{prop}-opacity"))
    if alpha <= 0:
        return None
    return (color[0], color[1], color[2], max(0, min(255, round(alpha))))


def _parse_color(value: str) -> Optional[Color]:
    if not value or value in ("none", "transparent") or value.startswith("url("):
        return None
    match = _RGBA_RE.match(value)
    if match:
        try:
            numbers = [float(match.group(index)) for index in (1, 2, 3, 4)]
        except ValueError:
            return None
        if not all(math.isfinite(number) for number in numbers):
            return None
        red, green, blue = (max(0, min(255, int(number))) for number in numbers[:3])
        return (red, green, blue, max(0, min(255, round(numbers[3] * 255))))
    try:
        rgb = ImageColor.getrgb(value)
    except ValueError:
        return None
    if len(rgb) == 4:
        return (rgb[0], rgb[1], rgb[2], rgb[3])
    return (rgb[0], rgb[1], rgb[2], 255)


def _element_subpaths(tag: str, elem: ET.Element) -> list[Subpath]:
    attrib = elem.attrib
    if tag == "rect":
        return _rect_subpaths(attrib)
    if tag == "circle":
        r = _parse_length(attrib.get("r")) or 0.0
        return _ellipse_subpaths(attrib, r, r)
    if tag == "ellipse":
        return _ellipse_subpaths(
            attrib, _parse_length(attrib.get("rx")) or 0.0, _parse_length(attrib.get("ry")) or 0.0
        )
    if tag == "line":
        start = (_parse_length(attrib.get("x1")) or 0.0, _parse_length(attrib.get("y1")) or 0.0)
        end = (_parse_length(attrib.get("x2")) or 0.0, _parse_length(attrib.get("y2")) or 0.0)
        return [((start, end), False)]
    if tag in ("polyline", "polygon"):
        numbers = _parse_numbers(attrib.get("points"))
        points = tuple(zip(numbers[0::2], numbers[1::2]))
        if len(points) < 2:
            return []
        return [(points, tag == "polygon")]
    if tag == "path":
        return parse_path(attrib.get("d", ""))
    return []


def _rect_subpaths(attrib: dict[str, str]) -> list[Subpath]:
    x = _parse_length(attrib.get("x")) or 0.0
    y = _parse_length(attrib.get("y")) or 0.0
    width = _parse_length(attrib.get("width")) or 0.0
    height = _parse_length(attrib.get("height")) or 0.0
    if width <= 0 or height <= 0:
        return []
    rx = _parse_length(attrib.get("rx"))
    ry = _parse_length(attrib.get("ry"))
    if rx is None:
        rx = ry
    if ry is None:
        ry = rx
    rx = min(max(rx or 0.0, 0.0), width / 2)
    ry = min(max(ry or 0.0, 0.0), height / 2)
    if rx == 0 or ry == 0:
        return [(((x, y), (x + width, y), (x + width, y + height), (x, y + height)), True)]
    points: list[Point] = []
    corners = (
        (x + width - rx, y + ry, -90.0),
        (x + width - rx, y + height - ry, 0.0),
        (x + rx, y + height - ry, 90.0),
        (x + rx, y + ry, 180.0),
    )
    steps = CURVE_SEGMENTS // 2
    for cx, cy, start in corners:
        for step in range(steps + 1):
            angle = math.radians(start + 90.0 * step / steps)
            points.append((cx + rx * math.cos(angle), cy + ry * math.sin(angle)))
    return [(tuple(points), True)]


def _ellipse_subpaths(attrib: dict[str, str], rx: float, ry: float) -> list[Subpath]:
    if rx <= 0 or ry <= 0:
        return []
    cx = _parse_length(attrib.get("cx")) or 0.0
    cy = _parse_length(attrib.get("cy")) or 0.0
    segments = CURVE_SEGMENTS * 4
    points = tuple(
        (
            cx + rx * math.cos(2 * math.pi * step / segments),
            cy + ry * math.sin(2 * math.pi * step / segments),
        )
        for step in range(segments)
    )
    return [(points, True)]


def parse_path(d: str) -> list[Subpath]:
    """Flatten SVG path data into polylines; malformed data stops at the first bad segment."""
    tokens = _PATH_TOKEN_RE.findall(d or "")
    subpaths: list[Subpath] = []
    current: list[Point] = []
    x = y = 0.0
    start: Point = (0.0, 0.0)
    last_control: Optional[Point] = None
    last_kind = ""
    command: Optional[str] = None
    index = 0

    def flush(closed: bool) -> None:
        nonlocal current
        if len(current) > 1:
            subpaths.append((tuple(current), closed))
        current = []

    while index < len(tokens):
        token = tokens[index]
        if token.isalpha():
            command = token
            index += 1
            if command in "Zz":
                flush(True)
                x, y = start
                last_control, last_kind = None, ""
                continue
        elif command is None or command in "Zz":
            break
        upper = command.upper()
        arity = _PATH_ARITY[upper]
        raw = tokens[index : index + arity]
        if len(raw) < arity or any(item.isalpha() for item in raw):
            break
        values = [float(item) for item in raw]
        if not all(math.isfinite(value) for value in values):
            break
        index += arity
        relative = command.islower()
        ox, oy = (x, y) if relative else (0.0, 0.0)

        if upper == "M":
            flush(False)
            x, y = ox + values[0], oy + values[1]
            start = (x, y)
            current = [start]
            command = "l" if relative else "L"
            last_control, last_kind = None, ""
            continue
        if not current:
            current = [(x, y)]

        if upper == "L":
            x, y = ox + values[0], oy + values[1]
            current.append((x, y))
            last_control, last_kind = None, ""
        elif upper == "H":
            x = (x if relative else 0.0) + values[0]
            current.append((x, y))
            last_control, last_kind = None, ""
        elif upper == "V":
            y = (y if relative else 0.0) + values[0]
            current.append((x, y))
            last_control, last_kind = None, ""
        elif upper in ("C", "S"):
            if upper == "C":
                c1 = (ox + values[0], oy + values[1])
                rest = values[2:]
            else:
                c1 = _reflect(last_control, (x, y)) if last_kind == "C" else (x, y)
                rest = values
            c2 = (ox + rest[0], oy + rest[1])
            end = (ox + rest[2], oy + rest[3])
            current.extend(_cubic((x, y), c1, c2, end))
            x, y = end
            last_control, last_kind = c2, "C"
        elif upper in ("Q", "T"):
            if upper == "Q":
                control = (ox + values[0], oy + values[1])
                end = (ox + values[2], oy + values[3])
            else:
                control = _reflect(last_control, (x, y)) if last_kind == "Q" else (x, y)
                end = (ox + values[0], oy + values[1])
            current.extend(_quadratic((x, y), control, end))
            x, y = end
            last_control, last_kind = control, "Q"
        elif upper == "A":
            end = (ox + values[5], oy + values[6])
            current.extend(
                _arc((x, y), values[0], values[1], values[2], bool(values[3]), bool(values[4]), end)
            )
            x, y = end
            last_control, last_kind = None, ""
    flush(False)
    return subpaths


def _reflect(control: Optional[Point], origin: Point) -> Point:
    if control is None:
        return origin
    return (2 * origin[0] - control[0], 2 * origin[1] - control[1])


def _cubic(p0: Point, p1: Point, p2: Point, p3: Point) -> list[Point]:
    points: list[Point] = []
    for step in range(1, CURVE_SEGMENTS + 1):
        t = step / CURVE_SEGMENTS
        u = 1 - t
        points.append(
            (
                u**3 * p0[0] + 3 * u * u * t * p1[0] + 3 * u * t * t * p2[0] + t**3 * p3[0],
                u**3 * p0[1] + 3 * u * u * t * p1[1] + 3 * u * t * t * p2[1] + t**3 * p3[1],
            )
        )
    return points


def _quadratic(p0: Point, p1: Point, p2: Point) -> list[Point]:
    points: list[Point] = []
    for step in range(1, CURVE_SEGMENTS + 1):
        t = step / CURVE_SEGMENTS
        u = 1 - t
        points.append(
            (
                u * u * p0[0] + 2 * u * t * p1[0] + t * t * p2[0],
                u * u * p0[1] + 2 * u * t * p1[1] + t * t * p2[1],
            )
        )
    return points


def _arc(
    start: Point,
    rx: float,
    ry: float,
    rotation: float,
    large_arc: bool,
    sweep: bool,
    end: Point,
) -> list[Point]:
    x1, y1 = start
    x2, y2 = end
    if start == end:
        return []
    rx, ry = abs(rx), abs(ry)
    if rx == 0 or ry == 0:
        return [end]
    phi = math.radians(rotation)
    cos, sin = math.cos(phi), math.sin(phi)
    dx, dy = (x1 - x2) / 2, (y1 - y2) / 2
    x1p = cos * dx + sin * dy
    y1p = -sin * dx + cos * dy
    radii_check = (x1p * x1p) / (rx * rx) + (y1p * y1p) / (ry * ry)
    if radii_check > 1:
        rx *= math.sqrt(radii_check)
        ry *= math.sqrt(radii_check)
    numerator = rx * rx * ry * ry - rx * rx * y1p * y1p - ry * ry * x1p * x1p
    denominator = rx * rx * y1p * y1p + ry * ry * x1p * x1p
    coefficient = math.sqrt(max(0.0, numerator / denominator)) if denominator else 0.0
    if large_arc == sweep:
        coefficient = -coefficient
    cxp = coefficient * rx * y1p / ry
    cyp = -coefficient * ry * x1p / rx
    cx = cos * cxp - sin * cyp + (x1 + x2) / 2
    cy = sin * cxp + cos * cyp + (y1 + y2) / 2
    theta = _angle((1.0, 0.0), ((x1p - cxp) / rx, (y1p - cyp) / ry))
    delta = _angle(((x1p - cxp) / rx, (y1p - cyp) / ry), ((-x1p - cxp) / rx, (-y1p - cyp) / ry))
    if not sweep and delta > 0:
        delta -= 2 * math.pi
    elif sweep and delta < 0:
        delta += 2 * math.pi
    segments = max(4, math.ceil(abs(delta) / (math.pi / CURVE_SEGMENTS)))
    points: list[Point] = []
    for step in range(1, segments + 1):
        angle = theta + delta * step / segments
        px, py = rx * math.cos(angle), ry * math.sin(angle)
        points.append((cos * px - sin * py + cx, sin * px + cos * py + cy))
    points[-1] = end
    return points


def _angle(u: Point, v: Point) -> float:
    return math.atan2(u[0] * v[1] - u[1] * v[0], u[0] * v[0] + u[1] * v[1])


def _stroke_pixels(width: float) -> int:
    if not math.isfinite(width) or width <= 0:
        return 0
    return max(1, round(min(width, COORDINATE_LIMIT)))


def _bounding_box(subpaths: Iterable[Subpath], pad: int, size: tuple[int, int]) -> Optional[Box]:
    """Pixel box covering the shape plus its stroke, clipped to the canvas; None when off-canvas."""
    xs: list[float] = []
    ys: list[float] = []
    for points, _ in subpaths:
        for x, y in points:
            if not (math.isfinite(x) and math.isfinite(y)):
                return None
            xs.append(x)
            ys.append(y)
    if not xs:
        return None
    left = max(0, math.floor(max(min(xs), -COORDINATE_LIMIT)) - pad - 1)
    top = max(0, math.floor(max(min(ys), -COORDINATE_LIMIT)) - pad - 1)
    right = min(size[0], math.ceil(min(max(xs), COORDINATE_LIMIT)) + pad + 1)
    bottom = min(size[1], math.ceil(min(max(ys), COORDINATE_LIMIT)) + pad + 1)
    if right <= left or bottom <= top:
        return None
    return left, top, right, bottom


def _local(points: Iterable[Point], box: Box) -> list[Point]:
    left, top = box[0], box[1]
    return [
        (
            max(-COORDINATE_LIMIT, min(COORDINATE_LIMIT, x)) - left,
            max(-COORDINATE_LIMIT, min(COORDINATE_LIMIT, y)) - top,
        )
        for x, y in points
    ]


def _box_size(box: Box) -> tuple[int, int]:
    return box[2] - box[0], box[3] - box[1]


def _fill_mask(box: Box, subpaths: Iterable[Subpath]) -> Image.Image:
    # Overlapping subpaths cancel out, which matches even-odd filling for holes.
    size = _box_size(box)
    mask: Image.Image | None = None
    for points, _ in subpaths:
        if len(points) < 3:
            continue
        layer = Image.new("L", size, 0)
        ImageDraw.Draw(layer).polygon(_local(points, box), fill=255)
        mask = layer if mask is None else ImageChops.difference(mask, layer)
    return mask if mask is not None else Image.new("L", size, 0)


def _stroke_mask(box: Box, subpaths: Iterable[Subpath], width: int) -> Image.Image:
    mask = Image.new("L", _box_size(box), 0)
    draw = ImageDraw.Draw(mask)
    for points, closed in subpaths:
        outline = _local(list(points) + ([points[0]] if closed else []), box)
        if len(outline) < 2:
            continue
        draw.line(outline, fill=255, width=width, joint="curve")
    return mask


def _paint(canvas: Image.Image, box: Box, mask: Image.Image, color: Color) -> None:
    red, green, blue, alpha = color
    layer = Image.new("RGBA", mask.size, (red, green, blue, 0))
    layer.putalpha(mask.point(lambda value: value * alpha // 255))
    canvas.alpha_composite(layer, dest=(box[0], box[1]))


__all__ = ["SVGDecoder", "SvgDocument", "SvgShape", "parse_path"]
