import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from .config import CANVAS_HEIGHT, CANVAS_WIDTH, GRID_COLUMNS, GRID_ROWS, SVG_TITLE
from .stats import Stats
from .svg import SVGCanvas, fmt

log = logging.getLogger("RdbAnalyzer.Render")

PALETTE = (
    "FF0000", "00FF00", "0000FF", "FFFF00", "FF00FF", "00FFFF", "000000",
    "800000", "008000", "000080", "808000", "800080", "008080", "808080",
    "C00000", "00C000", "0000C0", "C0C000", "C000C0", "00C0C0", "C0C0C0",
    "400000", "004000", "000040", "404000", "400040", "004040", "404040",
    "200000", "002000", "000020", "202000", "200020", "002020", "202020",
    "600000", "006000", "000060", "606000", "600060", "006060", "606060",
    "A00000", "00A000", "0000A0", "A0A000", "A000A0", "00A0A0", "A0A0A0",
    "E00000", "00E000", "0000E0", "E0E000", "E000E0", "00E0E0", "E0E0E0",
)
NEUTRAL_COLOR = "808080"

FRAME_STYLE = "fill:none;stroke:black;stroke-width:3"
PANEL_STYLE = "fill:black"
PLACEHOLDER_STYLE = "fill:blue"
TOOLTIP_STYLE = "fill:white;font-size:14pt;stroke:black;stroke-width:1px;text-anchor:middle"
LEGEND_STYLE = "font-size:10pt;fill:black;dominant-baseline:middle"


class RenderError(Exception):
    """The statistics could not be turned into an image."""


@dataclass(frozen=True)
class PieSlice:
    name: str
    value: float  # percent
    color: str


@dataclass(frozen=True)
class CanvasLayout:
    """Canvas size, grid shape and the fixed margins everything is placed with."""
    width: int = CANVAS_WIDTH
    height: int = CANVAS_HEIGHT
    columns: int = GRID_COLUMNS
    rows: int = GRID_ROWS

    top: int = 30
    left: int = 30
    inside_text_padding: int = 10
    inside_pie_padding: int = 10
    banner_height: int = 100
    banner_row_height: int = 50
    row_margin: int = 10
    column_spacing: int = 30
    legend_height: int = 40
    legend_padding: int = 5
    legend_entries: int = 5
    title_height: int = 50
    font_size: int = 16

    def __post_init__(self):
        if self.columns < 1 or self.rows < 1:
            raise ValueError(f"Grid must have at least one column and one row, got {self.columns}x{self.rows}")
        if self.columns * self.rows < len(PANELS):
            raise ValueError(f"A {self.columns}x{self.rows} grid cannot hold {len(PANELS)} panels")
        if self.pie_radius <= 0:
            raise ValueError(f"Canvas {self.width}x{self.height} is too small for a {self.columns}x{self.rows} grid")

    @property
    def banner_column_width(self) -> int:
        return (self.width - self.left * 2 - self.inside_text_padding * 2) // 4

    @property
    def column_width(self) -> int:
        return (self.width - self.left * 2 - self.column_spacing * (self.columns - 1)) // self.columns

    @property
    def column_height(self) -> int:
        return (self.height - self.top * 2 - self.banner_height - self.row_margin * self.rows) // self.rows

    @property
    def legend_width(self) -> int:
        return self.column_width - self.inside_pie_padding * 2

    @property
    def legend_circle_radius(self) -> int:
        return (self.legend_height - self.legend_padding * 2) // 2

    @property
    def legend_column_width(self) -> int:
        return (self.legend_width - self.legend_padding * 2) // self.legend_entries

    @property
    def chart_height(self) -> int:
        # Space between the panel title and the legend
        return self.column_height - self.title_height - self.legend_height - self.inside_pie_padding * 4

    @property
    def pie_radius(self) -> int:
        return min(self.column_width - self.inside_pie_padding * 2, self.chart_height) // 2

    @property
    def cell_count(self) -> int:
        return self.columns * self.rows

    def cell_origin(self, index: int) -> Tuple[int, int]:
        column, row = index % self.columns, index // self.columns
        x = self.left + column * (self.column_width + self.column_spacing)
        y = self.top + self.banner_height + self.row_margin + row * (self.column_height + self.row_margin)
        return x, y


def pie_slices(values: Iterable[Tuple[str, float]]) -> List[PieSlice]:
    """Colors come from the palette by position, never by name."""
    return [PieSlice(name, value, PALETTE[i % len(PALETTE)]) for i, (name, value) in enumerate(values)]


def key_status_slices(stats: Stats) -> List[PieSlice]:
    keys = stats.keys
    return pie_slices([
        ("expired", keys.expired_proportion()),
        ("expiring", keys.expiring_proportion()),
        ("normal", keys.normal_proportion()),
    ])


def space_usage_slices(stats: Stats) -> List[PieSlice]:
    usage = stats.space_usage()
    return pie_slices([
        ("strings", usage.strings),
        ("lists", usage.lists),
        ("sets", usage.sets),
        ("hashes", usage.hashes),
        ("zsets", usage.sorted_sets),
    ])


PANELS: List[Tuple[str, Callable[[Stats], List[PieSlice]]]] = [
    ("keys status", key_status_slices),
    ("space usage", space_usage_slices),
]


def slice_angles(slices: Iterable[PieSlice]) -> List[Tuple[PieSlice, float, float]]:
    """
    Start and end angle, in degrees, of every slice that gets drawn.

    Angles accumulate from 0 by ``value * 3.6`` and stop at 360. Slices with
    no positive value, or nothing left to cover, are left out.
    """
    angles = []
    end = 0.0
    for s in slices:
        if s.value <= 0.0:
            continue
        start = end
        end = min(start + s.value * 360 / 100, 360.0)
        if end <= start:
            continue
        angles.append((s, start, end))
    return angles


def _point(cx: int, cy: int, radius: float, angle: float) -> Tuple[float, float]:
    theta = math.radians(angle)
    return cx + radius * math.cos(theta), cy + radius * math.sin(theta)


def render_pie_chart(canvas: SVGCanvas, cx: int, cy: int, radius: int, slices: List[PieSlice]):
    angles = slice_angles(slices)
    if not angles:
        canvas.circle(cx, cy, radius, f"fill:#{NEUTRAL_COLOR}")
        return

    tooltips = []
    for s, start, end in angles:
        style = f"fill:#{s.color}"
        sweep = end - start
        if sweep >= 360.0:
            canvas.circle(cx, cy, radius, style)
        else:
            x1, y1 = _point(cx, cy, radius, start)
            x2, y2 = _point(cx, cy, radius, end)
            large_arc = 1 if sweep > 180.0 else 0
            canvas.path(f"M{fmt(cx)},{fmt(cy)} L{fmt(x1)},{fmt(y1)} "
                        f"A{fmt(radius)},{fmt(radius)} 0 {large_arc},1 {fmt(x2)},{fmt(y2)} z", style)
        tooltips.append((_point(cx, cy, radius * 0.6, start + sweep / 2), s.value))

    # Labels go on top of every slice
    for (x, y), value in tooltips:
        canvas.text(x, y, f"{value:0.2f}%", TOOLTIP_STYLE)


def render_legend(canvas: SVGCanvas, layout: CanvasLayout, x: int, y: int, slices: List[PieSlice]):
    radius = layout.legend_circle_radius
    canvas.gstyle(LEGEND_STYLE)
    canvas.rect(x, y, layout.legend_width, layout.legend_height, "fill:white")

    y1 = y + radius + layout.legend_padding
    for i, s in enumerate(slices):
        x1 = x + radius + layout.legend_padding + i * layout.legend_column_width
        canvas.circle(x1, y1, radius, f"fill:#{s.color}")
        canvas.text(x1 + radius + layout.legend_padding, y1, s.name)

    canvas.gend()


def render_pie_panel(canvas: SVGCanvas, layout: CanvasLayout, x: int, y: int, title: str,
                     slices: List[PieSlice]):
    """A panel cell: background, title, pie chart and legend underneath."""
    canvas.rect(x, y, layout.column_width, layout.column_height, PANEL_STYLE)
    title_y = y + layout.inside_pie_padding + layout.title_height - layout.inside_text_padding
    canvas.text(x + layout.column_width // 2, title_y, title, "fill:white;text-anchor:middle")

    chart_top = y + layout.title_height + layout.inside_pie_padding * 2
    cx = x + layout.column_width // 2
    cy = chart_top + layout.chart_height // 2
    render_pie_chart(canvas, cx, cy, layout.pie_radius, slices)

    legend_y = y + layout.column_height - layout.legend_height - layout.inside_pie_padding
    render_legend(canvas, layout, x + layout.inside_pie_padding, legend_y, slices)


def render_banner(canvas: SVGCanvas, layout: CanvasLayout, stats: Stats):
    canvas.rect(layout.left, layout.top, layout.width - layout.left * 2, layout.banner_height, "fill:black")

    rows = [
        [("Databases", stats.database.count), ("Keys", stats.keys.count), ("Strings", stats.strings.count)],
        [("Lists", stats.lists.count), ("Sets", stats.sets.count), ("Hashes", stats.hashes.count),
         ("Sorted Sets", stats.sorted_sets.count)],
    ]
    x = layout.left + layout.inside_text_padding
    y = layout.top + layout.inside_text_padding + layout.font_size
    for counters in rows:
        for i, (label, count) in enumerate(counters):
            canvas.text(x + layout.banner_column_width * i, y, f"{label}: {count}")
        y += layout.banner_row_height + layout.inside_text_padding


def render(stats: Stats, layout: Optional[CanvasLayout] = None) -> bytes:
    """Render a frozen statistics snapshot to an SVG document."""
    if not stats.frozen:
        raise RenderError("Statistics must be frozen before they are rendered")
    layout = layout or CanvasLayout()

    canvas = SVGCanvas()
    canvas.start(layout.width, layout.height)
    canvas.title(SVG_TITLE)
    canvas.rect(0, 0, layout.width, layout.height, FRAME_STYLE)

    canvas.gstyle(f"font-family:Calibri,sans-serif;font-size:{layout.font_size}pt;fill:white")
    render_banner(canvas, layout, stats)

    for index in range(layout.cell_count):
        x, y = layout.cell_origin(index)
        if index < len(PANELS):
            title, build_slices = PANELS[index]
            render_pie_panel(canvas, layout, x, y, title, build_slices(stats))
        else:
            # Reserved for more metrics, drawn so the grid stays complete
            canvas.rect(x, y, layout.column_width, layout.column_height, PLACEHOLDER_STYLE)

    canvas.gend()
    canvas.end()
    body = canvas.to_bytes()
    log.debug(f"Rendered {layout.columns}x{layout.rows} dashboard ({len(body)} bytes).")
    return body
