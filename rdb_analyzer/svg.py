from typing import List, Optional
from xml.sax.saxutils import escape, quoteattr

SVG_HEADER = '<?xml version="1.0"?>'
SVG_NAMESPACE = 'http://www.w3.org/2000/svg'


def fmt(value) -> str:
    """Format a coordinate. Integers stay integers, floats keep two decimals."""
    if isinstance(value, int):
        return str(value)
    text = f"{value:.2f}".rstrip('0').rstrip('.')
    return '0' if text == '-0' else text


def _style(style: Optional[str]) -> str:
    return f' style={quoteattr(style)}' if style else ''


class SVGCanvas:
    """Builds an SVG document element by element, in drawing order."""

    def __init__(self):
        self._parts: List[str] = []
        self._open_groups = 0

    def start(self, width: int, height: int):
        self._parts.append(SVG_HEADER)
        self._parts.append(f'<svg width="{fmt(width)}" height="{fmt(height)}" '
                           f'viewBox="0 0 {fmt(width)} {fmt(height)}" xmlns="{SVG_NAMESPACE}">')

    def title(self, text: str):
        self._parts.append(f'<title>{escape(text)}</title>')

    def rect(self, x, y, width, height, style: Optional[str] = None):
        self._parts.append(f'<rect x="{fmt(x)}" y="{fmt(y)}" width="{fmt(width)}" '
                           f'height="{fmt(height)}"{_style(style)} />')

    def circle(self, x, y, radius, style: Optional[str] = None):
        self._parts.append(f'<circle cx="{fmt(x)}" cy="{fmt(y)}" r="{fmt(radius)}"{_style(style)} />')

    def text(self, x, y, text: str, style: Optional[str] = None):
        self._parts.append(f'<text x="{fmt(x)}" y="{fmt(y)}"{_style(style)}>{escape(text)}</text>')

    def path(self, d: str, style: Optional[str] = None):
        self._parts.append(f'<path d={quoteattr(d)}{_style(style)} />')

    def gstyle(self, style: str):
        self._open_groups += 1
        self._parts.append(f'<g{_style(style)}>')

    def gend(self):
        if self._open_groups == 0:
            raise ValueError("gend() without a matching gstyle()")
        self._open_groups -= 1
        self._parts.append('</g>')

    def end(self):
        if self._open_groups:
            raise ValueError(f"{self._open_groups} group(s) left open")
        self._parts.append('</svg>')

    def to_bytes(self) -> bytes:
        return ('\n'.join(self._parts) + '\n').encode('utf-8')
