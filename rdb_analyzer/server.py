import logging
import os
import tempfile
from typing import Optional, Tuple

from aiohttp import web

from .config import SERVER_HOST, SERVER_PORT, SVG_CONTENT_TYPE
from .render import CanvasLayout, render
from .stats import Stats

log = logging.getLogger("RdbAnalyzer.Server")


def _default_file_mode() -> int:
    # os.umask can only be read by setting it
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_svg(stats: Stats, path: str, layout: Optional[CanvasLayout] = None):
    """
    Render once and write the image to ``path``.

    The document goes to a temporary file next to the destination and is
    moved into place only when complete, so a failure leaves no partial file.
    """
    body = render(stats, layout)

    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix='.rdbanalyzer-', suffix='.svg', dir=directory)
    try:
        with os.fdopen(fd, 'wb') as f:
            os.fchmod(f.fileno(), _default_file_mode())
            f.write(body)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    log.info(f"SVG written to '{path}' ({len(body)} bytes).")


def parse_listen_address(address: str) -> Tuple[str, int]:
    """
    Split "host:port", ":port" or "host" into a bindable pair.

    IPv6 hosts are written "[::1]:port" or "[::1]". An unbracketed address
    with more than one colon is taken as an IPv6 host without a port.
    """
    if address.startswith('['):
        host, sep, rest = address[1:].partition(']')
        if not sep or (rest and not rest.startswith(':')):
            raise ValueError(f"Invalid listen address '{address}'")
        port_str = rest[1:]
    elif address.count(':') > 1:
        host, port_str = address, ''
    else:
        host, _, port_str = address.partition(':')
    host = host or SERVER_HOST
    if not port_str:
        return host, SERVER_PORT
    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Invalid port in listen address '{address}'") from None
    if not 1 <= port <= 65535:
        raise ValueError(f"Port out of range in listen address '{address}'")
    return host, port


async def handle_svg(request):
    """Render the snapshot again for every request."""
    app = request.app
    try:
        body = render(app["stats"], app["layout"])
    except Exception as e:
        log.error("Error rendering statistics:", exc_info=True)
        return web.Response(status=500, text=str(e))
    return web.Response(body=body, content_type=SVG_CONTENT_TYPE)


async def handle_stats(request):
    return web.json_response(request.app["stats"].to_dict())


def create_app(stats: Stats, layout: Optional[CanvasLayout] = None) -> web.Application:
    if not stats.frozen:
        raise ValueError("Only a frozen statistics snapshot can be served")
    app = web.Application()
    app["stats"] = stats
    app["layout"] = layout or CanvasLayout()
    app.router.add_get("/", handle_svg)
    app.router.add_get("/stats.json", handle_stats)
    return app


def run_server(stats: Stats, address: str, layout: Optional[CanvasLayout] = None):
    host, port = parse_listen_address(address)
    app = create_app(stats, layout)
    log.info(f"Server starting on http://{host}:{port}")
    web.run_app(app, host=host, port=port, print=None)
