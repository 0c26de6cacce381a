import argparse
import asyncio
import logging
import os
import sys

# Allows running the package directory directly (e.g. `python rdb_analyzer`)
# by putting the project root on the path before the absolute imports below.
if __package__ is None or __package__ == '':
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rdb_analyzer.aggregator import aggregate
from rdb_analyzer.events import ParseError
from rdb_analyzer.rdb_source import RdbEventSource
from rdb_analyzer.render import RenderError
from rdb_analyzer.server import run_server, write_svg
from rdb_analyzer.stats import read_stats, write_stats

log = logging.getLogger("RdbAnalyzer")

USAGE = """Usage: rdbanalyzer (-o <output svg file>|-l <listen address>) <rdb file>

There's two running modes:
 - run and then output a SVG file on disk (with -o)
 - run and then launch a web server which will serve a unique page with the SVG graph (with -l)
"""


def print_usage_and_abort(message=None):
    if message:
        print(message)
    print(USAGE)
    sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rdbanalyzer",
        description="Analyze a Redis RDB snapshot and render its statistics as an SVG dashboard.",
        usage=USAGE.splitlines()[0][len("Usage: "):],
    )
    parser.add_argument('rdb_file', nargs='?', help="The RDB file to analyze.")
    parser.add_argument('-o', dest='svg_output', metavar='FILE', help="The SVG output file.")
    parser.add_argument('-l', dest='listen_addr', metavar='ADDR', help="The listen address of the web server.")
    parser.add_argument('--debug-stats-output', metavar='FILE',
                        help="DEBUG: write the statistics to this JSON file.")
    parser.add_argument('--debug-only-stats', action='store_true',
                        help="DEBUG: only generate statistics after parsing, without visualization.")
    parser.add_argument('--debug-render', metavar='STATS_FILE',
                        help="DEBUG: only render the statistics from the provided JSON file.")
    parser.add_argument('--debug', action='store_true', help="Enable debug logging.")
    return parser


def validate_args(args):
    if args.svg_output and args.listen_addr:
        print_usage_and_abort("The -o and -l options are mutually exclusive.")

    has_output = bool(args.svg_output or args.listen_addr)
    if args.debug_render:
        if not has_output:
            print_usage_and_abort("With --debug-render you need to also pass the -o or -l option.")
        return

    requires_svg = not args.debug_only_stats and not args.debug_stats_output
    if not args.rdb_file or (requires_svg and not has_output):
        print_usage_and_abort()


def collect_stats(args):
    if args.debug_render:
        return read_stats(args.debug_render)

    if not os.path.isfile(args.rdb_file):
        raise FileNotFoundError(f"unable to open file '{args.rdb_file}'")
    log.info(f"Parsing RDB file {args.rdb_file}")
    return asyncio.run(aggregate(RdbEventSource(), args.rdb_file))


def deliver(stats, args):
    if args.svg_output:
        log.info("Generating SVG file...")
        write_svg(stats, args.svg_output)
    elif args.listen_addr:
        run_server(stats, args.listen_addr)


def main(argv=None):
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(level=log_level, format='%(asctime)s [%(levelname)s] [%(name)s] %(message)s',
                        datefmt='%Y-%m-%d %H:%M:%S')

    validate_args(args)

    try:
        stats = collect_stats(args)
    except ParseError as e:
        log.critical(f"Unable to parse RDB file. err={e}")
        sys.exit(1)
    except (OSError, ValueError) as e:
        log.critical(f"Unable to read input. err={e}")
        sys.exit(1)

    if args.debug_stats_output and not args.debug_render:
        try:
            write_stats(stats, args.debug_stats_output)
        except OSError as e:
            log.critical(f"Unable to write stats. err={e}")
            sys.exit(1)

    if args.debug_only_stats:
        return

    try:
        deliver(stats, args)
    except (OSError, ValueError, RenderError) as e:
        log.critical(f"Unable to render stats. err={e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
