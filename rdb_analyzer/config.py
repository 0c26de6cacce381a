import os

# --- Configuration ---
# Defaults for the web server. "-l :9000" keeps SERVER_HOST, "-l host" keeps SERVER_PORT.
SERVER_HOST = os.getenv('RDB_ANALYZER_HOST', '0.0.0.0')
SERVER_PORT = int(os.getenv('RDB_ANALYZER_PORT', '8080'))

# --- Aggregation ---
# Every per-kind stream is bounded. When one is full the parser thread waits
# for its consumer, so a stream nobody drains stalls the whole scan.
STREAM_QUEUE_MAX_SIZE = int(os.getenv('RDB_ANALYZER_QUEUE_SIZE', '1000'))
PROGRESS_LOG_INTERVAL_SECONDS = 10  # How often consumers log their running counts
SCAN_THREAD_NAME_PREFIX = 'rdb-scan'

# --- Rendering ---
CANVAS_WIDTH = 1200
CANVAS_HEIGHT = 900
GRID_COLUMNS = 3  # 2x1 and 3x2 are the layouts in use
GRID_ROWS = 2
SVG_TITLE = 'RDB statistics'
SVG_CONTENT_TYPE = 'image/svg+xml'
