import asyncio
import concurrent.futures
import datetime
import logging
import time
from collections import Counter
from typing import Callable, Optional

from .config import PROGRESS_LOG_INTERVAL_SECONDS, SCAN_THREAD_NAME_PREFIX
from .events import EXPECTED_EVENT_TYPES, EventSource, EventStream, StreamKind, payload_size
from .stats import Stats, classify_expiry

log = logging.getLogger("RdbAnalyzer.Aggregator")

_COLLECTION_STREAMS = {
    StreamKind.LIST_METADATA: 'lists',
    StreamKind.SET_METADATA: 'sets',
    StreamKind.HASH_METADATA: 'hashes',
    StreamKind.SORTED_SET_METADATA: 'sorted_sets',
}

# Streams whose consumers report their progress while the scan runs.
_PROGRESS_STREAMS = {StreamKind.STRING, *_COLLECTION_STREAMS}


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class StatsCollector:
    """
    Owns the snapshot while a scan is being aggregated.

    Every consumer goes through ``apply``; a single lock covers the whole
    snapshot. Events of the wrong shape are logged and counted per stream.
    """

    def __init__(self, clock: Optional[Callable[[], datetime.datetime]] = None,
                 sized_kinds=frozenset()):
        self.stats = Stats()
        self.anomalies: Counter = Counter()
        self._clock = clock or utc_now
        self._sized_kinds = frozenset(sized_kinds)
        self._lock = asyncio.Lock()

    def record_anomaly(self, kind: StreamKind, reason: str):
        self.anomalies[kind] += 1
        log.warning(f"Skipping malformed event on stream '{kind.value}': {reason}")

    async def apply(self, kind: StreamKind, event):
        expected = EXPECTED_EVENT_TYPES[kind]
        if not isinstance(event, expected):
            self.record_anomaly(kind, f"expected {expected.__name__}, got {type(event).__name__}")
            return

        if kind is StreamKind.DATABASE:
            async with self._lock:
                self.stats.add_database()

        elif kind is StreamKind.STRING:
            try:
                byte_size = payload_size(event.value)
            except TypeError as e:
                self.record_anomaly(kind, str(e))
                return
            status = classify_expiry(event.expiry, self._clock())
            async with self._lock:
                self.stats.add_key(status)
                self.stats.add_string(byte_size)

        elif kind in _COLLECTION_STREAMS:
            byte_size = event.byte_size if kind in self._sized_kinds else None
            status = classify_expiry(event.expiry, self._clock())
            async with self._lock:
                self.stats.add_key(status)
                self.stats.add_collection(_COLLECTION_STREAMS[kind], byte_size)

        # Element streams are only drained, their collection is counted once by its metadata.


async def consume_stream(collector: StatsCollector, stream: EventStream,
                         progress_interval: float = PROGRESS_LOG_INTERVAL_SECONDS) -> int:
    """Drain one stream until it is closed. Returns the number of events received."""
    kind = stream.kind
    received = 0
    last_report = time.monotonic()

    async for event in stream:
        received += 1
        try:
            await collector.apply(kind, event)
        except Exception:
            # Stopping here would leave the producer blocked on this stream.
            log.error(f"Error applying event on stream '{kind.value}':", exc_info=True)
            collector.anomalies[kind] += 1

        if kind is StreamKind.DATABASE:
            log.info(f"databases: {collector.stats.database.count}")
        elif kind in _PROGRESS_STREAMS:
            now = time.monotonic()
            if now - last_report >= progress_interval:
                last_report = now
                log.info(f"{kind.value}: {received}")

    log.debug(f"Stream '{kind.value}' closed after {received} events.")
    return received


async def aggregate(source: EventSource, path: str,
                    clock: Optional[Callable[[], datetime.datetime]] = None,
                    executor: Optional[concurrent.futures.Executor] = None) -> Stats:
    """
    Scan ``path`` with ``source`` and return the frozen statistics.

    One consumer task per stream is started before the blocking scan is
    handed to a worker thread. The snapshot is only returned once the scan
    has returned and every consumer has seen its stream close. A failed or
    cancelled scan discards the partial snapshot.
    """
    if source.scanned:
        # Its streams are already closed and drained, new consumers would wait forever.
        raise RuntimeError("Event source has already scanned a file")
    loop = asyncio.get_running_loop()
    source.bind(loop)
    collector = StatsCollector(clock=clock, sized_kinds=source.SIZED_KINDS)

    consumers = [asyncio.create_task(consume_stream(collector, stream))
                 for stream in source.streams.values()]

    own_executor = executor is None
    if own_executor:
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1,
                                                         thread_name_prefix=SCAN_THREAD_NAME_PREFIX)

    started = time.monotonic()
    scan = loop.run_in_executor(executor, source.scan, path)
    try:
        await asyncio.shield(scan)
    except asyncio.CancelledError:
        log.warning("Aggregation cancelled. Stopping the scan and draining all streams.")
        source.cancel()
        await asyncio.gather(scan, return_exceptions=True)
        await asyncio.gather(*consumers, return_exceptions=True)
        raise
    except Exception:
        await asyncio.gather(*consumers, return_exceptions=True)
        log.error("Scan failed. Partial statistics are discarded.")
        raise
    finally:
        if own_executor:
            executor.shutdown(wait=False)

    # Completion barrier
    counts = await asyncio.gather(*consumers)

    stats = collector.stats.freeze()
    log.info(f"Parsing time: {time.monotonic() - started:.2f}s. "
             f"Events received: {sum(counts)}. Databases: {stats.database.count}. Keys: {stats.keys.count}.")
    if collector.anomalies:
        details = ", ".join(f"{kind.value}={count}" for kind, count in collector.anomalies.items())
        log.warning(f"Malformed events skipped: {details}")
    return stats
