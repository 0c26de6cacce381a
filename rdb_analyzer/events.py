import asyncio
import datetime
import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import STREAM_QUEUE_MAX_SIZE

log = logging.getLogger("RdbAnalyzer.Events")


class ParseError(Exception):
    """The snapshot file could not be decoded."""


class ScanCancelled(Exception):
    """Raised inside the producer thread once the scan has been cancelled."""


class StreamKind(enum.Enum):
    DATABASE = 'databases'
    STRING = 'strings'
    LIST_METADATA = 'list_metadata'
    LIST_DATA = 'list_data'
    SET_METADATA = 'set_metadata'
    SET_DATA = 'set_data'
    HASH_METADATA = 'hash_metadata'
    HASH_DATA = 'hash_data'
    SORTED_SET_METADATA = 'sorted_set_metadata'
    SORTED_SET_ENTRIES = 'sorted_set_entries'


# --- Event records ---

@dataclass(frozen=True)
class DatabaseSelected:
    number: int


@dataclass(frozen=True)
class StringObject:
    key: bytes
    value: Any
    expiry: Optional[datetime.datetime] = None


@dataclass(frozen=True)
class CollectionMetadata:
    key: bytes
    length: int = 0
    expiry: Optional[datetime.datetime] = None
    # None when the source does not know the payload size of this kind
    byte_size: Optional[int] = None


class ListMetadata(CollectionMetadata):
    pass


class SetMetadata(CollectionMetadata):
    pass


class HashMetadata(CollectionMetadata):
    pass


class SortedSetMetadata(CollectionMetadata):
    pass


@dataclass(frozen=True)
class ListEntry:
    key: bytes
    value: Any


@dataclass(frozen=True)
class SetMember:
    key: bytes
    member: Any


@dataclass(frozen=True)
class HashEntry:
    key: bytes
    field: Any
    value: Any


@dataclass(frozen=True)
class SortedSetEntry:
    key: bytes
    member: Any
    score: float


EXPECTED_EVENT_TYPES = {
    StreamKind.DATABASE: DatabaseSelected,
    StreamKind.STRING: StringObject,
    StreamKind.LIST_METADATA: ListMetadata,
    StreamKind.LIST_DATA: ListEntry,
    StreamKind.SET_METADATA: SetMetadata,
    StreamKind.SET_DATA: SetMember,
    StreamKind.HASH_METADATA: HashMetadata,
    StreamKind.HASH_DATA: HashEntry,
    StreamKind.SORTED_SET_METADATA: SortedSetMetadata,
    StreamKind.SORTED_SET_ENTRIES: SortedSetEntry,
}


def payload_size(value: Any) -> int:
    """Byte length of a decoded value. Integer-encoded values count their decimal digits."""
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    if isinstance(value, str):
        return len(value.encode('utf-8'))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return len(str(value))
    raise TypeError(f"Unsupported payload type: {type(value).__name__}")


# Sentinel delivered to a consumer when its stream is closed.
_CLOSED = object()


class EventStream:
    """
    One logical output stream of the event source.

    The producer side runs in a worker thread and hands each event to the
    event loop, waiting until the bounded queue has accepted it. The
    consumer side iterates with ``async for`` until the stream is closed.
    """

    def __init__(self, kind: StreamKind, maxsize: int = STREAM_QUEUE_MAX_SIZE):
        self.kind = kind
        self.closed = False
        self._queue = asyncio.Queue(maxsize=maxsize)
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop

    def send(self, event):
        if self.closed:
            raise RuntimeError(f"Stream '{self.kind.value}' is closed")
        self._put(event)

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._put(_CLOSED)

    def _put(self, item):
        if self._loop is None:
            raise RuntimeError(f"Stream '{self.kind.value}' is not bound to an event loop")
        # Must never be called from the loop thread itself: .result() would deadlock.
        asyncio.run_coroutine_threadsafe(self._queue.put(item), self._loop).result()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


class EventSource:
    """
    Base class for producers of typed snapshot events.

    Subclasses implement ``_scan(path)`` and publish through ``emit``. A
    source scans exactly one file; ``scan`` is blocking and closes every
    stream when it returns, whatever the outcome.
    """

    # Stream kinds whose metadata events carry a byte size.
    SIZED_KINDS = frozenset()

    def __init__(self, maxsize: Optional[int] = None):
        if maxsize is None:
            maxsize = STREAM_QUEUE_MAX_SIZE
        self.streams: Dict[StreamKind, EventStream] = {kind: EventStream(kind, maxsize) for kind in StreamKind}
        self._cancelled = threading.Event()
        self._scanned = False

    def bind(self, loop: asyncio.AbstractEventLoop):
        for stream in self.streams.values():
            stream.bind(loop)

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def scanned(self) -> bool:
        return self._scanned

    def emit(self, kind: StreamKind, event):
        if self._cancelled.is_set():
            raise ScanCancelled("Scan cancelled")
        self.streams[kind].send(event)

    def scan(self, path: str):
        if self._scanned:
            raise RuntimeError("An event source can only scan one file")
        self._scanned = True
        try:
            self._scan(path)
        finally:
            for stream in self.streams.values():
                stream.close()
            log.debug(f"All {len(self.streams)} streams closed.")

    def _scan(self, path: str):
        raise NotImplementedError
