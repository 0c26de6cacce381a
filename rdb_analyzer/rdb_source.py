import logging
from typing import Optional

from rdbtools import RdbCallback, RdbParser

from .events import (
    DatabaseSelected,
    EventSource,
    HashEntry,
    HashMetadata,
    ListEntry,
    ListMetadata,
    ParseError,
    ScanCancelled,
    SetMember,
    SetMetadata,
    SortedSetEntry,
    SortedSetMetadata,
    StreamKind,
    StringObject,
    payload_size,
)

log = logging.getLogger("RdbAnalyzer.RdbSource")


def _size(*values) -> int:
    total = 0
    for value in values:
        try:
            total += payload_size(value)
        except TypeError:
            log.debug(f"Not counting payload of type {type(value).__name__}")
    return total


class _OpenCollection:
    __slots__ = ('key', 'expiry', 'length', 'byte_size')

    def __init__(self, key, expiry):
        self.key = key
        self.expiry = expiry
        self.length = 0
        self.byte_size = 0


class EventForwardingCallback(RdbCallback):
    """
    Translates rdbtools parser callbacks into stream events.

    Element callbacks are forwarded as they arrive. The metadata event of a
    collection is emitted when the collection ends, so it can carry the
    element count and the payload size accumulated from its elements.
    """

    def __init__(self, source: EventSource):
        super().__init__(None)  # raw bytes, no escaping
        self._source = source
        self._open: Optional[_OpenCollection] = None

    def _start(self, key, expiry):
        self._open = _OpenCollection(key, expiry)

    def _add(self, *values):
        if self._open is not None:
            self._open.length += 1
            self._open.byte_size += _size(*values)

    def _finish(self, kind: StreamKind, metadata_cls):
        current, self._open = self._open, None
        if current is None:
            log.warning(f"Collection end without a matching start on stream '{kind.value}'")
            return
        self._source.emit(kind, metadata_cls(key=current.key, length=current.length,
                                             expiry=current.expiry, byte_size=current.byte_size))

    def start_database(self, db_number):
        self._source.emit(StreamKind.DATABASE, DatabaseSelected(db_number))

    def set(self, key, value, expiry, info):
        self._source.emit(StreamKind.STRING, StringObject(key, value, expiry))

    # Lists
    def start_list(self, key, expiry, info):
        self._start(key, expiry)

    def rpush(self, key, value):
        self._add(value)
        self._source.emit(StreamKind.LIST_DATA, ListEntry(key, value))

    def end_list(self, key, info=None):
        self._finish(StreamKind.LIST_METADATA, ListMetadata)

    # Sets
    def start_set(self, key, cardinality, expiry, info):
        self._start(key, expiry)

    def sadd(self, key, member):
        self._add(member)
        self._source.emit(StreamKind.SET_DATA, SetMember(key, member))

    def end_set(self, key):
        self._finish(StreamKind.SET_METADATA, SetMetadata)

    # Hashes
    def start_hash(self, key, length, expiry, info):
        self._start(key, expiry)

    def hset(self, key, field, value):
        self._add(field, value)
        self._source.emit(StreamKind.HASH_DATA, HashEntry(key, field, value))

    def end_hash(self, key):
        self._finish(StreamKind.HASH_METADATA, HashMetadata)

    # Sorted sets
    def start_sorted_set(self, key, length, expiry, info):
        self._start(key, expiry)

    def zadd(self, key, score, member):
        self._add(member, score)
        self._source.emit(StreamKind.SORTED_SET_ENTRIES, SortedSetEntry(key, member, score))

    def end_sorted_set(self, key):
        self._finish(StreamKind.SORTED_SET_METADATA, SortedSetMetadata)


class RdbEventSource(EventSource):
    """Event source backed by the rdbtools RDB parser."""

    SIZED_KINDS = frozenset({
        StreamKind.STRING,
        StreamKind.LIST_METADATA,
        StreamKind.SET_METADATA,
        StreamKind.HASH_METADATA,
        StreamKind.SORTED_SET_METADATA,
    })

    def _scan(self, path: str):
        log.info(f"Parsing RDB file '{path}'")
        parser = RdbParser(EventForwardingCallback(self))
        try:
            parser.parse(path)
        except (ScanCancelled, OSError):
            raise
        except Exception as e:
            raise ParseError(f"unable to parse RDB file '{path}': {e}") from e
