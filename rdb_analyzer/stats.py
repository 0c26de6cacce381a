import datetime
import enum
import json
import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional

log = logging.getLogger("RdbAnalyzer.Stats")


class SnapshotFrozenError(RuntimeError):
    """A frozen statistics snapshot was asked to change."""


class ExpiryStatus(enum.Enum):
    NORMAL = 'normal'
    EXPIRING = 'expiring'
    EXPIRED = 'expired'


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    # rdbtools hands out naive datetimes that are already in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def classify_expiry(expiry: Optional[datetime.datetime], now: datetime.datetime) -> ExpiryStatus:
    """
    Classify a key by its expiry timestamp.

    No expiry is normal, an expiry strictly after ``now`` is expiring, and an
    expiry at or before ``now`` (equality included) is expired.
    """
    if expiry is None:
        return ExpiryStatus.NORMAL
    if _as_utc(expiry) > _as_utc(now):
        return ExpiryStatus.EXPIRING
    return ExpiryStatus.EXPIRED


@dataclass
class DatabaseStats:
    count: int = 0


@dataclass
class KeyStats:
    count: int = 0
    expired: int = 0
    expiring: int = 0

    def _proportion(self, value: int) -> float:
        if self.count == 0:
            return 0.0
        return value / self.count * 100

    def expired_proportion(self) -> float:
        return self._proportion(self.expired)

    def expiring_proportion(self) -> float:
        return self._proportion(self.expiring)

    def normal_proportion(self) -> float:
        return self._proportion(self.count - self.expired - self.expiring)


@dataclass
class ValueStats:
    count: int = 0
    total_byte_size: int = 0


class StringStats(ValueStats):
    pass


class ListStats(ValueStats):
    pass


class SetStats(ValueStats):
    pass


class HashStats(ValueStats):
    pass


class SortedSetStats(ValueStats):
    pass


@dataclass
class SpaceUsageProportions:
    """Share of the tracked byte size per value kind, in percent."""
    strings: float = 0.0
    lists: float = 0.0
    sets: float = 0.0
    hashes: float = 0.0
    sorted_sets: float = 0.0


_SECTIONS = {
    'database': DatabaseStats,
    'keys': KeyStats,
    'strings': StringStats,
    'lists': ListStats,
    'sets': SetStats,
    'hashes': HashStats,
    'sorted_sets': SortedSetStats,
}

VALUE_KINDS = ('strings', 'lists', 'sets', 'hashes', 'sorted_sets')
COLLECTION_KINDS = ('lists', 'sets', 'hashes', 'sorted_sets')


@dataclass
class Stats:
    """
    Aggregate statistics of one snapshot file.

    Written only while a scan is being aggregated, then frozen and handed
    to the renderer and the JSON dump. Every mutator refuses to run on a
    frozen snapshot.
    """
    database: DatabaseStats = field(default_factory=DatabaseStats)
    keys: KeyStats = field(default_factory=KeyStats)
    strings: StringStats = field(default_factory=StringStats)
    lists: ListStats = field(default_factory=ListStats)
    sets: SetStats = field(default_factory=SetStats)
    hashes: HashStats = field(default_factory=HashStats)
    sorted_sets: SortedSetStats = field(default_factory=SortedSetStats)
    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "Stats":
        self._frozen = True
        return self

    def _check_writable(self):
        if self._frozen:
            raise SnapshotFrozenError("Statistics snapshot is frozen")

    def add_database(self):
        self._check_writable()
        self.database.count += 1

    def add_key(self, status: ExpiryStatus):
        self._check_writable()
        self.keys.count += 1
        if status is ExpiryStatus.EXPIRED:
            self.keys.expired += 1
        elif status is ExpiryStatus.EXPIRING:
            self.keys.expiring += 1

    def add_string(self, byte_size: int):
        self._check_writable()
        self.strings.count += 1
        self.strings.total_byte_size += byte_size

    def add_collection(self, kind: str, byte_size: Optional[int] = None):
        if kind not in COLLECTION_KINDS:
            raise ValueError(f"Unknown collection kind: {kind}")
        self._check_writable()
        section = getattr(self, kind)
        section.count += 1
        if byte_size is not None:
            section.total_byte_size += byte_size

    def total_byte_size(self) -> int:
        return sum(getattr(self, kind).total_byte_size for kind in VALUE_KINDS)

    def space_usage(self) -> SpaceUsageProportions:
        total = self.total_byte_size()
        if total == 0:
            return SpaceUsageProportions()
        return SpaceUsageProportions(**{
            kind: getattr(self, kind).total_byte_size / total * 100 for kind in VALUE_KINDS
        })

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {name: asdict(getattr(self, name)) for name in _SECTIONS}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Stats":
        if not isinstance(data, dict):
            raise ValueError("Statistics must be a JSON object")

        sections = {}
        for name, section_cls in _SECTIONS.items():
            raw = data.get(name)
            if not isinstance(raw, dict):
                raise ValueError(f"Missing or invalid section '{name}'")
            try:
                section = section_cls(**raw)
            except TypeError as e:
                raise ValueError(f"Invalid fields in section '{name}': {e}") from e
            for f in fields(section):
                value = getattr(section, f.name)
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise ValueError(f"'{name}.{f.name}' must be a non-negative integer, got {value!r}")
            sections[name] = section

        keys = sections['keys']
        if keys.expired + keys.expiring > keys.count:
            raise ValueError("Expired and expiring keys exceed the key count")
        return cls(**sections)


def write_stats(stats: Stats, path: str):
    with open(path, 'w') as f:
        json.dump(stats.to_dict(), f, indent=2)
    log.info(f"Statistics written to '{path}'.")


def read_stats(path: str) -> Stats:
    """Load a statistics dump. The returned snapshot is already frozen."""
    with open(path, 'r') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"'{path}' is not valid JSON: {e}") from e
    stats = Stats.from_dict(data).freeze()
    log.info(f"Statistics loaded from '{path}'.")
    return stats
