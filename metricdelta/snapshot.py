"""Snapshot: the reduced metric table for one input file."""
from types import MappingProxyType
from typing import Dict, Iterator, List, Optional

from metricdelta.series import ReducedMetric, SeriesKey


class Snapshot:
    """Read-only mapping of SeriesKey to ReducedMetric.

    Iteration always follows :meth:`sorted_keys`, which is the order every
    renderer and the comparator rely on.
    """

    def __init__(self, metrics: Dict[SeriesKey, ReducedMetric]):
        self._metrics = MappingProxyType(dict(metrics))
        self._sorted = sorted(self._metrics)

    def sorted_keys(self) -> List[SeriesKey]:
        """Keys ordered by metric name, then canonical label string."""
        return list(self._sorted)

    def get(self, key: SeriesKey) -> Optional[ReducedMetric]:
        return self._metrics.get(key)

    def __getitem__(self, key: SeriesKey) -> ReducedMetric:
        return self._metrics[key]

    def __contains__(self, key) -> bool:
        return key in self._metrics

    def __len__(self) -> int:
        return len(self._metrics)

    def __iter__(self) -> Iterator[SeriesKey]:
        return iter(self._sorted)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Snapshot):
            return NotImplemented
        return dict(self._metrics) == dict(other._metrics)

    def __repr__(self) -> str:
        return f"Snapshot({len(self)} series)"
