"""Comparison of two snapshots with threshold classification."""
from dataclasses import dataclass, field
from typing import List, Optional
import logging

from metricdelta.config import Thresholds
from metricdelta.series import ReducedMetric, SeriesKey
from metricdelta.snapshot import Snapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeltaRecord:
    """Change of one series present in both snapshots."""
    key: SeriesKey
    old: ReducedMetric
    new: ReducedMetric
    percent_change: Optional[float]  # None when the old value is zero
    is_warn: bool = False
    is_error: bool = False
    over_max: bool = False

    @property
    def failed(self) -> bool:
        return self.is_error or self.over_max


@dataclass
class Comparison:
    deltas: List[DeltaRecord] = field(default_factory=list)
    removed: List[SeriesKey] = field(default_factory=list)
    added: List[SeriesKey] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        """True when any series breached the error or max-increase threshold."""
        return any(d.failed for d in self.deltas)

    @property
    def warned(self) -> bool:
        return any(d.is_warn for d in self.deltas)


def percent_change(old_value: float, new_value: float) -> Optional[float]:
    """Return ``(new - old) / old * 100``, or None when ``old`` is zero."""
    if old_value == 0:
        return None
    return (new_value - old_value) / old_value * 100


def classify(key: SeriesKey, old: ReducedMetric, new: ReducedMetric, thresholds: Thresholds) -> DeltaRecord:
    """Evaluate the warn, error and max-increase checks independently."""
    change = percent_change(old.value, new.value)
    if change is None:
        return DeltaRecord(key, old, new, None)

    # NaN fails every comparison, so it never trips a threshold
    magnitude = abs(change)
    return DeltaRecord(
        key,
        old,
        new,
        change,
        is_warn=thresholds.warn is not None and magnitude > thresholds.warn,
        is_error=thresholds.error is not None and magnitude > thresholds.error,
        over_max=thresholds.max_increase is not None and change > thresholds.max_increase,
    )


def compare_snapshots(old: Snapshot, new: Snapshot, thresholds: Optional[Thresholds] = None) -> Comparison:
    """
    Compare two snapshots.

    Series present in both are classified; series only in ``old`` are
    reported as removed and series only in ``new`` as added. All lists follow
    the snapshot sort order.
    """
    thresholds = thresholds or Thresholds()
    result = Comparison()

    for key in old.sorted_keys():
        new_metric = new.get(key)
        if new_metric is None:
            result.removed.append(key)
            continue
        result.deltas.append(classify(key, old[key], new_metric, thresholds))

    result.added = [key for key in new.sorted_keys() if key not in old]

    logger.info(
        f"Compared {len(result.deltas)} series: "
        f"{sum(d.is_warn for d in result.deltas)} warn, "
        f"{sum(d.failed for d in result.deltas)} error, "
        f"{len(result.removed)} removed, {len(result.added)} added"
    )
    return result
