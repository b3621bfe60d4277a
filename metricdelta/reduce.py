"""Reduction of metric families to one value per series."""
from typing import Dict, Iterable, List, Tuple
import logging

from metricdelta.config import MetricOptions
from metricdelta.errors import ParseError
from metricdelta.series import (
    CounterSample, Family, GaugeSample, HistogramSample, ReducedMetric, SeriesKey, canonical_labels,
)
from metricdelta.snapshot import Snapshot

logger = logging.getLogger(__name__)


def _parse_float(value, family: Family, field: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ParseError(f"family {family.name}: {field} {value!r} is not numeric") from None


def trim_name(name: str, prefix: str) -> str:
    """Strip ``prefix`` once if ``name`` starts with it."""
    if prefix and name.startswith(prefix):
        return name[len(prefix):]
    return name


def reduce_family(family: Family, options: MetricOptions) -> List[Tuple[SeriesKey, ReducedMetric]]:
    """
    Reduce one family to ``(SeriesKey, ReducedMetric)`` pairs.

    Counters and gauges keep their value. Histograms are averaged as
    ``sum / count`` and dropped when ``count`` is below
    ``options.min_histogram_count``. Summaries are skipped, as is any other
    declared type.

    Raises:
        ParseError: a value, count or sum is not numeric, or a sample does
            not match the family's declared type
    """
    include = options.include_set
    if include and family.name not in include:
        return []

    metric_name = trim_name(family.name, options.trim_prefix)
    reduced = []

    if family.type == "HISTOGRAM":
        for sample in family.samples:
            if not isinstance(sample, HistogramSample):
                raise ParseError(f"family {family.name}: expected histogram sample, got {type(sample).__name__}")
            count = _parse_float(sample.count, family, "count")
            if count < options.min_histogram_count:
                logger.debug(
                    f"Dropping {metric_name} {canonical_labels(sample.labels)}: "
                    f"count {count:g} below {options.min_histogram_count}"
                )
                continue
            total = _parse_float(sample.sum, family, "sum")
            # count == 0 only passes a zero threshold; IEEE semantics apply
            value = total / count if count else _ieee_divide(total)
            reduced.append(_entry(metric_name, sample.labels, family, value, total, count))

    elif family.type in ("COUNTER", "GAUGE"):
        for sample in family.samples:
            if not isinstance(sample, (CounterSample, GaugeSample)):
                raise ParseError(f"family {family.name}: expected scalar sample, got {type(sample).__name__}")
            value = _parse_float(sample.value, family, "value")
            reduced.append(_entry(metric_name, sample.labels, family, value))

    elif family.type == "SUMMARY":
        pass

    else:
        logger.info(f"Unknown family: {family.name} (type {family.type or 'unset'})")

    return reduced


def _ieee_divide(total: float) -> float:
    if total == 0 or total != total:
        return float("nan")
    return float("inf") if total > 0 else float("-inf")


def _entry(metric_name, labels, family, value, total=0.0, count=0.0):
    key = SeriesKey(metric=metric_name, labels=canonical_labels(labels))
    metric = ReducedMetric(
        name=metric_name,
        labels=dict(labels),
        value=value,
        family_name=family.name,
        family_type=family.type,
        sum=total,
        count=count,
    )
    return key, metric


def build_snapshot(families: Iterable[Family], options: MetricOptions) -> Snapshot:
    """Fold every family into one Snapshot. Duplicate keys: last write wins."""
    metrics: Dict[SeriesKey, ReducedMetric] = {}
    for family in families:
        for key, metric in reduce_family(family, options):
            metrics[key] = metric
    logger.info(f"Reduced {len(metrics)} series")
    return Snapshot(metrics)
