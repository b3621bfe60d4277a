"""Output renderers for snapshots and comparisons.

Every renderer writes to the text sink passed as ``out``; nothing here writes
to a process-wide stream on its own.
"""
from typing import Dict, Optional, TextIO
from decimal import Decimal
import csv
import math

from metricdelta.compare import Comparison, DeltaRecord
from metricdelta.errors import UnsupportedFormatError
from metricdelta.snapshot import Snapshot


KEY_WIDTH = 80

YELLOW = "\033[93m"
RED = "\033[91m"
RESET = "\033[0m"


def _sorted_extra(labels: Optional[Dict[str, str]]):
    labels = labels or {}
    names = sorted(labels)
    return names, [labels[n] for n in names]


# Single snapshot

def render_plain(snapshot: Snapshot, out: TextIO):
    """Fixed-width ``metric labels`` column followed by the value."""
    for key in snapshot.sorted_keys():
        metric = snapshot[key]
        key_string = f"{key.metric} {key.labels}"
        if not metric.is_histogram:
            out.write(f"{key_string:<{KEY_WIDTH}} {metric.value:.0f}\n")
        else:
            fraction = f"({metric.sum:.0f}/{metric.count:.0f})"
            out.write(f"{key_string:<{KEY_WIDTH}} {fraction} {metric.value:.3f}\n")


def render_csv(snapshot: Snapshot, out: TextIO, labels: Optional[Dict[str, str]] = None):
    """CSV with ``metric,labels,value`` plus one column per extra label."""
    extra_names, extra_values = _sorted_extra(labels)
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(["metric", "labels", "value"] + extra_names)
    for key in snapshot.sorted_keys():
        writer.writerow([key.metric, key.labels, f"{snapshot[key].value:.8f}"] + extra_values)


def influx_escape(value: str) -> str:
    return value.replace(" ", "\\ ")


def influx_number(value: float) -> str:
    """Shortest round-trip digits, exponent form outside 1e-4 <= |v| < 1e6 (``%g`` style)."""
    if math.isnan(value) or math.isinf(value):
        return repr(value)
    d = Decimal(repr(value)).normalize()
    sign, digits, exponent = d.as_tuple()
    exp10 = len(digits) + exponent - 1
    if exp10 < -4 or exp10 >= 6:
        mantissa = str(digits[0])
        if len(digits) > 1:
            mantissa += "." + "".join(str(n) for n in digits[1:])
        return f"{'-' if sign else ''}{mantissa}e{'-' if exp10 < 0 else '+'}{abs(exp10):02d}"
    return format(d, "f")


def _influx_labels(labels: Dict[str, str]) -> str:
    return "".join(f",{k}={influx_escape(labels[k])}" for k in sorted(labels))


def render_influxdb(snapshot: Snapshot, out: TextIO, timestamp: int, labels: Optional[Dict[str, str]] = None):
    """InfluxDB line protocol, one line per series, at the given timestamp (seconds)."""
    extra = _influx_labels(labels or {})
    for key in snapshot.sorted_keys():
        metric = snapshot[key]
        out.write(f"{key.metric}{_influx_labels(metric.labels)}{extra} value={influx_number(metric.value)} {timestamp}\n")


def render_snapshot(fmt: str, snapshot: Snapshot, out: TextIO, labels: Optional[Dict[str, str]] = None,
                    timestamp: int = 0):
    """Dispatch a single-snapshot render. The gcp-monitoring push lives in gcp_monitoring."""
    if fmt == "plain":
        render_plain(snapshot, out)
    elif fmt == "csv":
        render_csv(snapshot, out, labels)
    elif fmt == "influxdb":
        render_influxdb(snapshot, out, timestamp, labels)
    else:
        raise UnsupportedFormatError(fmt, "single")


# Comparison

def format_change(delta: DeltaRecord) -> str:
    if delta.percent_change is None:
        return "N/A"
    return f"{delta.percent_change:.4f}%"


def _color(delta: DeltaRecord) -> str:
    if delta.failed:
        return RED
    if delta.is_warn:
        return YELLOW
    return ""


def render_compare_plain(comparison: Comparison, out: TextIO, color: bool = True):
    """One line per compared series, then the removed and added series."""
    for delta in comparison.deltas:
        line = (
            f"{delta.key.metric} {delta.key.labels} "
            f"(old: {delta.old}, new {delta.new}): change: {format_change(delta)}"
        )
        code = _color(delta) if color else ""
        if code:
            line = f"{code}{line}{RESET}"
        out.write(line + "\n")

    out.write("\n")
    for key in comparison.removed:
        out.write(f"Removed {key}\n")
    for key in comparison.added:
        out.write(f"Added {key}\n")


def render_compare_csv(comparison: Comparison, out: TextIO, labels: Optional[Dict[str, str]] = None):
    """CSV of compared series; removed and added series are not rows."""
    extra_names, extra_values = _sorted_extra(labels)
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(["metric", "labels", "old", "new", "percentChange"] + extra_names)
    for delta in comparison.deltas:
        change = "N/A" if delta.percent_change is None else f"{delta.percent_change:.4f}"
        writer.writerow(
            [delta.key.metric, delta.key.labels, f"{delta.old.value:.8f}", f"{delta.new.value:.8f}", change]
            + extra_values
        )


def render_comparison(fmt: str, comparison: Comparison, out: TextIO, labels: Optional[Dict[str, str]] = None,
                      color: bool = True):
    if fmt == "plain":
        render_compare_plain(comparison, out, color=color)
    elif fmt == "csv":
        render_compare_csv(comparison, out, labels)
    else:
        raise UnsupportedFormatError(fmt, "compare")
