"""Tests for the output renderers."""
import csv
import io

import pytest

from metricdelta.compare import compare_snapshots
from metricdelta.config import Thresholds
from metricdelta.errors import UnsupportedFormatError
from metricdelta.render import (
    RED, RESET, YELLOW, influx_number, render_comparison, render_compare_csv, render_compare_plain, render_csv,
    render_influxdb, render_plain, render_snapshot,
)
from metricdelta.series import ReducedMetric, SeriesKey
from metricdelta.snapshot import Snapshot


def sample_snapshot():
    return Snapshot({
        SeriesKey("foo", "a=1"): ReducedMetric("foo", {"a": "1"}, 10.0, "rox_central_foo", "COUNTER"),
        SeriesKey("lat", "path=/v1"): ReducedMetric(
            "lat", {"path": "/v1"}, 12.5, "rox_central_lat", "HISTOGRAM", sum=100.0, count=8.0
        ),
        SeriesKey("cpu", "host=my host"): ReducedMetric("cpu", {"host": "my host"}, 0.123456789, "cpu", "GAUGE"),
    })


def render(fn, *args, **kwargs):
    out = io.StringIO()
    fn(*args, out, **kwargs)
    return out.getvalue()


def test_plain_fixed_width():
    lines = render(render_plain, sample_snapshot()).splitlines()

    assert lines == [
        f"{'cpu host=my host':<80} 0",
        f"{'foo a=1':<80} 10",
        f"{'lat path=/v1':<80} (100/8) 12.500",
    ]
    assert "\033[" not in "".join(lines)


def test_csv_with_extra_labels():
    text = render(render_csv, sample_snapshot(), labels={"Test": "ci", "ClusterFlavor": "gke"})
    rows = list(csv.reader(io.StringIO(text)))

    assert rows[0] == ["metric", "labels", "value", "ClusterFlavor", "Test"]
    assert rows[1] == ["cpu", "host=my host", "0.12345679", "gke", "ci"]
    assert rows[2] == ["foo", "a=1", "10.00000000", "gke", "ci"]
    assert len(rows) == 4


def test_csv_values_recover_snapshot():
    snapshot = sample_snapshot()
    rows = list(csv.DictReader(io.StringIO(render(render_csv, snapshot))))

    for row in rows:
        key = SeriesKey(row["metric"], row["labels"])
        assert float(row["value"]) == pytest.approx(snapshot[key].value, abs=1e-8)


def test_influxdb_line_protocol():
    text = render(render_influxdb, sample_snapshot(), timestamp=1700000000, labels={"Test": "ci scale"})

    assert text.splitlines() == [
        "cpu,host=my\\ host,Test=ci\\ scale value=0.123456789 1700000000",
        "foo,a=1,Test=ci\\ scale value=10 1700000000",
        "lat,path=/v1,Test=ci\\ scale value=12.5 1700000000",
    ]


@pytest.mark.parametrize("value,expected", [
    (10.0, "10"),
    (0.5, "0.5"),
    (0.0, "0"),
    (-3.25, "-3.25"),
    (100000.0, "100000"),
    (1500000.0, "1.5e+06"),
    (0.00001, "1e-05"),
    (0.0001, "0.0001"),
])
def test_influx_number(value, expected):
    assert influx_number(value) == expected


def test_render_snapshot_unknown_format():
    with pytest.raises(UnsupportedFormatError):
        render_snapshot("xml", sample_snapshot(), io.StringIO())


def comparison(thresholds):
    key = SeriesKey("m", "l=1")
    zero = SeriesKey("z", "")
    old = Snapshot({
        key: ReducedMetric("m", {}, 100.0, "m", "GAUGE"),
        zero: ReducedMetric("z", {}, 0.0, "z", "GAUGE"),
        SeriesKey("gone", "a=b"): ReducedMetric("gone", {}, 1.0, "gone", "GAUGE"),
    })
    new = Snapshot({
        key: ReducedMetric("m", {}, 150.0, "m", "GAUGE"),
        zero: ReducedMetric("z", {}, 4.0, "z", "GAUGE"),
        SeriesKey("fresh", ""): ReducedMetric("fresh", {}, 1.0, "fresh", "GAUGE"),
    })
    return compare_snapshots(old, new, thresholds)


def test_compare_plain_uncoloured():
    text = render(render_compare_plain, comparison(Thresholds()))

    assert text.splitlines() == [
        "m l=1 (old: 100.00, new 150.00): change: 50.0000%",
        "z  (old: 0.00, new 4.00): change: N/A",
        "",
        "Removed gone a=b",
        "Added fresh ",
    ]


def test_compare_plain_warn_is_yellow():
    first = render(render_compare_plain, comparison(Thresholds(warn=40))).splitlines()[0]

    assert first.startswith(YELLOW)
    assert first.endswith(RESET)


def test_compare_plain_error_is_red():
    first = render(render_compare_plain, comparison(Thresholds(warn=40, error=45))).splitlines()[0]

    assert first.startswith(RED)


def test_compare_plain_color_disabled():
    text = render(render_compare_plain, comparison(Thresholds(error=1)), color=False)

    assert "\033[" not in text


def test_compare_plain_histogram_values():
    key = SeriesKey("lat", "")
    old = Snapshot({key: ReducedMetric("lat", {}, 12.5, "lat", "HISTOGRAM", sum=100.0, count=8.0)})
    new = Snapshot({key: ReducedMetric("lat", {}, 10.0, "lat", "HISTOGRAM", sum=100.0, count=10.0)})

    text = render(render_compare_plain, compare_snapshots(old, new))

    assert text.splitlines()[0] == "lat  (old: (100.00/8) 12.50, new (100.00/10) 10.00): change: -20.0000%"


def test_compare_csv():
    text = render(render_compare_csv, comparison(Thresholds()), labels={"Test": "ci"})
    rows = list(csv.reader(io.StringIO(text)))

    assert rows == [
        ["metric", "labels", "old", "new", "percentChange", "Test"],
        ["m", "l=1", "100.00000000", "150.00000000", "50.0000", "ci"],
        ["z", "", "0.00000000", "4.00000000", "N/A", "ci"],
    ]


def test_render_comparison_rejects_push_formats():
    with pytest.raises(UnsupportedFormatError):
        render_comparison("influxdb", comparison(Thresholds()), io.StringIO())


def test_plain_non_finite_histogram_count():
    nan = float("nan")
    snapshot = Snapshot({
        SeriesKey("h", ""): ReducedMetric("h", {}, nan, "h", "HISTOGRAM", sum=3.0, count=nan),
        SeriesKey("i", ""): ReducedMetric("i", {}, 0.0, "i", "HISTOGRAM", sum=0.0, count=float("inf")),
    })

    assert render(render_plain, snapshot).splitlines() == [
        f"{'h ':<80} (3/nan) nan",
        f"{'i ':<80} (0/inf) 0.000",
    ]


def test_compare_plain_nan_histogram_count():
    key = SeriesKey("h", "")
    old = Snapshot({key: ReducedMetric("h", {}, 2.0, "h", "HISTOGRAM", sum=20.0, count=10.0)})
    new = Snapshot({key: ReducedMetric("h", {}, float("nan"), "h", "HISTOGRAM", sum=3.0, count=float("nan"))})

    first = render(render_compare_plain, compare_snapshots(old, new)).splitlines()[0]

    assert first == "h  (old: (20.00/10) 2.00, new (3.00/nan) nan): change: nan%"
