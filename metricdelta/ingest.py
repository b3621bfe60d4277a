"""Reading metric dumps into families.

Two encodings are understood:

* Prometheus text exposition format, parsed with ``prometheus_client``.
* prom2json output, a JSON list of families whose numbers are strings.

Either way the result is a list of :class:`~metricdelta.series.Family` objects
whose samples are already split into counter, gauge and histogram payloads, so
the reducer never inspects raw exposition sample names.
"""
from typing import Dict, List, Tuple
import json
import logging
import re

from prometheus_client.parser import text_string_to_metric_families

from metricdelta.errors import ParseError
from metricdelta.series import CounterSample, Family, GaugeSample, HistogramSample

logger = logging.getLogger(__name__)

TYPE_LINE = re.compile(r'^#\s+TYPE\s+(\S+)\s+(\S+)', re.MULTILINE)


def read_file(path: str) -> List[Family]:
    """Read a metrics dump from disk."""
    with open(path, 'r', encoding='utf-8') as f:
        content = f.read()

    families = parse_families(content)
    logger.info(f"Read {len(families)} metric families from {path}")
    return families


def parse_families(content: str) -> List[Family]:
    """Parse either encoding, detected from the first non-blank character."""
    if content.lstrip().startswith('['):
        return parse_json_families(content)
    return parse_text_families(content)


def parse_text_families(content: str) -> List[Family]:
    """Parse Prometheus text exposition format."""
    declared_names = {name for name, _ in TYPE_LINE.findall(content)}

    families = []
    try:
        for metric in text_string_to_metric_families(content):
            families.append(_family_from_text(metric, declared_names))
    except ValueError as e:
        raise ParseError(f"invalid exposition format: {e}") from e
    return families


def _family_from_text(metric, declared_names) -> Family:
    family_type = metric.type.upper()
    name = metric.name

    # prometheus_client drops the _total suffix from counter family names
    if family_type == "COUNTER" and name not in declared_names and f"{name}_total" in declared_names:
        name = f"{name}_total"

    family = Family(name=name, type=family_type, help=metric.documentation or "")

    if family_type == "COUNTER":
        for sample in metric.samples:
            if sample.name.endswith("_total"):
                family.samples.append(CounterSample(dict(sample.labels), sample.value))

    elif family_type == "GAUGE":
        for sample in metric.samples:
            if sample.name == metric.name:
                family.samples.append(GaugeSample(dict(sample.labels), sample.value))

    elif family_type == "HISTOGRAM":
        family.samples.extend(_histogram_samples(metric))

    return family


def _histogram_samples(metric) -> List[HistogramSample]:
    """Group ``_sum`` and ``_count`` samples by their labels (``le`` excluded)."""
    grouped: Dict[Tuple, Dict[str, object]] = {}
    for sample in metric.samples:
        labels = {k: v for k, v in sample.labels.items() if k != "le"}
        key = tuple(sorted(labels.items()))
        entry = grouped.setdefault(key, {"labels": labels})
        if sample.name == f"{metric.name}_sum":
            entry["sum"] = sample.value
        elif sample.name == f"{metric.name}_count":
            entry["count"] = sample.value

    samples = []
    for entry in grouped.values():
        if "sum" not in entry or "count" not in entry:
            raise ParseError(
                f"histogram {metric.name} {entry['labels']} is missing _sum or _count"
            )
        samples.append(HistogramSample(entry["labels"], entry["sum"], entry["count"]))
    return samples


def parse_json_families(content: str) -> List[Family]:
    """Parse prom2json output. Values stay strings until reduction."""
    try:
        raw_families = json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid prom2json document: {e}") from e

    if not isinstance(raw_families, list):
        raise ParseError("prom2json document must be a list of families")

    families = []
    for raw in raw_families:
        try:
            family = Family(
                name=raw["name"],
                type=str(raw.get("type", "")).upper(),
                help=raw.get("help", ""),
            )
            for m in raw.get("metrics") or []:
                labels = dict(m.get("labels") or {})
                if family.type == "HISTOGRAM":
                    family.samples.append(HistogramSample(labels, m.get("sum", ""), m.get("count", "")))
                elif family.type == "COUNTER":
                    family.samples.append(CounterSample(labels, m.get("value", "")))
                elif family.type == "GAUGE":
                    family.samples.append(GaugeSample(labels, m.get("value", "")))
        except (KeyError, TypeError, AttributeError) as e:
            raise ParseError(f"malformed prom2json family: {e}") from e
        families.append(family)
    return families
