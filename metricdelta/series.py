"""Data structures for metric families, samples and reduced series."""
from dataclasses import dataclass, field
from typing import Dict, List, Union


def canonical_labels(labels: Dict[str, str]) -> str:
    """Generate a stable key from sorted labels, e.g. ``a=1 b=2``."""
    items = sorted(labels.items())
    return " ".join(f"{k}={v}" for k, v in items).strip()


@dataclass
class CounterSample:
    labels: Dict[str, str]
    value: Union[float, str]


@dataclass
class GaugeSample:
    labels: Dict[str, str]
    value: Union[float, str]


@dataclass
class HistogramSample:
    """Histogram observation; only ``sum`` and ``count`` are retained."""
    labels: Dict[str, str]
    sum: Union[float, str]
    count: Union[float, str]


Sample = Union[CounterSample, GaugeSample, HistogramSample]


@dataclass
class Family:
    """A named group of samples sharing a declared type (COUNTER, GAUGE, ...)."""
    name: str
    type: str
    help: str = ""
    samples: List[Sample] = field(default_factory=list)


@dataclass(frozen=True, order=True)
class SeriesKey:
    """Identity of a reduced series: trimmed metric name plus canonical labels."""
    metric: str
    labels: str

    def __str__(self) -> str:
        return f"{self.metric} {self.labels}"


@dataclass(frozen=True)
class ReducedMetric:
    """One canonical value per series. ``sum``/``count`` are zero for scalars."""
    name: str
    labels: Dict[str, str]
    value: float
    family_name: str
    family_type: str
    sum: float = 0.0
    count: float = 0.0

    @property
    def is_histogram(self) -> bool:
        return self.count != 0

    def __str__(self) -> str:
        if self.is_histogram:
            return f"({self.sum:.2f}/{self.count:.0f}) {self.value:.2f}"
        return f"{self.value:.2f}"
