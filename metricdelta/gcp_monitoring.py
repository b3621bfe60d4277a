"""Google Cloud Monitoring push for reduced snapshots."""
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
import logging
import math
import time

from google.api import label_pb2 as ga_label
from google.api import metric_pb2 as ga_metric
from google.api_core.exceptions import GoogleAPIError
from google.cloud import monitoring_v3
from prometheus_client import CollectorRegistry, Counter

from metricdelta.errors import BackendError
from metricdelta.series import Family, ReducedMetric
from metricdelta.snapshot import Snapshot

logger = logging.getLogger(__name__)

METRIC_TYPE_PREFIX = "custom.googleapis.com/"
REQUEST_TIMEOUT_S = 10.0

COMMON_LABELS = [
    ("Test", "The test performed. e.g. ci-scale"),
    ("ClusterFlavor", "The cluster flavor used. e.g. gke-default"),
]


def linear_backoff(attempt: int) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    return 10.0 * attempt


@dataclass
class RetryPolicy:
    """Retry schedule for backend calls. ``sleep`` is injectable for tests."""
    max_attempts: int = 10
    backoff: Callable[[int], float] = linear_backoff
    sleep: Callable[[float], None] = field(default=time.sleep)

    def call(self, fn: Callable, description: str, on_retry: Optional[Callable[[], None]] = None):
        """
        Invoke ``fn`` until it succeeds or the attempts run out.

        Raises:
            BackendError: every attempt raised a GoogleAPIError
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn()
            except GoogleAPIError as e:
                if attempt >= self.max_attempts:
                    raise BackendError(
                        f"could not {description} after {attempt} attempts: {e}"
                    ) from e
                delay = self.backoff(attempt)
                logger.warning(f"Could not {description}: {e}, trying again in {delay:g}s")
                if on_retry:
                    on_retry()
                self.sleep(delay)


class PushMetrics:
    """Self-monitoring counters for one push run."""

    def __init__(self, registry=None):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.writes_total = Counter(
            "metricdelta_push_writes",
            "Number of time-series writes attempted",
            registry=registry
        )
        self.write_failures_total = Counter(
            "metricdelta_push_write_failures",
            "Number of time-series writes that failed after retries",
            registry=registry
        )
        self.retries_total = Counter(
            "metricdelta_push_retries",
            "Number of retried backend calls",
            registry=registry
        )

    def record_write(self):
        self.writes_total.inc()

    def record_failure(self):
        self.write_failures_total.inc()

    def record_retry(self):
        self.retries_total.inc()

    def _value(self, name: str) -> float:
        return self.registry.get_sample_value(name) or 0.0

    @property
    def attempted(self) -> int:
        return int(self._value("metricdelta_push_writes_total"))

    @property
    def failed(self) -> int:
        return int(self._value("metricdelta_push_write_failures_total"))

    @property
    def retries(self) -> int:
        return int(self._value("metricdelta_push_retries_total"))

    def failure_ratio_exceeded(self) -> bool:
        """True when more than 5% of attempted writes failed."""
        # failed / attempted > 0.05, kept in integers
        return self.attempted < 20 * self.failed


def value_type_for(family_type: str):
    if family_type == "HISTOGRAM":
        return ga_metric.MetricDescriptor.ValueType.DOUBLE
    if family_type in ("COUNTER", "GAUGE"):
        return ga_metric.MetricDescriptor.ValueType.INT64
    raise BackendError(f"unexpected family type: {family_type}")


def display_name(family_name: str) -> str:
    """``rox_central_foo`` -> ``Rox Central Foo``."""
    return " ".join(w[:1].upper() + w[1:] for w in family_name.replace("_", " ").split(" "))


def unit_for(family_name: str) -> str:
    # Durations are exported in milliseconds; nothing else carries a unit
    return "ms" if family_name.endswith("_duration") else "1"


class GCPMonitoring:
    """Thin wrapper over ``MetricServiceClient`` with per-call retries."""

    def __init__(self, project_id: str, client, policy: Optional[RetryPolicy] = None,
                 push_metrics: Optional[PushMetrics] = None):
        self.project_id = project_id
        self.client = client
        self.policy = policy or RetryPolicy()
        self.push_metrics = push_metrics or PushMetrics()

    @classmethod
    def connect(cls, project_id: str, policy: Optional[RetryPolicy] = None) -> "GCPMonitoring":
        """Create a client using application default credentials."""
        client = monitoring_v3.MetricServiceClient()
        logger.info(f"Connected to Cloud Monitoring for project {project_id}")
        return cls(project_id, client, policy)

    @property
    def project_name(self) -> str:
        return f"projects/{self.project_id}"

    def close(self):
        transport = getattr(self.client, "transport", None)
        if transport is not None:
            transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def build_descriptor(self, family: Family):
        """Gauge descriptor with the common labels plus every label seen in the family."""
        descriptor = ga_metric.MetricDescriptor()
        descriptor.type = METRIC_TYPE_PREFIX + family.name
        descriptor.display_name = display_name(family.name)
        descriptor.description = family.help
        descriptor.unit = unit_for(family.name)
        descriptor.metric_kind = ga_metric.MetricDescriptor.MetricKind.GAUGE
        descriptor.value_type = value_type_for(family.type)

        for key, description in COMMON_LABELS:
            descriptor.labels.add(
                key=key,
                value_type=ga_label.LabelDescriptor.ValueType.STRING,
                description=description,
            )

        seen = set()
        for sample in family.samples:
            for label_name in sample.labels:
                if label_name in seen:
                    continue
                seen.add(label_name)
                descriptor.labels.add(key=label_name, value_type=ga_label.LabelDescriptor.ValueType.STRING)
        return descriptor

    def create_descriptor(self, family: Family):
        descriptor = self.build_descriptor(family)
        created = self.policy.call(
            lambda: self.client.create_metric_descriptor(
                name=self.project_name, metric_descriptor=descriptor, timeout=REQUEST_TIMEOUT_S
            ),
            f"create metric descriptor {descriptor.type}",
            on_retry=self.push_metrics.record_retry,
        )
        logger.debug(f"Created metric descriptor: {descriptor.type}")
        return created

    def create_descriptors(self, families: List[Family]) -> int:
        """Create descriptors for every counter, gauge and histogram family."""
        created = 0
        for family in families:
            if family.type == "SUMMARY":
                continue
            if family.type not in ("COUNTER", "GAUGE", "HISTOGRAM"):
                logger.warning(f"Skipping descriptor for {family.name}: unexpected type {family.type}")
                continue
            self.create_descriptor(family)
            created += 1
        logger.info(f"Created {created} metric descriptors")
        return created

    def build_time_series(self, metric: ReducedMetric, extra_labels: Dict[str, str], timestamp: int):
        series = monitoring_v3.TimeSeries()
        series.metric.type = METRIC_TYPE_PREFIX + metric.family_name

        # series labels win over operator supplied ones
        labels = dict(extra_labels)
        labels.update(metric.labels)
        for key, value in labels.items():
            series.metric.labels[key] = value

        series.resource.type = "global"

        if value_type_for(metric.family_type) == ga_metric.MetricDescriptor.ValueType.DOUBLE:
            value = {"double_value": metric.value}
        else:
            if not math.isfinite(metric.value):
                raise BackendError(f"cannot write {metric.value} as an INT64 point for {metric.family_name}")
            value = {"int64_value": int(metric.value)}

        interval = monitoring_v3.TimeInterval({"end_time": {"seconds": timestamp, "nanos": 0}})
        series.points = [monitoring_v3.Point({"interval": interval, "value": value})]
        return series

    def write_value(self, metric: ReducedMetric, extra_labels: Dict[str, str], timestamp: int):
        """Write one point, retrying per the policy. Raises BackendError when out of attempts."""
        series = self.build_time_series(metric, extra_labels, timestamp)
        self.policy.call(
            lambda: self.client.create_time_series(
                name=self.project_name, time_series=[series], timeout=REQUEST_TIMEOUT_S
            ),
            f"write time series value {series.metric.type}",
            on_retry=self.push_metrics.record_retry,
        )


def push_snapshot(snapshot: Snapshot, backend: GCPMonitoring, extra_labels: Dict[str, str],
                  timestamp: int) -> PushMetrics:
    """
    Write every series of ``snapshot`` to the backend.

    Individual failures are logged and counted. The run fails only when more
    than 5% of the attempted writes failed.

    Raises:
        BackendError: the failure ratio exceeded 5%
    """
    stats = backend.push_metrics
    logger.info(f"Writing {len(snapshot)} series to {backend.project_name}")

    for key in snapshot.sorted_keys():
        stats.record_write()
        try:
            backend.write_value(snapshot[key], extra_labels, timestamp)
        except BackendError as e:
            logger.error(f"Error writing metric {key}: {e}")
            stats.record_failure()

    if stats.failure_ratio_exceeded():
        raise BackendError(
            f"More than 5% of Cloud Monitoring requests failed "
            f"({stats.failed}/{stats.attempted})"
        )

    logger.info(f"Wrote {stats.attempted - stats.failed}/{stats.attempted} series ({stats.retries} retries)")
    return stats
