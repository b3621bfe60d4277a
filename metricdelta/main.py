"""Command line entry point: reduce one metrics dump or compare two."""
import argparse
import logging
import sys
from typing import Optional, TextIO

from metricdelta.compare import compare_snapshots
from metricdelta.config import COMPARE_FORMATS, Config, build_options, build_thresholds, load_config
from metricdelta.errors import MetricDeltaError, ValidationError
from metricdelta.gcp_monitoring import GCPMonitoring, push_snapshot
from metricdelta.ingest import read_file
from metricdelta.reduce import build_snapshot
from metricdelta.render import render_comparison, render_snapshot

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(log_level: str, log_format: str = "text"):
    """Setup logging configuration. Logs go to stderr, rendered output to stdout."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    # json shares the text layout; records are not serialized as JSON objects
    fmt = LOG_FORMAT

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr
    )

    # Reduce noise from some libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)


class ArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with status 1 like every other failure."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def add_metric_flags(parser: argparse.ArgumentParser):
    """Flags shared by both commands. Unset flags fall back to the config file."""
    parser.add_argument("--metrics", help="comma separated list of metrics to include in the results")
    parser.add_argument(
        "--min-histogram-counts", dest="min_histogram_count", type=int,
        help="minimum number of histogram counts for the metric to show up (default: 5)"
    )
    parser.add_argument(
        "--trim-prefix-histogram-counts", dest="trim_prefix",
        help="prefix to automatically strip (default: rox_central_)"
    )
    parser.add_argument(
        "--format", choices=["plain", "csv", "influxdb", "gcp-monitoring"],
        help="format to output the metrics in (default: plain)"
    )
    parser.add_argument(
        "--labels",
        help="comma separated list of labels to include in ingest e.g. Test=ci-scale-test,ClusterFlavor=gke"
    )
    parser.add_argument("--project-id", dest="project_id", help="where to send the metrics e.g. stackrox-ci")
    parser.add_argument("--timestamp", type=int, help="seconds since the epoch UTC")
    parser.add_argument("--config", "-c", help="path to a YAML configuration file")
    parser.add_argument("--log-level", dest="log_level", help="log level (default: INFO)")


def build_parser() -> argparse.ArgumentParser:
    parser = ArgumentParser(
        prog="metricdelta",
        description="Reduce Prometheus metric dumps to one value per series and compare them"
    )
    subparsers = parser.add_subparsers(dest="command")

    single = subparsers.add_parser(
        "single",
        help="output all metrics of one file as key value pairs, averaging histograms"
    )
    single.add_argument("--file", help="file to parse")
    add_metric_flags(single)
    single.set_defaults(handler=run_single)

    compare = subparsers.add_parser(
        "compare",
        help="compare two metrics files and report the percent change per series"
    )
    compare.add_argument("--old-file", dest="old_file", help="old metrics file to parse")
    compare.add_argument("--new-file", dest="new_file", help="new metrics file to parse")
    compare.add_argument("--warn", type=float, help="warn when the absolute percent change exceeds this")
    compare.add_argument("--error", type=float, help="fail when the absolute percent change exceeds this")
    compare.add_argument(
        "--max-increase", dest="max_increase", type=float,
        help="fail when the percent change increases beyond this"
    )
    compare.add_argument("--no-color", dest="color", action="store_false", help="disable colored output")
    add_metric_flags(compare)
    compare.set_defaults(handler=run_compare)

    return parser


def _option_overrides(args) -> dict:
    return {
        "metrics": args.metrics,
        "min_histogram_count": args.min_histogram_count,
        "trim_prefix": args.trim_prefix,
        "format": args.format,
        "labels": args.labels,
        "project_id": args.project_id,
        "timestamp": args.timestamp,
    }


def run_single(args, config: Optional[Config], out: TextIO) -> int:
    """Reduce one file and render or push it."""
    if not args.file:
        raise ValidationError("file must be specified")
    options = build_options(_option_overrides(args), config)

    families = read_file(args.file)
    snapshot = build_snapshot(families, options)

    if options.format == "gcp-monitoring":
        with GCPMonitoring.connect(options.project_id) as backend:
            backend.create_descriptors(families)
            push_snapshot(snapshot, backend, options.labels, options.timestamp)
    else:
        render_snapshot(options.format, snapshot, out, options.labels, options.timestamp)
    return 0


def run_compare(args, config: Optional[Config], out: TextIO) -> int:
    """Compare two files. Returns 1 when an error or max-increase threshold is breached."""
    if not args.old_file:
        raise ValidationError("old-file must be specified")
    if not args.new_file:
        raise ValidationError("new-file must be specified")

    fmt = args.format or (config.options.get("format") if config else None) or "plain"
    if fmt not in COMPARE_FORMATS:
        raise ValidationError(f"compare supports --format {' or '.join(COMPARE_FORMATS)}, not {fmt}")

    options = build_options(_option_overrides(args), config)
    thresholds = build_thresholds(
        {"warn": args.warn, "error": args.error, "max_increase": args.max_increase}, config
    )
    if options.metrics:
        logger.info(f"Metrics: {', '.join(options.metrics)}")

    old = build_snapshot(read_file(args.old_file), options)
    new = build_snapshot(read_file(args.new_file), options)

    comparison = compare_snapshots(old, new, thresholds)
    render_comparison(options.format, comparison, out, options.labels, color=args.color)

    if comparison.failed:
        breached = sum(d.failed for d in comparison.deltas)
        logger.error(f"{breached} series breached the error threshold")
        return 1
    return 0


def main(argv=None, out: TextIO = None) -> int:
    """Main function."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "handler", None):
        parser.print_help(sys.stderr)
        return 1

    # Load configuration
    config = None
    if args.config:
        try:
            config = load_config(args.config)
        except (MetricDeltaError, FileNotFoundError) as e:
            print(f"Error loading configuration: {e}", file=sys.stderr)
            return 1

    log_level = args.log_level or (config.global_.log_level if config else "INFO")
    setup_logging(log_level, config.global_.log_format if config else "text")

    try:
        return args.handler(args, config, out or sys.stdout)
    except (MetricDeltaError, OSError) as e:
        logger.error(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
