"""Tests for configuration loading and option validation."""
import pytest

from metricdelta.config import (
    Config, MetricOptions, build_options, build_thresholds, load_config, parse_labels, parse_metric_list,
)
from metricdelta.errors import ValidationError


def test_defaults():
    options = MetricOptions()

    assert options.min_histogram_count == 5
    assert options.trim_prefix == "rox_central_"
    assert options.format == "plain"
    assert options.include_set == frozenset()


def test_parse_labels():
    assert parse_labels("Test=ci-scale-test, ClusterFlavor = gke") == {
        "Test": "ci-scale-test",
        "ClusterFlavor": "gke",
    }


@pytest.mark.parametrize("raw", ["", "novalue", "a=b=c", "=x", "x=", " = "])
def test_parse_labels_ignores_bad_pairs(raw):
    assert parse_labels(raw) == {}


def test_parse_metric_list():
    assert parse_metric_list("a,b") == ["a", "b"]
    assert parse_metric_list("") == []


def test_influxdb_requires_timestamp():
    with pytest.raises(ValidationError, match="timestamp"):
        build_options({"format": "influxdb"})

    assert build_options({"format": "influxdb", "timestamp": 1700000000}).timestamp == 1700000000


def test_gcp_monitoring_requires_project_and_timestamp():
    with pytest.raises(ValidationError, match="project-id"):
        build_options({"format": "gcp-monitoring", "timestamp": 1})
    with pytest.raises(ValidationError, match="timestamp"):
        build_options({"format": "gcp-monitoring", "project_id": "stackrox-ci"})

    options = build_options({"format": "gcp-monitoring", "project_id": "stackrox-ci", "timestamp": 1})
    assert options.project_id == "stackrox-ci"


def test_negative_histogram_count_rejected():
    with pytest.raises(ValidationError):
        build_options({"min_histogram_count": -1})


def test_command_line_overrides_config():
    config = Config(options={"trim_prefix": "app_", "min_histogram_count": 1, "labels": "Test=cfg"})

    options = build_options({"trim_prefix": None, "min_histogram_count": 7, "labels": None}, config)

    assert options.trim_prefix == "app_"
    assert options.min_histogram_count == 7
    assert options.labels == {"Test": "cfg"}


def test_thresholds_merge():
    config = Config(thresholds={"warn": 10, "error": 20})

    thresholds = build_thresholds({"warn": None, "error": 30, "max_increase": None}, config)

    assert thresholds.warn == 10
    assert thresholds.error == 30
    assert thresholds.max_increase is None


def test_load_config(tmp_path, monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("METRICDELTA_PROJECT_ID", raising=False)
    path = tmp_path / "metricdelta.yaml"
    path.write_text(
        "global:\n"
        "  log_level: DEBUG\n"
        "options:\n"
        "  trim_prefix: app_\n"
        "  metrics: [app_a, app_b]\n"
        "thresholds:\n"
        "  warn: 5\n"
        "  max_increase: 25\n"
    )

    config = load_config(str(path))

    assert config.global_.log_level == "DEBUG"
    assert config.options["metrics"] == ["app_a", "app_b"]
    assert config.thresholds.warn == 5
    assert config.thresholds.max_increase == 25


def test_load_config_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("METRICDELTA_PROJECT_ID", "from-env")
    path = tmp_path / "empty.yaml"
    path.write_text("")

    config = load_config(str(path))

    assert config.global_.log_level == "WARNING"
    assert config.options["project_id"] == "from-env"


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_load_config_unknown_option(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("options:\n  colour: blue\n")

    with pytest.raises(ValidationError, match="colour"):
        load_config(str(path))
