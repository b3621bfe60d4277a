"""Configuration models using Pydantic for validation."""
from typing import Dict, List, Optional, Literal, Any
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator, model_validator
import os

from metricdelta.errors import ValidationError

OutputFormat = Literal["plain", "csv", "influxdb", "gcp-monitoring"]

COMPARE_FORMATS = ("plain", "csv")


class MetricOptions(BaseModel):
    """Options shared by the single and compare commands."""
    metrics: List[str] = Field(default_factory=list)  # empty means all families
    min_histogram_count: int = Field(5, ge=0)
    trim_prefix: str = "rox_central_"
    format: OutputFormat = "plain"
    labels: Dict[str, str] = Field(default_factory=dict)
    project_id: Optional[str] = None
    timestamp: int = 0  # seconds since the epoch UTC

    @field_validator('metrics', mode='before')
    @classmethod
    def split_metrics(cls, v):
        """Accept the comma separated form used on the command line."""
        if isinstance(v, str):
            return parse_metric_list(v)
        return v

    @field_validator('labels', mode='before')
    @classmethod
    def split_labels(cls, v):
        if isinstance(v, str):
            return parse_labels(v)
        return v

    @model_validator(mode='after')
    def validate_format_requirements(self):
        """Push formats need a destination and a point in time."""
        if self.format == "gcp-monitoring" and not self.project_id:
            raise ValueError("a --project-id must be specified for gcp-monitoring")
        if self.format in ("gcp-monitoring", "influxdb") and self.timestamp == 0:
            raise ValueError("a --timestamp must be specified for gcp-monitoring/influxdb ingest")
        return self

    @property
    def include_set(self) -> frozenset:
        return frozenset(self.metrics)


class Thresholds(BaseModel):
    """Percent-change thresholds for the compare command. Unset means disabled."""
    warn: Optional[float] = Field(None, ge=0)
    error: Optional[float] = Field(None, ge=0)
    max_increase: Optional[float] = None


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"


class Config(BaseModel):
    """Root configuration model."""
    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    options: Dict[str, Any] = Field(default_factory=dict)
    thresholds: Thresholds = Field(default_factory=Thresholds)

    class Config:
        populate_by_name = True

    @field_validator('options')
    @classmethod
    def validate_option_names(cls, v):
        """Reject keys that MetricOptions does not know about."""
        unknown = set(v) - set(MetricOptions.model_fields)
        if unknown:
            raise ValueError(f"Unknown options: {', '.join(sorted(unknown))}")
        return v


def parse_metric_list(value: str) -> List[str]:
    """Split ``a,b,c`` into metric names, ignoring empty entries."""
    return [m for m in value.split(",") if m]


def parse_labels(value: str) -> Dict[str, str]:
    """
    Parse ``Test=ci-scale-test,ClusterFlavor=gke`` into a dict.

    Pairs that do not split into exactly one name and one value, or whose
    trimmed name or value is empty, are ignored.
    """
    labels = {}
    for pair in value.split(","):
        parts = pair.split("=")
        if len(parts) != 2:
            continue
        name, label_value = parts[0].strip(), parts[1].strip()
        if name and label_value:
            labels[name] = label_value
    return labels


def build_options(overrides: Dict[str, Any], config: Optional[Config] = None) -> MetricOptions:
    """
    Merge config file options with command line overrides.

    Args:
        overrides: Values from the command line; ``None`` entries are ignored
        config: Loaded configuration, if any

    Returns:
        Validated MetricOptions
    """
    merged = dict(config.options) if config else {}
    merged.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return MetricOptions(**merged)
    except PydanticValidationError as e:
        raise ValidationError(_first_error(e)) from e


def build_thresholds(overrides: Dict[str, Any], config: Optional[Config] = None) -> Thresholds:
    """Merge config file thresholds with command line overrides."""
    merged = config.thresholds.model_dump() if config else {}
    merged.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return Thresholds(**merged)
    except PydanticValidationError as e:
        raise ValidationError(_first_error(e)) from e


def _first_error(e: PydanticValidationError) -> str:
    err = e.errors()[0]
    msg = err["msg"]
    # model validators report "Value error, <message>"
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {msg}" if loc else msg


def load_config(config_path: str) -> Config:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    if not isinstance(raw_config, dict):
        raise ValidationError(f"Configuration file must contain a mapping: {config_path}")

    # Apply environment variable overrides
    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config['global'] = raw_config.get('global') or {}
        raw_config['global']['log_level'] = env_log_level

    if env_project := os.getenv('METRICDELTA_PROJECT_ID'):
        raw_config['options'] = raw_config.get('options') or {}
        raw_config['options']['project_id'] = env_project

    try:
        return Config(**raw_config)
    except PydanticValidationError as e:
        raise ValidationError(f"Configuration validation failed: {_first_error(e)}") from e
