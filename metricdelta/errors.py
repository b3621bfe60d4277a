"""Error taxonomy for metric reduction, comparison and output."""


class MetricDeltaError(Exception):
    """Base class for all errors reported by the tool."""


class ValidationError(MetricDeltaError):
    """Missing or inconsistent options, raised before any file is read."""


class ParseError(MetricDeltaError):
    """A metrics file or one of its values could not be interpreted."""


class UnsupportedFormatError(MetricDeltaError):
    """The requested output format has no renderer."""

    def __init__(self, fmt: str, mode: str = "single"):
        super().__init__(f"unsupported output format '{fmt}' for {mode} mode")
        self.format = fmt
        self.mode = mode


class BackendError(MetricDeltaError):
    """The monitoring backend rejected descriptors or time-series writes."""
