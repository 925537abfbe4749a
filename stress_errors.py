"""Exceptions shared by the stress test toolkit."""


class ConfigurationError(ValueError):
    """Invalid stages, scenario weights or thresholds. Raised before any VU starts."""


class MetricTypeError(TypeError):
    """A metric name was used with two different kinds (trend / counter / rate)."""
