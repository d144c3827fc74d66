"""Metric catalog, AlarmSpec, and CloudWatch alarm generation."""

from .alarm_spec import AlarmEntry, AlarmSpec, AlarmSpecSet, Comparison, load_alarm_specs
from .catalog import (
    Dimension,
    LogFilter,
    MetricCatalog,
    MetricDefinition,
    Statistic,
    load_catalog,
)
from .generator import AlarmGenerator, logical_id, resource_names

__all__ = [
    "AlarmEntry",
    "AlarmSpec",
    "AlarmSpecSet",
    "Comparison",
    "load_alarm_specs",
    "Dimension",
    "LogFilter",
    "MetricCatalog",
    "MetricDefinition",
    "Statistic",
    "load_catalog",
    "AlarmGenerator",
    "logical_id",
    "resource_names",
]
