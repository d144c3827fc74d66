"""
Metric catalog.

Maps logical metric names (``FailedLogins``) to the provider's native metric
identity::

    FailedLogins:
      namespace: Security
      metric_name: FailedLoginCount
      dimensions:
        Service: ${template}
      statistic: Sum

Entries whose values must first be extracted from logs carry a
``log_filter`` block; the alarm generator emits a metric filter for them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from collections.abc import Mapping as MappingABC
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..core.document import to_python
from ..core.errors import UnknownMetric, from_pydantic_error, make_validation_error
from ..core.loader import load_document

logger = logging.getLogger(__name__)


class Statistic(StrEnum):
    """Alarm statistic. ``Max``/``Min`` are spelled out for CloudWatch."""

    SUM = "Sum"
    AVERAGE = "Average"
    MAX = "Max"
    MIN = "Min"
    SAMPLE_COUNT = "SampleCount"

    @classmethod
    def _missing_(cls, value: object) -> Statistic | None:
        if value == "Maximum":
            return cls.MAX
        if value == "Minimum":
            return cls.MIN
        return None

    @property
    def cloudwatch_name(self) -> str:
        if self is Statistic.MAX:
            return "Maximum"
        if self is Statistic.MIN:
            return "Minimum"
        return self.value


class Dimension(BaseModel):
    """One metric dimension; ``value`` may contain ``${...}`` placeholders."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    value: str


class LogFilter(BaseModel):
    """Metric filter extracting a log-derived metric."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pattern: str
    log_group: str = Field(min_length=1)
    metric_value: str = "1"
    default_value: float | None = None


class MetricDefinition(BaseModel):
    """A catalog entry."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    namespace: str = Field(min_length=1)
    metric_name: str = Field(min_length=1)
    dimensions: tuple[Dimension, ...] = ()
    statistic: Statistic
    log_filter: LogFilter | None = None

    @field_validator("dimensions", mode="before")
    @classmethod
    def _dimensions_from_mapping(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return tuple({"name": key, "value": str(item)} for key, item in value.items())
        return value

    @property
    def log_derived(self) -> bool:
        return self.log_filter is not None


class MetricCatalog(MappingABC[str, MetricDefinition]):
    """
    Read-only mapping of metric name to definition.

    Built once and passed explicitly to each generation call; safe to share
    between worker threads.
    """

    def __init__(self, definitions: Iterable[MetricDefinition], source: Path | None = None):
        self.source = source
        self._definitions: dict[str, MetricDefinition] = {}
        for definition in definitions:
            if definition.name in self._definitions:
                raise make_validation_error(
                    f"duplicate metric {definition.name!r}", source, (definition.name,)
                )
            self._definitions[definition.name] = definition

    def __getitem__(self, name: str) -> MetricDefinition:
        return self._definitions[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def require(self, name: str, *, template: str) -> MetricDefinition:
        """Look up a metric, raising UnknownMetric when absent."""
        try:
            return self._definitions[name]
        except KeyError:
            raise UnknownMetric(
                f"template {template!r} references unknown metric {name!r}",
                template=template,
                metric=name,
            ) from None

    @classmethod
    def from_dict(cls, data: Any, source: Path | None = None) -> MetricCatalog:
        """
        Build a catalog from parsed data.

        Raises:
            ValidationError: If the data does not match the catalog schema
        """
        if not isinstance(data, dict):
            raise make_validation_error("metric catalog must be a mapping of metric names", source)
        definitions = []
        for name, body in data.items():
            if not isinstance(body, dict):
                raise make_validation_error(f"metric {name!r} must be a mapping", source, (name,))
            if "name" in body:
                raise make_validation_error(
                    f"metric {name!r}: 'name' is taken from the catalog key", source, (name, "name")
                )
            try:
                definitions.append(MetricDefinition.model_validate({"name": name, **body}))
            except PydanticValidationError as exc:
                raise from_pydantic_error(exc, source, (name,)) from exc
        return cls(definitions, source=source)


def load_catalog(path: Path | str) -> MetricCatalog:
    """
    Load a metric catalog from YAML or JSON.

    Raises:
        ReferenceNotFound: If the file does not exist
        ParseError: If the file cannot be parsed
        ValidationError: If an entry is invalid
    """
    document = load_document(path)
    catalog = MetricCatalog.from_dict(to_python(document.root), source=document.source)
    logger.debug("Loaded %d metric(s) from %s", len(catalog), document.source)
    return catalog
