"""
CloudWatch alarm template generator.

For one template and its AlarmSpec entries, produces a standalone template
holding one ``AWS::CloudWatch::Alarm`` per entry (preceded by an
``AWS::Logs::MetricFilter`` for log-derived metrics). Output order is fixed
by the entry order, so generation is deterministic.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from ..config import AlarmConfig
from ..core.document import Document, Mapping, Node, Scalar, Sequence, Tagged, find, from_python
from ..core.errors import ErrorContext, UnknownMetric, make_validation_error
from ..core.intrinsics import interpolate
from .alarm_spec import AlarmEntry
from .catalog import MetricCatalog, MetricDefinition

logger = logging.getLogger(__name__)

TEMPLATE_FORMAT_VERSION = "2010-09-09"

# Properties that carry a resource's literal physical name
NAME_PROPERTIES = (
    "FunctionName",
    "QueueName",
    "TableName",
    "TopicName",
    "StateMachineName",
    "LogGroupName",
    "Name",
)


def logical_id(*parts: str) -> str:
    """
    Build a PascalCase alphanumeric logical ID.

    Example:
        >>> logical_id("auth", "FailedLogins", "Alarm")
        'AuthFailedLoginsAlarm'
    """
    words = []
    for part in parts:
        for word in re.split(r"[^0-9A-Za-z]+", part):
            if word:
                words.append(word[0].upper() + word[1:])
    return "".join(words)


def resource_names(document: Document) -> dict[str, str]:
    """Map logical IDs to the literal physical names declared in a template."""
    resources = find(document.root, ("Resources",))
    if not isinstance(resources, Mapping):
        return {}
    names: dict[str, str] = {}
    for resource_id, resource in resources.items():
        properties = resource.get("Properties") if isinstance(resource, Mapping) else None
        if not isinstance(properties, Mapping):
            continue
        for name_property in NAME_PROPERTIES:
            value = properties.get(name_property)
            if isinstance(value, Scalar) and isinstance(value.value, str):
                names[resource_id] = value.value
                break
    return names


class AlarmGenerator:
    """
    Generates alarm templates from a metric catalog.

    The catalog is only read, so one generator can serve several threads.
    """

    def __init__(self, catalog: MetricCatalog, config: AlarmConfig | None = None):
        self.catalog = catalog
        self.config = config or AlarmConfig()

    def validate(self, template_name: str, entries: Iterable[AlarmEntry]) -> None:
        """
        Check every entry's metric against the catalog.

        Raises:
            UnknownMetric: Naming the first unknown metric; the message lists all
        """
        unknown: list[str] = []
        first_index = None
        for index, entry in enumerate(entries):
            if entry.metric not in self.catalog and entry.metric not in unknown:
                if first_index is None:
                    first_index = index
                unknown.append(entry.metric)
        if not unknown:
            return
        raise UnknownMetric(
            f"template {template_name!r} references unknown metric(s): {', '.join(unknown)}",
            ErrorContext(key_path=(template_name, first_index or 0, "metric")),
            template=template_name,
            metric=unknown[0],
            metrics=unknown,
        )

    def generate(
        self,
        template_name: str,
        entries: Iterable[AlarmEntry],
        source: Document | None = None,
    ) -> Document:
        """
        Build the alarm template for one source template.

        Args:
            template_name: Name of the source template (``auth``)
            entries: AlarmSpec entries for that template, in order
            source: The loaded source template, used for physical names

        Raises:
            UnknownMetric: An entry names a metric missing from the catalog
            ValidationError: No entries, or two entries map to one logical ID
        """
        entries = list(entries)
        self.validate(template_name, entries)
        if not entries:
            raise make_validation_error(
                f"no alarms listed for template {template_name!r}", key_path=(template_name,)
            )

        base_context = {"template": template_name}
        if source is not None:
            base_context.update(resource_names(source))

        resources = Mapping()
        seen: dict[str, int] = {}
        for index, entry in enumerate(entries):
            metric = self.catalog[entry.metric]
            count = seen[entry.metric] = seen.get(entry.metric, 0) + 1
            stem = entry.metric if count == 1 else f"{entry.metric}{count}"
            context = {**base_context, **entry.parameters}

            filter_id = None
            if metric.log_filter is not None:
                filter_id = logical_id(template_name, stem, "MetricFilter")
                self._add(resources, filter_id, self._metric_filter(metric, context), template_name, index)

            alarm_id = logical_id(template_name, stem, "Alarm")
            alarm = self._alarm(template_name, stem, entry, metric, context, filter_id)
            self._add(resources, alarm_id, alarm, template_name, index)

        root = Mapping()
        root.insert(
            "AWSTemplateFormatVersion",
            Scalar(TEMPLATE_FORMAT_VERSION, text=TEMPLATE_FORMAT_VERSION),
        )
        root.insert("Description", Scalar(f"CloudWatch alarms for {template_name}"))
        topic = self.config.topic_parameter
        if topic:
            root.insert(
                "Parameters",
                from_python(
                    {topic: {"Type": "String", "Description": "SNS topic notified on alarm state changes"}}
                ),
            )
        root.insert("Resources", resources)
        logger.debug("Generated %d resource(s) for %s", len(resources), template_name)
        return Document(root=root)

    def _add(self, resources: Mapping, resource_id: str, resource: Node, template: str, index: int) -> None:
        if resource_id in resources:
            raise make_validation_error(
                f"logical ID {resource_id} generated twice", key_path=(template, index, "metric")
            )
        resources.insert(resource_id, resource)

    def _metric_filter(self, metric: MetricDefinition, context: dict[str, str]) -> Node:
        log_filter = metric.log_filter
        assert log_filter is not None
        transformation: dict[str, object] = {
            "MetricNamespace": metric.namespace,
            "MetricName": metric.metric_name,
            "MetricValue": log_filter.metric_value,
        }
        if log_filter.default_value is not None:
            transformation["DefaultValue"] = log_filter.default_value
        if metric.dimensions:
            transformation["Dimensions"] = [
                {"Key": dimension.name, "Value": interpolate(dimension.value, context)}
                for dimension in metric.dimensions
            ]
        return from_python(
            {
                "Type": "AWS::Logs::MetricFilter",
                "Properties": {
                    "LogGroupName": interpolate(log_filter.log_group, context),
                    "FilterPattern": log_filter.pattern,
                    "MetricTransformations": [transformation],
                },
            }
        )

    def _description(self, template: str, entry: AlarmEntry) -> str:
        if entry.description is not None:
            return entry.description
        try:
            return self.config.description.format(
                template=template,
                metric=entry.metric,
                comparison=entry.comparison.value,
                threshold=entry.threshold,
            )
        except (KeyError, IndexError) as exc:
            raise make_validation_error(
                f"alarm description template has an unknown field: {exc}",
                key_path=("alarms", "description"),
            ) from exc
        except ValueError as exc:
            raise make_validation_error(
                f"alarm description template is malformed: {exc}",
                key_path=("alarms", "description"),
            ) from exc

    def _alarm(
        self,
        template: str,
        stem: str,
        entry: AlarmEntry,
        metric: MetricDefinition,
        context: dict[str, str],
        filter_id: str | None,
    ) -> Node:
        statistic = entry.statistic or metric.statistic
        properties: dict[str, object] = {
            "AlarmName": f"{self.config.name_prefix}{template}-{stem}",
            "AlarmDescription": self._description(template, entry),
            "Namespace": metric.namespace,
            "MetricName": metric.metric_name,
        }
        if metric.dimensions:
            properties["Dimensions"] = [
                {"Name": dimension.name, "Value": interpolate(dimension.value, context)}
                for dimension in metric.dimensions
            ]
        properties["Statistic"] = statistic.cloudwatch_name
        properties["Period"] = entry.period_seconds
        properties["EvaluationPeriods"] = entry.evaluation_periods
        properties["Threshold"] = entry.threshold
        properties["ComparisonOperator"] = entry.comparison.cloudwatch_operator
        if self.config.treat_missing_data is not None:
            properties["TreatMissingData"] = self.config.treat_missing_data.value
        topic = self.config.topic_parameter
        if topic:
            properties["AlarmActions"] = Sequence([Tagged("Ref", Scalar(topic))])
            properties["OKActions"] = Sequence([Tagged("Ref", Scalar(topic))])

        resource: dict[str, object] = {"Type": "AWS::CloudWatch::Alarm"}
        if filter_id is not None:
            resource["DependsOn"] = filter_id
        resource["Properties"] = properties
        return from_python(resource)
