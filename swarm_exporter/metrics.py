"""
Prometheus metric descriptors for Docker and swarm fleet health.

Descriptors are defined once at import time and shared by every collection
pass. They carry names, help text and label schemas but never values; each
pass turns them into sample-carrying gauge families.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from prometheus_client.core import GaugeMetricFamily


@dataclass(frozen=True)
class MetricDescriptor:
    """Static description of one exported gauge."""
    name: str
    documentation: str
    labels: Tuple[str, ...] = ()

    def full_name(self, namespace: str) -> str:
        return f"{namespace}_{self.name}" if namespace else self.name

    def family(self, namespace: str, value: Optional[float] = None) -> GaugeMetricFamily:
        """
        Create a gauge family for this descriptor.

        Args:
            namespace: Metric name prefix
            value: Sample value for unlabeled gauges; labeled gauges are
                filled with add_sample()

        Returns:
            GaugeMetricFamily, empty when no value is given
        """
        if self.labels:
            return GaugeMetricFamily(self.full_name(namespace), self.documentation,
                                     labels=list(self.labels))
        return GaugeMetricFamily(self.full_name(namespace), self.documentation, value=value)

    def add_sample(self, family: GaugeMetricFamily, label_values: Sequence[str], value: float):
        if len(label_values) != len(self.labels):
            raise ValueError(
                f"{self.name} expects labels {self.labels}, got {len(label_values)} values"
            )
        family.add_metric([str(v) for v in label_values], float(value))


# Container metrics
CONTAINERS_RUNNING = MetricDescriptor(
    'containers_running_total',
    'The number of containers running',
)

CONTAINERS_STOPPED = MetricDescriptor(
    'containers_stopped_total',
    'The number of containers stopped',
)

CONTAINERS_PAUSED = MetricDescriptor(
    'containers_paused_total',
    'The number of containers paused',
)

# Image metrics
IMAGES_COUNT = MetricDescriptor(
    'images_total',
    'The number of images',
)

# Swarm service and task metrics
SERVICES_COUNT = MetricDescriptor(
    'services_total',
    'The number of services',
)

TASKS_RUNNING = MetricDescriptor(
    'tasks_running_total',
    'The number of tasks running',
    ('service_name',),
)

TASKS_DESIRED = MetricDescriptor(
    'tasks_desired_total',
    'The number of tasks desired',
    ('service_name',),
)

# Swarm node metrics
NODES_COUNT = MetricDescriptor(
    'nodes_total',
    'The number of nodes',
)

NODES_ACTIVE = MetricDescriptor(
    'nodes_active_total',
    'The number of active nodes',
)

# Stacks have no API object; they are counted from service labels
STACKS_COUNT = MetricDescriptor(
    'stacks_total',
    'The number of stacks',
)

# Per-node running containers, derived from running tasks
CONTAINERS_RUNNING_ALL_NODES = MetricDescriptor(
    'containers_running_all_nodes_total',
    'The number of containers running across all nodes',
    ('node_id', 'node_hostname'),
)

TOTAL_CONTAINERS_ALL_NODES = MetricDescriptor(
    'containers_running_total_all_nodes',
    'The total number of containers running across all nodes combined',
)


ALL_DESCRIPTORS: Tuple[MetricDescriptor, ...] = (
    CONTAINERS_RUNNING,
    CONTAINERS_STOPPED,
    CONTAINERS_PAUSED,
    IMAGES_COUNT,
    SERVICES_COUNT,
    TASKS_RUNNING,
    TASKS_DESIRED,
    NODES_COUNT,
    NODES_ACTIVE,
    STACKS_COUNT,
    CONTAINERS_RUNNING_ALL_NODES,
    TOTAL_CONTAINERS_ALL_NODES,
)


def describe_families(namespace: str,
                      descriptors: Iterable[MetricDescriptor] = ALL_DESCRIPTORS):
    """Return empty gauge families for registration, one per descriptor"""
    return [
        GaugeMetricFamily(d.full_name(namespace), d.documentation, labels=list(d.labels))
        for d in descriptors
    ]
