"""
Prometheus collector for Docker and swarm fleet health.

Every scrape runs one collection pass against the Docker API: containers and
images first, then, when the daemon is a swarm member, services, tasks,
nodes and stacks. Gauge families are yielded as soon as they are complete,
so a failing call only drops the metric groups that depend on it.
"""

import logging
from typing import Callable, Dict, Iterable, Iterator, List, Optional

import requests
from docker.errors import DockerException
from prometheus_client.core import GaugeMetricFamily

from swarm_exporter import metrics
from swarm_exporter.docker_client import (
    ContainerSnapshot,
    ContainerState,
    NodeSnapshot,
    ScrapeDeadline,
    ScrapeTimeoutError,
    ServiceMode,
    ServiceSnapshot,
    SwarmDockerClient,
    SwarmSession,
    TaskSnapshot,
)

logger = logging.getLogger(__name__)

# Failures that skip a metric group instead of failing the scrape
FETCH_ERRORS = (DockerException, requests.exceptions.RequestException, ScrapeTimeoutError)


def classify_containers(containers: Iterable[ContainerSnapshot]) -> Dict[ContainerState, int]:
    """Count containers per exported state bucket"""
    counts = {state: 0 for state in ContainerState}
    for container in containers:
        if container.state is not None:
            counts[container.state] += 1
    return counts


def count_running_tasks(tasks: Iterable[TaskSnapshot]) -> int:
    return sum(1 for task in tasks if task.running)


def count_ready_nodes(nodes: Iterable[NodeSnapshot]) -> int:
    return sum(1 for node in nodes if node.ready)


def desired_replicas(service: ServiceSnapshot,
                     ready_nodes: Callable[[], Optional[int]]) -> Optional[int]:
    """
    Desired task count for a service.

    Replicated services report their declared target. Global services run
    one task per ready node, so the target is the live ready-node count;
    None when the node list is unavailable.

    Args:
        service: Service snapshot
        ready_nodes: Returns the ready-node count of the current pass, or None

    Returns:
        Desired replica count, or None if it cannot be determined
    """
    if service.mode is ServiceMode.REPLICATED:
        return service.replicas or 0
    if service.mode is ServiceMode.GLOBAL:
        return ready_nodes()
    return 0


def count_stacks(services: Iterable[ServiceSnapshot]) -> int:
    """Number of distinct stack namespaces; unlabeled services belong to no stack"""
    return len({s.stack_namespace for s in services if s.stack_namespace is not None})


def running_containers_per_node(nodes: Iterable[NodeSnapshot],
                                tasks: Iterable[TaskSnapshot]) -> Dict[str, int]:
    """
    Count running tasks per ready node.

    Tasks scheduled on nodes that are not ready or no longer listed are
    dropped.
    """
    per_node = {node.id: 0 for node in nodes if node.ready}
    for task in tasks:
        if task.running and task.node_id in per_node:
            per_node[task.node_id] += 1
    return per_node


class _PassNodes:
    """Node list fetched at most once per pass and shared between metric groups."""

    def __init__(self, session: SwarmSession):
        self._session = session
        self._fetched = False
        self._nodes: Optional[List[NodeSnapshot]] = None

    def get(self) -> Optional[List[NodeSnapshot]]:
        if not self._fetched:
            self._fetched = True
            try:
                self._nodes = self._session.list_nodes()
            except FETCH_ERRORS as e:
                logger.error(f"Error listing nodes: {e}")
        return self._nodes

    def ready_count(self) -> Optional[int]:
        nodes = self.get()
        return count_ready_nodes(nodes) if nodes is not None else None


class SwarmCollector:
    """Custom collector exposing Docker swarm fleet health gauges."""

    def __init__(self, docker_client: SwarmDockerClient, timeout: float = 10.0,
                 namespace: str = 'docker'):
        """
        Initialize the collector.

        Args:
            docker_client: Connected Docker client
            timeout: Time budget in seconds for one collection pass
            namespace: Prefix for every metric name
        """
        self.docker_client = docker_client
        self.timeout = timeout
        self.namespace = namespace
        self.descriptors = metrics.ALL_DESCRIPTORS

    def describe(self) -> List[GaugeMetricFamily]:
        """Metric families this collector can produce, without samples."""
        return metrics.describe_families(self.namespace, self.descriptors)

    def collect(self) -> Iterator[GaugeMetricFamily]:
        """Run one collection pass, yielding gauge families as they are ready."""
        deadline = ScrapeDeadline(self.timeout)
        try:
            with self.docker_client.session(deadline) as session:
                yield from self._collect_pass(session)
        except FETCH_ERRORS as e:
            logger.error(f"Error opening Docker session: {e}")
        except Exception as e:
            logger.error(f"Unexpected error collecting metrics: {e}", exc_info=True)
        finally:
            logger.debug(f"Collection pass finished in {deadline.elapsed():.2f} seconds")

    def _gauge(self, descriptor: metrics.MetricDescriptor, value=None) -> GaugeMetricFamily:
        return descriptor.family(self.namespace, value)

    def _collect_pass(self, session: SwarmSession) -> Iterator[GaugeMetricFamily]:
        try:
            containers = session.list_containers()
        except FETCH_ERRORS as e:
            logger.error(f"Error listing containers: {e}")
            return

        counts = classify_containers(containers)
        yield self._gauge(metrics.CONTAINERS_RUNNING, counts[ContainerState.RUNNING])
        yield self._gauge(metrics.CONTAINERS_STOPPED, counts[ContainerState.STOPPED])
        yield self._gauge(metrics.CONTAINERS_PAUSED, counts[ContainerState.PAUSED])

        try:
            yield self._gauge(metrics.IMAGES_COUNT, session.count_images())
        except FETCH_ERRORS as e:
            logger.error(f"Error listing images: {e}")

        try:
            swarm_active = session.swarm_active()
        except FETCH_ERRORS as e:
            logger.error(f"Error getting Docker info: {e}")
            return

        if not swarm_active:
            logger.debug("Docker is not in swarm mode, skipping swarm metrics")
            return

        yield from self._collect_swarm(session)

    def _collect_swarm(self, session: SwarmSession) -> Iterator[GaugeMetricFamily]:
        nodes = _PassNodes(session)

        try:
            services = session.list_services()
        except FETCH_ERRORS as e:
            logger.error(f"Error listing services: {e}")
            services = []
        else:
            yield self._gauge(metrics.SERVICES_COUNT, len(services))
            yield from self._collect_service_tasks(session, services, nodes)

        node_list = nodes.get()
        if node_list is not None:
            yield self._gauge(metrics.NODES_COUNT, len(node_list))
            yield self._gauge(metrics.NODES_ACTIVE, count_ready_nodes(node_list))

        yield self._gauge(metrics.STACKS_COUNT, count_stacks(services))

        if node_list:
            yield from self._collect_node_containers(session, node_list)

    def _collect_service_tasks(self, session: SwarmSession, services: List[ServiceSnapshot],
                               nodes: _PassNodes) -> Iterator[GaugeMetricFamily]:
        running_family = self._gauge(metrics.TASKS_RUNNING)
        desired_family = self._gauge(metrics.TASKS_DESIRED)

        for service in services:
            try:
                tasks = session.list_tasks(service.id)
            except FETCH_ERRORS as e:
                logger.error(f"Error listing tasks for service {service.name}: {e}")
                continue

            metrics.TASKS_RUNNING.add_sample(running_family, [service.name],
                                             count_running_tasks(tasks))

            desired = desired_replicas(service, nodes.ready_count)
            if desired is None:
                logger.warning(f"Reporting 0 desired tasks for global service {service.name}: "
                               "node list unavailable")
                desired = 0
            metrics.TASKS_DESIRED.add_sample(desired_family, [service.name], desired)

        if running_family.samples:
            yield running_family
        if desired_family.samples:
            yield desired_family

    def _collect_node_containers(self, session: SwarmSession,
                                 node_list: List[NodeSnapshot]) -> Iterator[GaugeMetricFamily]:
        try:
            tasks = session.list_tasks()
        except FETCH_ERRORS as e:
            logger.error(f"Error listing tasks: {e}")
            return

        per_node = running_containers_per_node(node_list, tasks)
        hostnames = {node.id: node.hostname for node in node_list}

        yield self._gauge(metrics.TOTAL_CONTAINERS_ALL_NODES, sum(per_node.values()))

        family = self._gauge(metrics.CONTAINERS_RUNNING_ALL_NODES)
        for node_id, count in per_node.items():
            metrics.CONTAINERS_RUNNING_ALL_NODES.add_sample(
                family, [node_id, hostnames[node_id]], count
            )
        if family.samples:
            yield family
