"""
Docker API Client for collecting swarm fleet state.

This module wraps the Docker SDK and turns its responses into small,
scrape-scoped snapshots. Every call made during a scrape is bounded by the
remaining time of a single per-pass deadline.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

import docker
import requests
from docker.errors import DockerException

logger = logging.getLogger(__name__)

STACK_NAMESPACE_LABEL = 'com.docker.stack.namespace'


class ScrapeTimeoutError(Exception):
    """Raised when a collection pass runs out of its time budget."""


class ContainerState(Enum):
    RUNNING = 'running'
    STOPPED = 'stopped'
    PAUSED = 'paused'


# Docker container states mapped onto the three exported buckets.
# States missing here (restarting, removing) are not counted.
_CONTAINER_STATES = {
    'running': ContainerState.RUNNING,
    'exited': ContainerState.STOPPED,
    'created': ContainerState.STOPPED,
    'dead': ContainerState.STOPPED,
    'paused': ContainerState.PAUSED,
}


class ServiceMode(Enum):
    REPLICATED = 'replicated'
    GLOBAL = 'global'
    OTHER = 'other'


@dataclass(frozen=True)
class ContainerSnapshot:
    state: Optional[ContainerState]


@dataclass(frozen=True)
class ServiceSnapshot:
    id: str
    name: str
    mode: ServiceMode
    replicas: Optional[int] = None
    stack_namespace: Optional[str] = None


@dataclass(frozen=True)
class TaskSnapshot:
    service_id: str
    node_id: str
    running: bool


@dataclass(frozen=True)
class NodeSnapshot:
    id: str
    hostname: str
    ready: bool


def container_from_state(state: Optional[str]) -> ContainerSnapshot:
    return ContainerSnapshot(state=_CONTAINER_STATES.get((state or '').lower()))


def service_from_attrs(attrs: Dict[str, Any]) -> ServiceSnapshot:
    """
    Build a service snapshot from a service object as returned by the API.

    Args:
        attrs: Raw service attributes (ID, Spec.Name, Spec.Mode, Spec.Labels)

    Returns:
        ServiceSnapshot
    """
    spec = attrs.get('Spec') or {}
    mode_spec = spec.get('Mode') or {}
    labels = spec.get('Labels') or {}

    replicas = None
    if 'Replicated' in mode_spec:
        mode = ServiceMode.REPLICATED
        replicas = (mode_spec.get('Replicated') or {}).get('Replicas')
    elif 'Global' in mode_spec:
        mode = ServiceMode.GLOBAL
    else:
        # Swarm jobs (ReplicatedJob, GlobalJob) have no steady replica target
        mode = ServiceMode.OTHER

    return ServiceSnapshot(
        id=attrs.get('ID', ''),
        name=spec.get('Name', ''),
        mode=mode,
        replicas=int(replicas) if replicas is not None else None,
        stack_namespace=labels.get(STACK_NAMESPACE_LABEL),
    )


def task_from_attrs(attrs: Dict[str, Any]) -> TaskSnapshot:
    status = attrs.get('Status') or {}
    return TaskSnapshot(
        service_id=attrs.get('ServiceID', ''),
        node_id=attrs.get('NodeID', ''),
        running=status.get('State') == 'running',
    )


def node_from_attrs(attrs: Dict[str, Any]) -> NodeSnapshot:
    description = attrs.get('Description') or {}
    status = attrs.get('Status') or {}
    return NodeSnapshot(
        id=attrs.get('ID', ''),
        hostname=description.get('Hostname', ''),
        ready=status.get('State') == 'ready',
    )


class ScrapeDeadline:
    """Time budget shared by every API call of one collection pass."""

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self._started = clock()

    def elapsed(self) -> float:
        return self._clock() - self._started

    def remaining(self) -> float:
        return max(0.0, self.timeout - self.elapsed())

    def check(self, operation: str) -> float:
        """
        Return the time left for the next call.

        Raises:
            ScrapeTimeoutError: If the budget is already exhausted
        """
        remaining = self.remaining()
        if remaining <= 0:
            raise ScrapeTimeoutError(
                f"Scrape deadline of {self.timeout:.1f}s exceeded before {operation}"
            )
        return remaining


class SwarmSession:
    """
    Pass-scoped view of the Docker API.

    Owns its own DockerClient so the per-request timeout can follow the
    pass deadline without affecting concurrent scrapes.
    """

    def __init__(self, client: docker.DockerClient, deadline: ScrapeDeadline):
        self.client = client
        self.deadline = deadline

    def _call(self, operation: str, fn: Callable, *args, **kwargs):
        self.client.api.timeout = self.deadline.check(operation)
        try:
            return fn(*args, **kwargs)
        except requests.exceptions.Timeout as e:
            raise ScrapeTimeoutError(f"{operation} timed out: {e}") from e

    def list_containers(self) -> List[ContainerSnapshot]:
        containers = self._call('container list', self.client.api.containers, all=True)
        logger.debug(f"Found {len(containers)} containers")
        return [container_from_state(c.get('State')) for c in containers]

    def count_images(self) -> int:
        images = self._call('image list', self.client.api.images, quiet=True)
        return len(images)

    def swarm_active(self) -> bool:
        info = self._call('daemon info', self.client.info)
        swarm = info.get('Swarm') or {}
        return swarm.get('LocalNodeState') == 'active'

    def list_services(self) -> List[ServiceSnapshot]:
        services = self._call('service list', self.client.api.services)
        return [service_from_attrs(s) for s in services]

    def list_tasks(self, service_id: Optional[str] = None) -> List[TaskSnapshot]:
        filters = {'service': service_id} if service_id else None
        operation = f"task list for service {service_id}" if service_id else 'task list'
        tasks = self._call(operation, self.client.api.tasks, filters=filters)
        return [task_from_attrs(t) for t in tasks]

    def list_nodes(self) -> List[NodeSnapshot]:
        nodes = self._call('node list', self.client.api.nodes)
        return [node_from_attrs(n) for n in nodes]


class SwarmDockerClient:
    """Connects to the Docker daemon and opens pass-scoped sessions."""

    def __init__(self, base_url: str, api_version: str = 'auto',
                 client: Optional[docker.DockerClient] = None):
        """
        Initialize the Docker client.

        Args:
            base_url: Docker daemon address, e.g. unix:///var/run/docker.sock
            api_version: API version, "auto" to negotiate with the daemon
            client: Pre-built DockerClient, mainly for tests

        Raises:
            DockerException: If the client cannot be created
        """
        self.base_url = base_url
        self.client = client if client is not None else docker.DockerClient(
            base_url=base_url, version=api_version
        )
        # Sessions reuse the negotiated version instead of negotiating again
        self.api_version = getattr(self.client.api, 'api_version', None) or api_version

    def ping(self, timeout: float = 5.0) -> bool:
        """
        Check that the daemon answers.

        Raises:
            DockerException: If the daemon cannot be reached
        """
        self.client.api.timeout = timeout
        try:
            return bool(self.client.ping())
        except requests.exceptions.RequestException as e:
            raise DockerException(f"Error connecting to Docker daemon at {self.base_url}: {e}") from e

    def _open_client(self) -> docker.DockerClient:
        return docker.DockerClient(base_url=self.base_url, version=self.api_version)

    @contextmanager
    def session(self, deadline: ScrapeDeadline) -> Iterator[SwarmSession]:
        """Open a session bound to the given pass deadline and close it afterwards"""
        client = self._open_client()
        try:
            yield SwarmSession(client, deadline)
        finally:
            client.close()

    def close(self):
        """Close the Docker client connection."""
        try:
            self.client.close()
            logger.info("Docker client connection closed")
        except Exception as e:
            logger.error(f"Error closing Docker client: {e}")
