"""
Docker Swarm Exporter for Prometheus

Republishes Docker and swarm fleet-health counts (containers, images,
services, tasks, nodes and stacks) as Prometheus gauges, computed from the
Docker Engine API on every scrape.
"""

__version__ = "1.0.0"
