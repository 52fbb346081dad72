"""
Main Docker Swarm Exporter application.

This module wires the collector into a Prometheus registry and serves it
over HTTP. Metrics are computed on demand: every request to the telemetry
path triggers one collection pass against the Docker daemon.
"""

import logging
import sys
from typing import List, Optional

from docker.errors import DockerException
from flask import Flask, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    GCCollector,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

from swarm_exporter.collector import SwarmCollector
from swarm_exporter.config import ConfigError, ExporterConfig
from swarm_exporter.docker_client import SwarmDockerClient
from swarm_exporter.version import version_info

logger = logging.getLogger(__name__)

STARTUP_PING_TIMEOUT = 5.0

LANDING_PAGE = """<html>
<head><title>Docker Swarm Exporter</title></head>
<body>
<h1>Docker Swarm Exporter</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>
"""


def configure_logging(level: str = 'INFO'):
    """Configure root logging for the exporter process"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_registry(collector: SwarmCollector, include_process_metrics: bool = True) -> CollectorRegistry:
    """
    Create a registry holding the swarm collector.

    Args:
        collector: Swarm collector to register
        include_process_metrics: Also expose process, platform and GC metrics

    Returns:
        CollectorRegistry
    """
    registry = CollectorRegistry()
    if include_process_metrics:
        ProcessCollector(registry=registry)
        PlatformCollector(registry=registry)
        GCCollector(registry=registry)
    registry.register(collector)
    return registry


def create_app(config: ExporterConfig, docker_client: SwarmDockerClient,
               registry: Optional[CollectorRegistry] = None) -> Flask:
    """
    Create the Flask application serving the exporter.

    Args:
        config: Exporter configuration
        docker_client: Connected Docker client
        registry: Registry to expose (default: a new one with the swarm collector)

    Returns:
        Flask app
    """
    if registry is None:
        collector = SwarmCollector(
            docker_client,
            timeout=config.scrape_timeout,
            namespace=config.namespace,
        )
        registry = build_registry(collector)

    app = Flask(__name__)

    @app.route(config.telemetry_path)
    def metrics_endpoint():
        """Prometheus metrics endpoint."""
        return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)

    @app.route('/health')
    def health():
        """Health check endpoint."""
        try:
            docker_client.ping()
            return {'status': 'healthy', 'docker': 'connected'}, 200
        except DockerException as e:
            logger.warning(f"Health check failed: {e}")
            return {'status': 'unhealthy', 'docker': 'disconnected'}, 503

    @app.route('/')
    def root():
        """Landing page linking to the metrics."""
        return Response(LANDING_PAGE.format(path=config.telemetry_path), mimetype='text/html')

    return app


def connect(config: ExporterConfig) -> SwarmDockerClient:
    """
    Connect to the Docker daemon and verify it answers.

    Raises:
        DockerException: If the daemon is unreachable
    """
    docker_client = SwarmDockerClient(config.docker_socket)
    docker_client.ping(timeout=STARTUP_PING_TIMEOUT)
    return docker_client


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    argv = sys.argv[1:] if argv is None else argv
    if '--version' in argv:
        print(version_info())
        return 0

    try:
        config, _ = ExporterConfig.from_args(argv)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level)

    try:
        docker_client = connect(config)
    except DockerException as e:
        logger.error(f"Error connecting to Docker daemon: {e}")
        return 1

    logger.info("Connected to Docker daemon")

    app = create_app(config, docker_client)

    logger.info(f"Starting Docker Swarm exporter on {config.listen_address}")
    logger.info(f"Metrics available at http://{config.host}:{config.port}{config.telemetry_path}")
    try:
        app.run(host=config.host, port=config.port, threaded=True)
    except Exception as e:
        logger.error(f"Error starting HTTP server: {e}", exc_info=True)
        return 1
    finally:
        docker_client.close()

    return 0


if __name__ == '__main__':
    sys.exit(main())
