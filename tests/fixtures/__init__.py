"""
Shared test fixtures and utilities for swarm exporter tests.

This package provides:
- mock_docker: Mocked Docker daemon and Engine API record builders
"""

from tests.fixtures import mock_docker

__all__ = ["mock_docker"]
