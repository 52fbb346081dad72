"""
Build metadata for the exporter.

The version defaults to the package version and the commit and build time to
placeholders. Image builds override them through environment variables.
"""

import os

from swarm_exporter import __version__

VERSION = os.environ.get('SWARM_EXPORTER_VERSION', __version__)
GIT_COMMIT = os.environ.get('SWARM_EXPORTER_GIT_COMMIT', 'unknown')
BUILD_TIME = os.environ.get('SWARM_EXPORTER_BUILD_TIME', 'unknown')


def version_info() -> str:
    """Return formatted version information"""
    return (
        "Docker Swarm Exporter\n"
        f"Version: {VERSION}\n"
        f"Git commit: {GIT_COMMIT}\n"
        f"Build time: {BUILD_TIME}"
    )
