"""
Exporter Configuration Module
=============================
Runtime settings for the exporter. Defaults are overridden by an optional
YAML config file, then by environment variables (a local .env file is
honoured), then by command-line flags.

Durations accept Go-style strings such as "10s", "1m30s" or "500ms", or a
bare number of seconds.
"""
import argparse
import logging
import math
import os
import re
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


DEFAULT_LISTEN_ADDRESS = ':9323'
DEFAULT_TELEMETRY_PATH = '/metrics'
DEFAULT_DOCKER_SOCKET = 'unix:///var/run/docker.sock'
DEFAULT_SCRAPE_TIMEOUT = 10.0
DEFAULT_NAMESPACE = 'docker'

_DURATION_UNITS = {
    'h': 3600.0,
    'm': 60.0,
    's': 1.0,
    'ms': 0.001,
    'us': 0.000001,
    'µs': 0.000001,
    'ns': 0.000000001,
}
_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)')
_NAMESPACE_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')


class ConfigError(ValueError):
    """Raised when a flag or environment value cannot be interpreted."""


def parse_duration(value) -> float:
    """
    Parse a duration into seconds.

    Args:
        value: Go-style duration string ("10s", "1m30s", "250ms"), a bare
            number of seconds, or an int/float

    Returns:
        Duration in seconds

    Raises:
        ConfigError: If the value is malformed or not positive
    """
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            seconds = 0.0
            position = 0
            for match in _DURATION_PART.finditer(text):
                if match.start() != position:
                    break
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                position = match.end()
            if not text or position != len(text):
                raise ConfigError(f"Invalid duration: {value!r}")

    if not math.isfinite(seconds) or seconds <= 0:
        raise ConfigError(f"Duration must be positive and finite: {value!r}")
    return seconds


def parse_listen_address(address: str) -> Tuple[str, int]:
    """
    Split a listen address into host and port.

    ":9323" binds every interface; "[::1]:9323" is accepted for IPv6.
    """
    host, sep, port = address.rpartition(':')
    if not sep:
        raise ConfigError(f"Listen address must be host:port, got {address!r}")

    host = host.strip('[]') or '0.0.0.0'
    try:
        port_number = int(port)
    except ValueError:
        raise ConfigError(f"Invalid port in listen address: {address!r}")
    if not 0 < port_number < 65536:
        raise ConfigError(f"Port out of range in listen address: {address!r}")
    return host, port_number


def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    """
    Load exporter settings from a YAML file.

    Keys match ExporterConfig field names. A missing file is logged and
    treated as empty.

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping
    """
    if not path:
        return {}
    if not os.path.exists(path):
        logger.warning(f"Config file not found: {path}, using defaults")
        return {}

    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(ExporterConfig)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in config file {path}: {sorted(unknown)}")
    return data


@dataclass(frozen=True)
class ExporterConfig:
    """
    Configuration for the Docker Swarm exporter.

    Attributes:
        listen_address: host:port the HTTP server binds to
        telemetry_path: URL path under which metrics are served
        docker_socket: Docker daemon address (unix://, tcp:// or npipe://)
        scrape_timeout: Time budget in seconds for one collection pass
        namespace: Prefix applied to every metric name
        log_level: Logging level name
    """
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    telemetry_path: str = DEFAULT_TELEMETRY_PATH
    docker_socket: str = DEFAULT_DOCKER_SOCKET
    scrape_timeout: float = DEFAULT_SCRAPE_TIMEOUT
    namespace: str = DEFAULT_NAMESPACE
    log_level: str = 'INFO'

    def __post_init__(self):
        if not self.telemetry_path.startswith('/'):
            raise ConfigError(f"Telemetry path must start with '/': {self.telemetry_path!r}")
        if self.telemetry_path in ('/', '/health'):
            raise ConfigError(f"Telemetry path {self.telemetry_path!r} is reserved")
        if not _NAMESPACE_PATTERN.match(self.namespace):
            raise ConfigError(f"Invalid metric namespace: {self.namespace!r}")
        if not math.isfinite(self.scrape_timeout) or self.scrape_timeout <= 0:
            raise ConfigError("Scrape timeout must be positive and finite")
        parse_listen_address(self.listen_address)

    @property
    def host(self) -> str:
        return parse_listen_address(self.listen_address)[0]

    @property
    def port(self) -> int:
        return parse_listen_address(self.listen_address)[1]

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "ExporterConfig":
        """
        Create ExporterConfig from environment variables.

        Environment Variables:
            SWARM_EXPORTER_CONFIG_FILE: Optional YAML file with base settings
            SWARM_EXPORTER_LISTEN_ADDRESS: Address to listen on (default: ":9323")
            SWARM_EXPORTER_TELEMETRY_PATH: Metrics path (default: "/metrics")
            DOCKER_SOCKET: Docker daemon address (default: unix socket)
            SWARM_EXPORTER_SCRAPE_TIMEOUT: Collection timeout (default: "10s")
            SWARM_EXPORTER_NAMESPACE: Metric name prefix (default: "docker")
            LOG_LEVEL: Logging level (default: "INFO")

        Returns:
            ExporterConfig instance
        """
        if load_dotenv_file:
            load_dotenv()

        file_settings = load_config_file(os.environ.get('SWARM_EXPORTER_CONFIG_FILE'))
        base = cls()

        def setting(env_var: str, key: str):
            return os.environ.get(env_var, file_settings.get(key, getattr(base, key)))

        return cls(
            listen_address=str(setting('SWARM_EXPORTER_LISTEN_ADDRESS', 'listen_address')),
            telemetry_path=str(setting('SWARM_EXPORTER_TELEMETRY_PATH', 'telemetry_path')),
            docker_socket=str(setting('DOCKER_SOCKET', 'docker_socket')),
            scrape_timeout=parse_duration(setting('SWARM_EXPORTER_SCRAPE_TIMEOUT', 'scrape_timeout')),
            namespace=str(setting('SWARM_EXPORTER_NAMESPACE', 'namespace')),
            log_level=str(setting('LOG_LEVEL', 'log_level')).upper(),
        )

    @classmethod
    def from_args(cls, argv: Optional[List[str]] = None,
                  base: Optional["ExporterConfig"] = None) -> Tuple["ExporterConfig", argparse.Namespace]:
        """
        Apply command-line flags on top of a base configuration.

        Args:
            argv: Arguments to parse (default: sys.argv[1:])
            base: Configuration supplying defaults (default: from_env())

        Returns:
            Tuple of (config, parsed arguments)
        """
        base = base if base is not None else cls.from_env()
        args = build_arg_parser(base).parse_args(argv)

        config = replace(
            base,
            listen_address=args.listen_address,
            telemetry_path=args.telemetry_path,
            docker_socket=args.docker_socket,
            scrape_timeout=parse_duration(args.scrape_timeout),
            namespace=args.namespace,
            log_level=args.log_level.upper(),
        )
        return config, args


def build_arg_parser(defaults: ExporterConfig) -> argparse.ArgumentParser:
    """Build the exporter's argument parser using the given defaults"""
    parser = argparse.ArgumentParser(
        prog='swarm-exporter',
        description='Prometheus exporter for Docker and Docker Swarm fleet health',
    )
    parser.add_argument('--web.listen-address', dest='listen_address',
                        default=defaults.listen_address,
                        help='Address to listen on for web interface and telemetry.')
    parser.add_argument('--web.telemetry-path', dest='telemetry_path',
                        default=defaults.telemetry_path,
                        help='Path under which to expose metrics.')
    parser.add_argument('--docker.socket', dest='docker_socket',
                        default=defaults.docker_socket,
                        help='Docker socket path.')
    parser.add_argument('--scrape.timeout', dest='scrape_timeout',
                        default=str(defaults.scrape_timeout),
                        help='Timeout for scraping Docker metrics (e.g. 10s, 1m).')
    parser.add_argument('--metrics.namespace', dest='namespace',
                        default=defaults.namespace,
                        help='Prefix for exported metric names.')
    parser.add_argument('--log.level', dest='log_level',
                        default=defaults.log_level,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        type=str.upper,
                        help='Logging level.')
    parser.add_argument('--version', action='store_true',
                        help='Print version information and exit.')
    return parser
