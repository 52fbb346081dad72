"""
Tests for swarm_exporter/config.py
"""
import pytest

from swarm_exporter.config import (
    ConfigError,
    ExporterConfig,
    load_config_file,
    parse_duration,
    parse_listen_address,
)

ENV_VARS = [
    'SWARM_EXPORTER_CONFIG_FILE',
    'SWARM_EXPORTER_LISTEN_ADDRESS',
    'SWARM_EXPORTER_TELEMETRY_PATH',
    'DOCKER_SOCKET',
    'SWARM_EXPORTER_SCRAPE_TIMEOUT',
    'SWARM_EXPORTER_NAMESPACE',
    'LOG_LEVEL',
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove exporter variables from the environment"""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestParseDuration:
    """Tests for duration parsing"""

    @pytest.mark.parametrize('text, seconds', [
        ('10s', 10.0),
        ('1m30s', 90.0),
        ('500ms', 0.5),
        ('1h', 3600.0),
        ('2.5s', 2.5),
        ('15', 15.0),
        (7, 7.0),
    ])
    def test_valid(self, text, seconds):
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize('text', ['', 'ten', '10x', 's10', '10s junk', '0s', '-5', 'nan', 'inf', float('nan')])
    def test_invalid(self, text):
        with pytest.raises(ConfigError):
            parse_duration(text)


class TestParseListenAddress:
    """Tests for host:port parsing"""

    def test_port_only_binds_all_interfaces(self):
        assert parse_listen_address(':9323') == ('0.0.0.0', 9323)

    def test_host_and_port(self):
        assert parse_listen_address('127.0.0.1:8080') == ('127.0.0.1', 8080)

    def test_ipv6(self):
        assert parse_listen_address('[::1]:9323') == ('::1', 9323)

    @pytest.mark.parametrize('address', ['9323', 'localhost:http', ':70000'])
    def test_invalid(self, address):
        with pytest.raises(ConfigError):
            parse_listen_address(address)


class TestExporterConfig:
    """Tests for configuration sources and validation"""

    def test_defaults(self, clean_env):
        config = ExporterConfig.from_env(load_dotenv_file=False)

        assert config.listen_address == ':9323'
        assert config.telemetry_path == '/metrics'
        assert config.docker_socket == 'unix:///var/run/docker.sock'
        assert config.scrape_timeout == 10.0
        assert config.namespace == 'docker'
        assert config.port == 9323

    def test_environment_overrides(self, clean_env):
        clean_env.setenv('SWARM_EXPORTER_LISTEN_ADDRESS', '127.0.0.1:9400')
        clean_env.setenv('SWARM_EXPORTER_SCRAPE_TIMEOUT', '30s')
        clean_env.setenv('DOCKER_SOCKET', 'tcp://manager:2375')
        clean_env.setenv('LOG_LEVEL', 'debug')

        config = ExporterConfig.from_env(load_dotenv_file=False)

        assert config.host == '127.0.0.1'
        assert config.port == 9400
        assert config.scrape_timeout == 30.0
        assert config.docker_socket == 'tcp://manager:2375'
        assert config.log_level == 'DEBUG'

    def test_yaml_file_below_environment(self, clean_env, tmp_path):
        config_file = tmp_path / 'exporter.yaml'
        config_file.write_text(
            "telemetry_path: /swarm\n"
            "scrape_timeout: 5s\n"
            "namespace: fleet\n"
        )
        clean_env.setenv('SWARM_EXPORTER_CONFIG_FILE', str(config_file))
        clean_env.setenv('SWARM_EXPORTER_NAMESPACE', 'cluster')

        config = ExporterConfig.from_env(load_dotenv_file=False)

        assert config.telemetry_path == '/swarm'
        assert config.scrape_timeout == 5.0
        assert config.namespace == 'cluster'

    def test_missing_yaml_file_uses_defaults(self, tmp_path):
        assert load_config_file(str(tmp_path / 'absent.yaml')) == {}

    def test_yaml_unknown_key(self, tmp_path):
        config_file = tmp_path / 'exporter.yaml'
        config_file.write_text("listen_port: 9000\n")

        with pytest.raises(ConfigError, match='listen_port'):
            load_config_file(str(config_file))

    def test_yaml_not_a_mapping(self, tmp_path):
        config_file = tmp_path / 'exporter.yaml'
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ConfigError):
            load_config_file(str(config_file))

    def test_flags_override_environment(self, clean_env):
        clean_env.setenv('SWARM_EXPORTER_TELEMETRY_PATH', '/from-env')

        config, args = ExporterConfig.from_args(
            ['--web.telemetry-path', '/from-flag', '--scrape.timeout', '1m',
             '--docker.socket', 'tcp://127.0.0.1:2375'],
            base=ExporterConfig.from_env(load_dotenv_file=False),
        )

        assert config.telemetry_path == '/from-flag'
        assert config.scrape_timeout == 60.0
        assert config.docker_socket == 'tcp://127.0.0.1:2375'
        assert args.version is False

    def test_version_flag(self):
        _, args = ExporterConfig.from_args(['--version'], base=ExporterConfig())
        assert args.version is True

    def test_invalid_flag_value(self):
        with pytest.raises(ConfigError):
            ExporterConfig.from_args(['--scrape.timeout', 'soon'], base=ExporterConfig())

    @pytest.mark.parametrize('overrides', [
        {'telemetry_path': 'metrics'},
        {'telemetry_path': '/health'},
        {'namespace': 'docker-swarm'},
        {'scrape_timeout': 0},
        {'scrape_timeout': float('nan')},
        {'scrape_timeout': float('inf')},
        {'listen_address': 'nowhere'},
    ])
    def test_validation(self, overrides):
        with pytest.raises(ConfigError):
            ExporterConfig(**overrides)
