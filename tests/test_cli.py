"""Tests for f5ingress CLI."""

import json
import tempfile
from io import StringIO
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import yaml

from f5ingress.cli import load_config, main
from f5ingress.errors import ConfigurationError
from f5ingress.models import Member, VirtualServer

SNAPSHOT_YAML = """\
apiVersion: networking.k8s.io/v1
kind: Ingress
metadata:
  name: demo
  namespace: web
spec:
  defaultBackend:
    service:
      name: demo-svc
      port:
        number: 8080
---
apiVersion: v1
kind: Service
metadata:
  name: demo-svc
  namespace: web
spec:
  selector:
    app: demo
---
apiVersion: v1
kind: PodList
items:
- metadata:
    name: p1
    namespace: web
    labels:
      app: demo
  status:
    phase: Running
    podIP: 10.0.0.1
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "f5ingress.yaml"
    path.write_text(yaml.dump({
        "partition": "k8s",
        "bigip": {"host": "bigip.example.com", "username": "admin", "password": "secret"},
    }))
    return path


class TestLoadConfig:
    """Tests for configuration loading."""

    def test_load(self, config_file):
        controller_config = load_config(str(config_file))

        assert controller_config.partition == "k8s"
        assert controller_config.bigip.host == "bigip.example.com"
        assert controller_config.refresh_interval == 60

    def test_partition_override(self, config_file):
        assert load_config(str(config_file), partition="other").partition == "other"

    def test_missing_file(self):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config("nonexistent.yaml")

    def test_missing_partition(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ConfigurationError, match="No partition"):
            load_config(None)

    def test_partition_only(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert load_config(None, partition="k8s").partition == "k8s"


class TestCLI:
    """Tests for CLI commands."""

    def test_version_command(self):
        """Test version command."""
        with patch('sys.argv', ['f5ingress', 'version']):
            with patch('sys.stdout', new=StringIO()) as fake_out:
                main()
                output = fake_out.getvalue()
                assert "f5ingress" in output
                assert "0.1.0" in output

    def test_init_config_command(self):
        """Test init-config command."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            config_path = f.name

        try:
            with patch('sys.argv', ['f5ingress', 'init-config', '-o', config_path]):
                with patch('sys.stdout', new=StringIO()) as fake_out:
                    main()
                    assert "Sample configuration written" in fake_out.getvalue()

            with open(config_path) as f:
                config_data = yaml.safe_load(f)

            assert config_data["partition"]
            assert "cluster" in config_data
            assert "bigip" in config_data
        finally:
            Path(config_path).unlink(missing_ok=True)

    def test_init_config_output_validates(self, tmp_path):
        """The generated sample passes validate-config."""
        config_path = tmp_path / "sample.yaml"

        with patch('sys.stdout', new=StringIO()):
            with patch('sys.argv', ['f5ingress', 'init-config', '-o', str(config_path)]):
                main()
            with patch('sys.argv', ['f5ingress', 'validate-config', '-c', str(config_path)]):
                with patch('sys.stdout', new=StringIO()) as fake_out:
                    main()
                    assert "is valid" in fake_out.getvalue()

    def test_validate_config_invalid_file(self):
        """Test validate-config with non-existent file."""
        with patch('sys.argv', ['f5ingress', 'validate-config', '-c', 'nonexistent.yaml']):
            with patch('sys.stderr', new=StringIO()) as fake_err:
                with pytest.raises(SystemExit) as exc_info:
                    main()
                assert exc_info.value.code == 1
                assert "not found" in fake_err.getvalue()

    def test_validate_config_bad_refresh_interval(self, tmp_path):
        config_path = tmp_path / "bad.yaml"
        config_path.write_text(yaml.dump({"partition": "k8s", "refresh_interval": 0}))

        with patch('sys.argv', ['f5ingress', 'validate-config', '-c', str(config_path)]):
            with patch('sys.stderr', new=StringIO()) as fake_err:
                with pytest.raises(SystemExit):
                    main()
                assert "invalid" in fake_err.getvalue()

    def test_desired_from_snapshot(self, tmp_path):
        snapshot_path = tmp_path / "snapshot.yaml"
        snapshot_path.write_text(SNAPSHOT_YAML)

        with patch('sys.argv', ['f5ingress', 'desired', '--snapshot', str(snapshot_path)]):
            with patch('sys.stdout', new=StringIO()) as fake_out:
                main()
                state = json.loads(fake_out.getvalue())

        assert state == [{
            "name": "demo",
            "namespace": "web",
            "port": 80,
            "redirect": False,
            "iRules": [],
            "members": [{"name": "p1", "ip": "10.0.0.1", "port": 8080}],
            "monitor": {"type": "http"},
        }]

    def test_desired_missing_snapshot(self):
        with patch('sys.argv', ['f5ingress', 'desired', '--snapshot', 'nonexistent.yaml']):
            with patch('sys.stderr', new=StringIO()):
                with pytest.raises(SystemExit) as exc_info:
                    main()
                assert exc_info.value.code == 1

    def test_current_command(self, config_file):
        current = [VirtualServer(name="demo", namespace="web", port=80,
                                 members=[Member(name="p1", ip="10.0.0.1", port=8080)])]

        with patch('f5ingress.cli._current_from_bigip', new=AsyncMock(return_value=current)) as mock_current:
            with patch('sys.argv', ['f5ingress', 'current', '-c', str(config_file)]):
                with patch('sys.stdout', new=StringIO()) as fake_out:
                    main()
                    state = json.loads(fake_out.getvalue())

        assert mock_current.await_args.args[0].partition == "k8s"
        assert state[0]["members"] == [{"name": "p1", "ip": "10.0.0.1", "port": 8080}]

    def test_no_command(self):
        with patch('sys.argv', ['f5ingress']):
            with patch('sys.stdout', new=StringIO()):
                with pytest.raises(SystemExit) as exc_info:
                    main()
                assert exc_info.value.code == 1

    def test_help_command(self):
        """Test help command."""
        with patch('sys.argv', ['f5ingress', '--help']):
            with patch('sys.stdout', new=StringIO()) as fake_out:
                with pytest.raises(SystemExit) as exc_info:
                    main()
                assert exc_info.value.code == 0
                output = fake_out.getvalue()
                assert "derive BIG-IP virtual servers" in output
                assert "desired" in output
                assert "current" in output
                assert "serve" in output
                assert "validate-config" in output
