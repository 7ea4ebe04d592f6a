"""Tests for the remote deployer."""
import shlex
import subprocess
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from gitdock.core.errors import DeployError
from gitdock.services.artifacts import ArtifactGenerator
from gitdock.services.deployer import RemoteDeployer
from gitdock.services.ssh import SSHClient


class FakeHost:
    """Stands in for subprocess.run: models the bits of a Docker/nginx host we touch."""

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.calls = []
        self.remote = []
        self.staged = {}
        self.containers = {}
        self.symlinks = {}

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        if cmd[0] == 'git':
            Path(cmd[cmd.index('-o') + 1]).write_bytes(b"tar")
            return Mock(returncode=0, stdout="", stderr="")
        if cmd[0] == 'scp':
            for local in cmd[-4:-1]:
                self.staged[Path(local).name] = Path(local).read_text()
            return Mock(returncode=0, stdout="", stderr="")

        command = cmd[-1]
        self.remote.append(command)
        if self.fail_on and self.fail_on in command:
            raise subprocess.CalledProcessError(1, cmd, stderr="nginx: configuration file test failed\n")

        argv = shlex.split(command)
        if argv[0] == 'bash':
            self._run_script(self.staged[Path(argv[1]).name])
        elif argv[:3] == ['sudo', 'ln', '-sf']:
            self.symlinks[argv[4]] = argv[3]
        return Mock(returncode=0, stdout="", stderr="")

    def _run_script(self, script):
        for line in script.splitlines():
            words = line.split()
            if words[:2] == ['docker', 'stop']:
                if words[2] in self.containers:
                    self.containers[words[2]] = 'exited'
            elif words[:2] == ['docker', 'rm']:
                self.containers.pop(words[2], None)
            elif words[:2] == ['docker', 'run']:
                name = words[words.index('--name') + 1]
                if name in self.containers:
                    raise AssertionError(f"docker: container name {name} already in use")
                self.containers[name] = 'running'


@pytest.fixture
def deployer(params, settings):
    return RemoteDeployer(SSHClient(params, settings=settings))


@pytest.fixture
def artifacts():
    return ArtifactGenerator().generate("myapp", 8080, "example.com")


class TestRemoteDeployer:
    """Test RemoteDeployer."""

    def test_remote_sequence(self, deployer, artifacts, handle):
        host = FakeHost()
        with patch('subprocess.run', side_effect=host):
            deployer.deploy(artifacts, handle)

        assert host.remote == [
            'rm -rf /tmp/gitdock/myapp',
            'mkdir -p /tmp/gitdock/myapp',
            'tar -xf /tmp/gitdock/myapp.tar -C /tmp/gitdock/myapp',
            'bash /tmp/gitdock/deploy_remote.sh',
            'sudo cp /tmp/gitdock/nginx_myapp.conf /etc/nginx/sites-available/myapp',
            'sudo ln -sf /etc/nginx/sites-available/myapp /etc/nginx/sites-enabled/myapp',
            'sudo nginx -t',
            'sudo systemctl reload nginx',
        ]

    def test_transfers_artifacts_and_build_context(self, deployer, artifacts, handle):
        host = FakeHost()
        with patch('subprocess.run', side_effect=host):
            deployer.deploy(artifacts, handle)

        archive_cmd = host.calls[0]
        assert archive_cmd[:3] == ['git', 'archive', '--format=tar']
        scp_cmd = next(cmd for cmd in host.calls if cmd[0] == 'scp')
        assert scp_cmd[-1] == 'deploy@203.0.113.10:/tmp/gitdock/'
        assert [Path(p).name for p in scp_cmd[-4:-1]] == [
            'deploy_remote.sh', 'nginx_myapp.conf', 'myapp.tar',
        ]
        assert host.staged['deploy_remote.sh'] == artifacts.remote_script
        assert host.staged['nginx_myapp.conf'] == artifacts.nginx_config

    def test_local_copies_removed(self, deployer, artifacts, handle):
        host = FakeHost()
        with patch('subprocess.run', side_effect=host):
            deployer.deploy(artifacts, handle)

        scp_cmd = next(cmd for cmd in host.calls if cmd[0] == 'scp')
        assert not any(Path(p).exists() for p in scp_cmd[-4:-1])

    def test_failing_sub_step_aborts_remaining(self, deployer, artifacts, handle):
        host = FakeHost(fail_on='nginx -t')
        with patch('subprocess.run', side_effect=host):
            with pytest.raises(DeployError) as exc:
                deployer.deploy(artifacts, handle)

        assert exc.value.sub_step == 'nginx-test'
        assert "[nginx-test]" in str(exc.value)
        assert 'sudo systemctl reload nginx' not in host.remote

    def test_transfer_failure(self, deployer, artifacts, handle):
        def run_side_effect(cmd, **kwargs):
            if cmd[0] == 'scp':
                raise subprocess.CalledProcessError(1, cmd, stderr="scp: /tmp/gitdock/: No such file or directory\n")
            if cmd[0] == 'git':
                Path(cmd[cmd.index('-o') + 1]).write_bytes(b"tar")
            return Mock(returncode=0, stdout="", stderr="")

        with patch('subprocess.run', side_effect=run_side_effect) as mock_run:
            with pytest.raises(DeployError) as exc:
                deployer.deploy(artifacts, handle)

        assert exc.value.sub_step == 'transfer'
        assert not any('bash' in call[0][0][-1] for call in mock_run.call_args_list)

    def test_package_failure(self, deployer, artifacts, handle):
        with patch('subprocess.run', side_effect=subprocess.CalledProcessError(
            128, ['git', 'archive'], stderr="fatal: not a valid object name: HEAD\n"
        )):
            with pytest.raises(DeployError) as exc:
                deployer.deploy(artifacts, handle)

        assert exc.value.sub_step == 'package'

    def test_local_write_failure_is_package_error(self, deployer, artifacts, handle):
        with patch('gitdock.services.deployer.write_artifacts',
                   side_effect=OSError(28, "No space left on device")), \
                patch('subprocess.run', side_effect=FakeHost()) as mock_run:
            with pytest.raises(DeployError) as exc:
                deployer.deploy(artifacts, handle)

        assert exc.value.sub_step == 'package'
        assert "No space left on device" in str(exc.value)
        assert not any(call[0][0][0] in ('ssh', 'scp') for call in mock_run.call_args_list)

    def test_local_staging_directory_failure(self, deployer, artifacts, handle):
        with patch('gitdock.services.deployer.tempfile.TemporaryDirectory',
                   side_effect=PermissionError(13, "Permission denied")), \
                patch('subprocess.run') as mock_run:
            with pytest.raises(DeployError) as exc:
                deployer.deploy(artifacts, handle)

        assert exc.value.sub_step == 'package'
        mock_run.assert_not_called()

    def test_redeploy_converges_to_one_container(self, deployer, artifacts, handle):
        host = FakeHost()
        with patch('subprocess.run', side_effect=host):
            deployer.deploy(artifacts, handle)
            first_run = list(host.remote)
            deployer.deploy(artifacts, handle)

        assert host.containers == {'myapp-container': 'running'}
        assert host.symlinks == {
            '/etc/nginx/sites-enabled/myapp': '/etc/nginx/sites-available/myapp',
        }
        assert host.remote[len(first_run):] == first_run

    def test_mock_mode(self, params, settings, artifacts, handle):
        deployer = RemoteDeployer(SSHClient(params, settings=settings, mock=True))
        with patch('subprocess.run') as mock_run:
            message = deployer.deploy(artifacts, handle)
        mock_run.assert_not_called()
        assert "myapp-container" in message
