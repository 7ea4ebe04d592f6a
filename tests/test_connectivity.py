"""Tests for the SSH reachability probe."""
import subprocess
from unittest.mock import Mock, patch

import pytest

from gitdock.core.errors import ConnectivityError
from gitdock.services.connectivity import ConnectivityProbe, classify_ssh_failure
from gitdock.services.ssh import SSHClient


@pytest.fixture
def probe(params, settings):
    return ConnectivityProbe(SSHClient(params, settings=settings))


class TestClassifySshFailure:
    """Test ssh stderr classification."""

    @pytest.mark.parametrize("stderr", [
        "deploy@203.0.113.10: Permission denied (publickey).",
        "Received disconnect: Too many authentication failures",
    ])
    def test_auth(self, stderr):
        assert classify_ssh_failure(stderr) == ConnectivityError.AUTH

    @pytest.mark.parametrize("stderr", [
        "ssh: connect to host 203.0.113.10 port 22: Connection refused",
        "ssh: connect to host 203.0.113.10 port 22: Connection timed out",
        "ssh: connect to host 203.0.113.10 port 22: No route to host",
        "ssh: Could not resolve hostname nowhere.invalid: Name or service not known",
    ])
    def test_network(self, stderr):
        assert classify_ssh_failure(stderr) == ConnectivityError.NETWORK

    def test_unknown(self):
        assert classify_ssh_failure("") == ConnectivityError.UNKNOWN
        assert classify_ssh_failure("something odd") == ConnectivityError.UNKNOWN


class TestConnectivityProbe:
    """Test ConnectivityProbe."""

    @patch('subprocess.run')
    def test_probe_success(self, mock_run, probe):
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")

        probe.probe()

        cmd = mock_run.call_args[0][0]
        assert cmd[0] == 'ssh'
        assert 'BatchMode=yes' in cmd
        assert 'ConnectTimeout=10' in cmd
        assert 'StrictHostKeyChecking=accept-new' in cmd
        assert cmd[-2:] == ['deploy@203.0.113.10', 'true']
        assert mock_run.call_args[1]['timeout'] == 15

    @patch('subprocess.run')
    def test_probe_auth_rejected(self, mock_run, probe):
        mock_run.return_value = Mock(
            returncode=255, stdout="", stderr="deploy@203.0.113.10: Permission denied (publickey).\n"
        )

        with pytest.raises(ConnectivityError) as exc:
            probe.probe()

        assert exc.value.reason == ConnectivityError.AUTH
        assert "authentication rejected" in str(exc.value)

    @patch('subprocess.run')
    def test_probe_connection_refused(self, mock_run, probe):
        mock_run.return_value = Mock(
            returncode=255, stdout="", stderr="ssh: connect to host 203.0.113.10 port 22: Connection refused\n"
        )

        with pytest.raises(ConnectivityError) as exc:
            probe.probe()

        assert exc.value.reason == ConnectivityError.NETWORK
        assert "Cannot reach" in str(exc.value)

    @patch('subprocess.run')
    def test_probe_local_timeout_is_network_failure(self, mock_run, probe):
        mock_run.side_effect = subprocess.TimeoutExpired(['ssh'], 15)

        with pytest.raises(ConnectivityError) as exc:
            probe.probe()

        assert exc.value.reason == ConnectivityError.NETWORK

    @patch('subprocess.run')
    def test_probe_remote_command_failure_is_unknown(self, mock_run, probe):
        mock_run.return_value = Mock(returncode=1, stdout="", stderr="")

        with pytest.raises(ConnectivityError) as exc:
            probe.probe()

        assert exc.value.reason == ConnectivityError.UNKNOWN

    @patch('subprocess.run')
    def test_ping_failure_is_only_a_warning(self, mock_run, probe):
        def run_side_effect(cmd, **kwargs):
            if cmd[0] == 'ping':
                return Mock(returncode=1, stdout="", stderr="")
            return Mock(returncode=0, stdout="", stderr="")

        mock_run.side_effect = run_side_effect

        probe.check()

        assert [call[0][0][0] for call in mock_run.call_args_list] == ['ping', 'ssh']

    @patch('subprocess.run')
    def test_missing_ping_binary_is_tolerated(self, mock_run, probe):
        def run_side_effect(cmd, **kwargs):
            if cmd[0] == 'ping':
                raise FileNotFoundError('ping')
            return Mock(returncode=0, stdout="", stderr="")

        mock_run.side_effect = run_side_effect

        probe.check()

    def test_mock_mode(self, params, settings):
        probe = ConnectivityProbe(SSHClient(params, settings=settings, mock=True))
        with patch('subprocess.run') as mock_run:
            probe.check()
        mock_run.assert_not_called()
